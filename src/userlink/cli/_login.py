"""
userlink login — authenticate through whichever transport the factory picks.

Flow:
  1. The factory probes the endpoint and hands back a live or simulated
     transport.
  2. The transport connects and a listener waits for auth_response.
  3. auth_request is sent; the first auth_response settles the login.
  4. The factory is reset, which disconnects the transport.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from rich.console import Console

from userlink.core.config import UserlinkConfig
from userlink.core.constants import ExitCode
from userlink.core.exceptions import TransportConnectionError, TransportError
from userlink.transport.factory import TransportFactory
from userlink.transport.protocol import Message, MessageType, auth_request

logger = logging.getLogger(__name__)


async def perform_login(
    factory: TransportFactory,
    username: str,
    password: str,
    url: str | None = None,
    timeout: float = 10.0,
) -> dict[str, Any]:
    """
    Run one login exchange and return the auth_response payload.

    Raises TransportConnectionError if the transport cannot connect,
    TransportError if the request cannot be sent, and TimeoutError if no
    auth_response arrives within *timeout* seconds.
    """
    transport = await factory.create_service(url)
    try:
        await transport.connect()

        response: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()

        def on_message(message: Message) -> None:
            if message.type != MessageType.AUTH_RESPONSE or response.done():
                return
            payload = message.payload if isinstance(message.payload, dict) else {}
            response.set_result(payload)

        transport.add_message_listener(on_message)
        result = await transport.send_message(
            MessageType.AUTH_REQUEST, auth_request(username, password)
        )
        if not result.ok:
            raise TransportError(f"auth_request not sent: {result.error}")

        return await asyncio.wait_for(response, timeout)
    finally:
        await factory.reset()


def cmd_login(
    config: UserlinkConfig,
    username: str,
    password: str,
    url: str | None,
    timeout: float,
    as_json: bool,
    console: Console,
) -> int:
    factory = TransportFactory(config)

    async def _run() -> tuple[dict[str, Any], bool | None]:
        # Selection happens first so the mode is known even if login fails
        await factory.create_service(url)
        simulated = factory.is_simulated()
        if simulated and not as_json:
            console.print(
                "[yellow]Backend unavailable, using the simulated transport.[/yellow]\n"
                f"  Simulated credentials: {config.simulated.username} / "
                f"{'*' * len(config.simulated.password.get_secret_value())}"
            )
        payload = await perform_login(factory, username, password, url=url, timeout=timeout)
        return payload, simulated

    try:
        payload, simulated = asyncio.run(_run())
    except TransportConnectionError as exc:
        return _report_error(f"Connection failed: {exc}", ExitCode.NETWORK_ERROR, as_json, console)
    except TransportError as exc:
        return _report_error(str(exc), ExitCode.ERROR, as_json, console)
    except TimeoutError:
        return _report_error(
            f"No auth_response within {timeout:g}s", ExitCode.ERROR, as_json, console
        )

    success = bool(payload.get("success"))
    if as_json:
        print(json.dumps({"simulated": simulated, **payload}, indent=2))
    elif success:
        user = payload.get("user") or {}
        token = payload.get("token") or ""
        console.print(f"[green]{payload.get('message', 'Login successful')}[/green]")
        console.print(f"  User:  {user.get('username', username)} (role: {user.get('role', '?')})")
        console.print(f"  Token: {token[:12]}…" if len(token) > 12 else f"  Token: {token}")
    else:
        console.print(f"[red]{payload.get('message', 'Login failed')}[/red]")

    return ExitCode.SUCCESS if success else ExitCode.ERROR


def _report_error(message: str, code: int, as_json: bool, console: Console) -> int:
    logger.debug("login failed: %s", message)
    if as_json:
        print(json.dumps({"success": False, "error": message}, indent=2))
    else:
        console.print(f"[red]{message}[/red]")
    return code
