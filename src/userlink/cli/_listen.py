"""userlink listen — stream inbound messages to the console."""

from __future__ import annotations

import asyncio
import contextlib
import json

from rich.console import Console
from rich.markup import escape

from userlink.core.config import UserlinkConfig
from userlink.core.constants import ExitCode
from userlink.core.exceptions import TransportConnectionError
from userlink.transport.factory import TransportFactory


async def stream_messages(
    factory: TransportFactory,
    console: Console,
    url: str | None = None,
    count: int = 0,
    as_json: bool = False,
) -> int:
    """Print messages until *count* have arrived (0 = no limit) or the stream ends."""
    transport = await factory.create_service(url)
    received = 0
    try:
        await transport.connect()
        if not as_json:
            console.print(f"[bold]Listening on {transport.url}[/bold] ({transport.kind})")
        async with contextlib.aclosing(transport.messages()) as stream:
            async for message in stream:
                received += 1
                if as_json:
                    print(json.dumps({"type": message.type, "payload": message.payload}))
                else:
                    body = escape(json.dumps(message.payload))
                    console.print(f"[cyan]{escape(message.type)}[/cyan] {body}")
                if count and received >= count:
                    break
    finally:
        await factory.reset()
    return received


def cmd_listen(
    config: UserlinkConfig,
    url: str | None,
    count: int,
    as_json: bool,
    console: Console,
) -> int:
    factory = TransportFactory(config)
    try:
        asyncio.run(stream_messages(factory, console, url=url, count=count, as_json=as_json))
    except TransportConnectionError as exc:
        console.print(f"[red]Connection failed:[/red] {exc}")
        return ExitCode.NETWORK_ERROR
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")
    return ExitCode.SUCCESS
