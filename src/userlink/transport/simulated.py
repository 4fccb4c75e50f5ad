"""
SimulatedTransport — offline stand-in for the user-service backend.

Used when the real endpoint cannot be reached.  Nothing touches the
network: connect() sleeps for a fixed latency and succeeds unless
disconnect() interrupts it, and an
auth_request is answered with a synthesized auth_response after a fixed
processing delay.  Exactly one username/password pair is accepted.

Every pending response is an owned task; disconnect() cancels them all
before returning, so no listener fires afterwards.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import secrets
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from userlink.core.config import SimulatedConfig
from userlink.core.exceptions import TransportConnectionError
from userlink.transport.base import ConnectionState, Transport
from userlink.transport.protocol import (
    SENT,
    Message,
    MessageType,
    SendResult,
    auth_response,
)

logger = logging.getLogger(__name__)

SIMULATED_USER_ID = 1


def _same(given: str, expected: str) -> bool:
    return secrets.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


class SimulatedTransport(Transport):
    """Transport that fakes the backend locally."""

    kind = "simulated"

    def __init__(self, url: str, config: SimulatedConfig | None = None) -> None:
        super().__init__(url)
        self._config = config or SimulatedConfig()
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending_responses(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> SimulatedTransport:
        if self._state == ConnectionState.OPEN:
            return self
        self._set_state(ConnectionState.CONNECTING)
        await asyncio.sleep(self._config.connect_latency_seconds)
        if self._state != ConnectionState.CONNECTING:
            raise TransportConnectionError(
                f"Connection to {self._url} cancelled by disconnect()", "cancelled"
            )
        self._set_state(ConnectionState.OPEN)
        logger.info("Simulated transport connected: %s", self._url)

        if self._config.push_user_list:
            self._schedule(self._config.auth_latency_seconds, self._user_list)
        return self

    async def disconnect(self) -> None:
        for task in self._pending:
            task.cancel()
        self._pending.clear()
        was = self._state
        self._set_state(ConnectionState.DISCONNECTED)
        self._release_listeners()
        if was != ConnectionState.DISCONNECTED:
            logger.info("Simulated transport disconnected")

    # ------------------------------------------------------------------
    # Forward path
    # ------------------------------------------------------------------

    async def send_message(self, msg_type: str, payload: Any) -> SendResult:
        if self._state != ConnectionState.OPEN:
            return self._not_open(f"send {msg_type!r}")

        logger.debug("Simulated transport received %s", msg_type)
        if msg_type == MessageType.AUTH_REQUEST:
            self._schedule(
                self._config.auth_latency_seconds, functools.partial(self._authenticate, payload)
            )
        return SENT

    # ------------------------------------------------------------------
    # Simulated backend
    # ------------------------------------------------------------------

    def _authenticate(self, payload: Any) -> Message:
        username = password = None
        if isinstance(payload, dict):
            username = payload.get("username")
            password = payload.get("password")

        valid = (
            isinstance(username, str)
            and isinstance(password, str)
            and _same(username, self._config.username)
            and _same(password, self._config.password.get_secret_value())
        )
        if not valid:
            logger.info("Simulated login rejected for %r", username)
            return auth_response(success=False, message="Invalid credentials")

        logger.info("Simulated login accepted for %r", username)
        return auth_response(
            success=True,
            message="Login successful",
            token=f"sim-{secrets.token_urlsafe(24)}",
            user={"id": SIMULATED_USER_ID, "username": username, "role": self._config.role},
        )

    def _user_list(self) -> Message:
        now = datetime.now(UTC).isoformat(timespec="seconds")
        return Message(
            type=MessageType.USER_LIST.value,
            payload={
                "users": [
                    {
                        "id": SIMULATED_USER_ID,
                        "username": self._config.username,
                        "email": f"{self._config.username}@localhost",
                        "role": self._config.role,
                        "active": True,
                        "created_at": now,
                        "updated_at": now,
                    }
                ]
            },
        )

    def _schedule(self, delay: float, build: Callable[[], Message]) -> None:
        task = asyncio.create_task(self._respond_later(delay, build), name="simulated_response")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _respond_later(self, delay: float, build: Callable[[], Message]) -> None:
        await asyncio.sleep(delay)
        if self._state != ConnectionState.OPEN:
            return
        self._deliver(build())

    def healthcheck(self) -> dict[str, Any]:
        data = super().healthcheck()
        data["pending_responses"] = len(self._pending)
        return data
