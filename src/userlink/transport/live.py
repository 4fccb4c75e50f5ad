"""
LiveTransport — WebSocket transport with automatic reconnection.

Connection lifecycle:
  1. connect() opens the socket (CONNECTING → OPEN) and starts a reader task.
  2. The reader decodes each frame and fans it out to listeners.  Frames
     that are not {type, payload} JSON are logged and dropped.
  3. When the socket closes without disconnect() having been called, a
     reconnect task is started.  Attempt n (0-based) waits
     min(base * 2**n, cap) seconds.  After max_attempts failures the
     transport parks in CLOSED until connect() is called again.
  4. disconnect() cancels the reader and reconnect tasks before it
     awaits anything, so no listener fires once it returns.

Reconnection is transparent to listeners: subscriptions survive it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from userlink.core.config import ReconnectConfig
from userlink.core.constants import OPEN_TIMEOUT_SECONDS
from userlink.core.exceptions import ProtocolError, StateError, TransportConnectionError
from userlink.transport.base import ConnectionState, Transport
from userlink.transport.protocol import SENT, Message, SendResult

logger = logging.getLogger(__name__)


async def open_socket(url: str, timeout: float) -> ClientConnection:
    """
    Open a WebSocket to *url* within *timeout* seconds.

    Translates every failure into TransportConnectionError with a reason
    of ``invalid_url``, ``timeout``, ``unreachable`` or ``handshake``.
    """
    try:
        return await asyncio.wait_for(connect(url, open_timeout=None), timeout)
    except InvalidURI as exc:
        raise TransportConnectionError(f"Invalid endpoint URL {url}: {exc}", "invalid_url") from exc
    except TimeoutError as exc:
        raise TransportConnectionError(
            f"Endpoint unreachable: no answer from {url} within {timeout:g}s", "timeout"
        ) from exc
    except OSError as exc:
        raise TransportConnectionError(
            f"Endpoint unreachable: {url} ({exc})", "unreachable"
        ) from exc
    except InvalidHandshake as exc:
        raise TransportConnectionError(
            f"WebSocket handshake with {url} failed: {exc}", "handshake"
        ) from exc


class LiveTransport(Transport):
    """Transport over a real WebSocket connection."""

    kind = "live"

    def __init__(
        self,
        url: str,
        reconnect: ReconnectConfig | None = None,
        open_timeout: float = OPEN_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(url)
        self._reconnect = reconnect or ReconnectConfig()
        self._open_timeout = open_timeout
        self._ws: ClientConnection | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._opening: asyncio.Task[ClientConnection] | None = None
        self._attempts = 0
        self._closing = False
        self._connect_lock = asyncio.Lock()

    @property
    def attempts(self) -> int:
        """Reconnection attempts made since the last successful open."""
        return self._attempts

    def backoff_delay(self, attempt: int) -> float:
        return self._reconnect.delay_for(attempt)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> LiveTransport:
        async with self._connect_lock:
            if self._state == ConnectionState.OPEN:
                return self
            self._closing = False
            # An explicit connect takes over from any background retry
            self._cancel_reconnect()

            self._set_state(ConnectionState.CONNECTING)
            self._opening = asyncio.create_task(
                open_socket(self._url, self._open_timeout), name="live_transport_open"
            )
            try:
                ws = await self._opening
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if not self._closing or (current is not None and current.cancelling()):
                    raise
                raise TransportConnectionError(
                    f"Connection to {self._url} cancelled by disconnect()", "cancelled"
                ) from None
            except TransportConnectionError as exc:
                logger.error("Live transport connect failed: %s", exc)
                if not self._closing:
                    self._set_state(ConnectionState.DISCONNECTED)
                raise
            finally:
                self._opening = None

            if self._closing:
                with contextlib.suppress(ConnectionClosed, OSError):
                    await ws.close()
                raise TransportConnectionError(
                    f"Connection to {self._url} cancelled by disconnect()", "cancelled"
                )
            self._on_open(ws)
            logger.info("Live transport connected: %s", self._url)
            return self

    async def disconnect(self) -> None:
        self._closing = True
        self._cancel_reconnect()
        if self._opening is not None:
            self._opening.cancel()
        reader, self._reader_task = self._reader_task, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        ws, self._ws = self._ws, None
        self._attempts = 0
        was = self._state
        self._set_state(ConnectionState.DISCONNECTED)
        self._release_listeners()

        if ws is not None:
            with contextlib.suppress(ConnectionClosed, OSError):
                await ws.close()
        if reader is not None and reader is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        if was != ConnectionState.DISCONNECTED:
            logger.info("Live transport disconnected: %s", self._url)

    # ------------------------------------------------------------------
    # Forward path
    # ------------------------------------------------------------------

    async def send_message(self, msg_type: str, payload: Any) -> SendResult:
        if self._state != ConnectionState.OPEN or self._ws is None:
            return self._not_open(f"send {msg_type!r}")
        frame = Message(type=msg_type, payload=payload).to_json()
        try:
            await self._ws.send(frame)
        except ConnectionClosed as exc:
            # The reader notices the close and schedules reconnection
            err = StateError(f"Cannot send {msg_type!r}: connection closed ({exc})")
            logger.warning("%s", err)
            return SendResult(ok=False, error=err)
        logger.debug("Sent %s frame (%d bytes)", msg_type, len(frame))
        return SENT

    # ------------------------------------------------------------------
    # Return path
    # ------------------------------------------------------------------

    def _on_open(self, ws: ClientConnection) -> None:
        self._ws = ws
        self._attempts = 0
        self._set_state(ConnectionState.OPEN)
        self._reader_task = asyncio.create_task(self._read_loop(ws), name="live_transport_reader")

    async def _read_loop(self, ws: ClientConnection) -> None:
        try:
            async for frame in ws:
                self._handle_frame(frame)
        except ConnectionClosed as exc:
            logger.warning("Live transport connection lost: %s", exc)
        if self._closing or self._ws is not ws:
            return
        self._ws = None
        self._reader_task = None
        self._schedule_reconnect()

    def _handle_frame(self, frame: str | bytes) -> None:
        try:
            message = Message.from_frame(frame)
        except ProtocolError as exc:
            logger.warning("Dropping malformed frame from %s: %s", self._url, exc)
            return
        self._deliver(message)

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        if self._attempts >= self._reconnect.max_attempts:
            logger.error(
                "Live transport %s closed; reconnection budget (%d) exhausted",
                self._url,
                self._reconnect.max_attempts,
            )
            self._set_state(ConnectionState.CLOSED)
            return
        self._set_state(ConnectionState.RECONNECTING)
        self._reconnect_task = asyncio.create_task(
            self._reconnect_loop(), name="live_transport_reconnect"
        )

    async def _reconnect_loop(self) -> None:
        while self._attempts < self._reconnect.max_attempts:
            delay = self.backoff_delay(self._attempts)
            self._attempts += 1
            logger.info(
                "Reconnecting to %s in %.1fs (attempt %d/%d)",
                self._url,
                delay,
                self._attempts,
                self._reconnect.max_attempts,
            )
            await asyncio.sleep(delay)

            self._set_state(ConnectionState.CONNECTING)
            try:
                ws = await self._reopen()
            except TransportConnectionError as exc:
                logger.warning("Reconnection attempt %d failed: %s", self._attempts, exc)
                self._set_state(ConnectionState.RECONNECTING)
                continue
            self._reconnect_task = None
            self._on_open(ws)
            logger.info("Live transport reconnected: %s", self._url)
            return

        self._reconnect_task = None
        logger.error(
            "Giving up on %s after %d reconnection attempts",
            self._url,
            self._reconnect.max_attempts,
        )
        self._set_state(ConnectionState.CLOSED)

    async def _reopen(self) -> ClientConnection:
        """
        Open a socket for a reconnection attempt.

        The handshake runs in its own task.  If the caller is cancelled,
        that task is stopped and any socket it already produced is closed.
        """
        opening = asyncio.create_task(
            open_socket(self._url, self._open_timeout), name="live_transport_reopen"
        )
        try:
            return await asyncio.shield(opening)
        except asyncio.CancelledError:
            opening.cancel()
            await asyncio.wait({opening})
            if not opening.cancelled() and opening.exception() is None:
                with contextlib.suppress(ConnectionClosed, OSError):
                    await opening.result().close()
                logger.debug("Closed socket opened after reconnection was cancelled")
            raise

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()

    def healthcheck(self) -> dict[str, Any]:
        data = super().healthcheck()
        data["reconnect_attempts"] = self._attempts
        data["max_reconnect_attempts"] = self._reconnect.max_attempts
        return data
