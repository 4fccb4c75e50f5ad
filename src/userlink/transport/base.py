"""
Transport — abstract base class for all user-service transports.

A transport owns one duplex message channel and exposes:
  - connect()              — open the channel; returns the transport itself
  - send_message()         — write one {type, payload} envelope
  - add_message_listener() — subscribe a callback to inbound messages
  - messages()             — async iterator over inbound messages
  - disconnect()           — close the channel and release everything

Callers hold a Transport and never branch on the concrete class.

Listener model: one ordered collection of subscribers per transport.
Each inbound message is fanned out synchronously, in registration order,
inside the task that received it.  A listener that raises is logged and
skipped; the remaining listeners still run.

State machine (ConnectionState)::

    DISCONNECTED → CONNECTING
    CONNECTING   → OPEN | RECONNECTING | CLOSED
    OPEN         → RECONNECTING | CLOSED
    RECONNECTING → CONNECTING | CLOSED
    CLOSED       → CONNECTING
    (any)        → DISCONNECTED            via disconnect()

OPEN is only ever entered from CONNECTING.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from enum import StrEnum
from typing import Any

from userlink.core.exceptions import StateError
from userlink.transport.protocol import Message, SendResult

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Message], Any]


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


_ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {
            ConnectionState.OPEN,
            ConnectionState.RECONNECTING,
            ConnectionState.CLOSED,
            ConnectionState.DISCONNECTED,
        }
    ),
    ConnectionState.OPEN: frozenset(
        {
            ConnectionState.RECONNECTING,
            ConnectionState.CLOSED,
            ConnectionState.DISCONNECTED,
        }
    ),
    ConnectionState.RECONNECTING: frozenset(
        {
            ConnectionState.CONNECTING,
            ConnectionState.CLOSED,
            ConnectionState.DISCONNECTED,
        }
    ),
    ConnectionState.CLOSED: frozenset({ConnectionState.CONNECTING, ConnectionState.DISCONNECTED}),
}

# Inbound streams end when the transport enters one of these states
_TERMINAL_STATES = frozenset({ConnectionState.DISCONNECTED, ConnectionState.CLOSED})

_END_OF_STREAM = object()


class Subscription:
    """Handle for one listener registration."""

    def __init__(self, registry: ListenerRegistry, callback: MessageCallback) -> None:
        self._registry = registry
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        """Remove this registration. Safe to call more than once."""
        self._registry.discard(self)


class ListenerRegistry:
    """Ordered set of inbound-message subscribers for one transport."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def __len__(self) -> int:
        return len(self._subscriptions)

    def add(self, callback: MessageCallback) -> Subscription:
        sub = Subscription(self, callback)
        self._subscriptions.append(sub)
        return sub

    def discard(self, sub: Subscription) -> None:
        sub.active = False
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def remove_callback(self, callback: MessageCallback) -> bool:
        """Remove the earliest registration of *callback*. Returns False if absent."""
        for sub in self._subscriptions:
            if sub.callback == callback:
                self.discard(sub)
                return True
        return False

    def clear(self) -> None:
        for sub in self._subscriptions:
            sub.active = False
        self._subscriptions.clear()

    def dispatch(self, message: Message) -> None:
        for sub in list(self._subscriptions):
            # A listener earlier in the fan-out may have unsubscribed this one
            if not sub.active:
                continue
            try:
                sub.callback(message)
            except Exception:  # noqa: BLE001
                logger.exception("Message listener failed on %r", message.type)


class Transport(ABC):
    """Abstract base class for a user-service transport."""

    kind: str = "abstract"

    def __init__(self, url: str) -> None:
        self._url = url
        self._state = ConnectionState.DISCONNECTED
        self._listeners = ListenerRegistry()
        self._streams: set[asyncio.Queue[Any]] = set()

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def is_connected(self) -> bool:
        return self._state == ConnectionState.OPEN

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    async def connect(self) -> Transport:
        """
        Open the channel.

        Returns the transport once it is OPEN.  Raises
        TransportConnectionError if the channel cannot be opened, with
        reason ``cancelled`` when disconnect() runs before it opens.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Close the channel, cancel pending work and drop all listeners.

        Idempotent.  Once this returns no listener is invoked again.
        """

    # ------------------------------------------------------------------
    # Forward path
    # ------------------------------------------------------------------

    @abstractmethod
    async def send_message(self, msg_type: str, payload: Any) -> SendResult:
        """
        Send one envelope.

        Returns a failed SendResult carrying a StateError when the
        transport is not OPEN.  Messages are never queued.
        """

    # ------------------------------------------------------------------
    # Return path
    # ------------------------------------------------------------------

    def add_message_listener(self, callback: MessageCallback) -> Subscription:
        """Subscribe *callback* to inbound messages, after all current subscribers."""
        return self._listeners.add(callback)

    def remove_message_listener(self, callback: MessageCallback) -> None:
        self._listeners.remove_callback(callback)

    async def messages(self) -> AsyncIterator[Message]:
        """
        Iterate over inbound messages for the current connection.

        Ends when the transport is disconnected or gives up reconnecting.
        Call again after a fresh connect() to resume.  Closing the
        iterator unsubscribes it.
        """
        if self._state in _TERMINAL_STATES:
            return
        queue: asyncio.Queue[Any] = asyncio.Queue()
        sub = self._listeners.add(queue.put_nowait)
        self._streams.add(queue)
        try:
            while True:
                item = await queue.get()
                if item is _END_OF_STREAM:
                    return
                yield item
        finally:
            sub.unsubscribe()
            self._streams.discard(queue)

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _set_state(self, new: ConnectionState) -> None:
        old = self._state
        if new == old:
            return
        if new not in _ALLOWED_TRANSITIONS[old]:
            raise StateError(f"Illegal transport state transition {old} -> {new}")
        self._state = new
        logger.debug("%s transport %s: %s -> %s", self.kind, self._url, old, new)
        if new in _TERMINAL_STATES:
            self._end_streams()

    def _deliver(self, message: Message) -> None:
        self._listeners.dispatch(message)

    def _end_streams(self) -> None:
        for queue in self._streams:
            queue.put_nowait(_END_OF_STREAM)

    def _release_listeners(self) -> None:
        self._end_streams()
        self._listeners.clear()

    def _not_open(self, action: str) -> SendResult:
        err = StateError(f"Cannot {action}: {self.kind} transport is {self._state}")
        logger.warning("%s", err)
        return SendResult(ok=False, error=err)

    # ------------------------------------------------------------------
    # Health check
    # ------------------------------------------------------------------

    def healthcheck(self) -> dict[str, Any]:
        return {
            "transport": self.kind,
            "url": self._url,
            "state": str(self._state),
            "listeners": len(self._listeners),
        }
