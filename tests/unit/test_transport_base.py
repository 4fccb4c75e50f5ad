"""
Unit tests for the Transport base class.

Covers:
  - Listener fan-out order, unsubscribe, and failing listeners
  - Allowed and illegal state transitions
  - messages() streams: delivery order, end on disconnect, restart
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any

import pytest

from userlink.core.exceptions import StateError
from userlink.transport.base import ConnectionState, ListenerRegistry, Transport
from userlink.transport.protocol import SENT, Message, SendResult


class LoopbackTransport(Transport):
    """Echoes every sent message back to its own listeners."""

    kind = "loopback"

    async def connect(self) -> LoopbackTransport:
        self._set_state(ConnectionState.CONNECTING)
        self._set_state(ConnectionState.OPEN)
        return self

    async def disconnect(self) -> None:
        self._set_state(ConnectionState.DISCONNECTED)
        self._release_listeners()

    async def send_message(self, msg_type: str, payload: Any) -> SendResult:
        if not self.is_connected():
            return self._not_open(f"send {msg_type!r}")
        self._deliver(Message(type=msg_type, payload=payload))
        return SENT


# ---------------------------------------------------------------------------
# ListenerRegistry
# ---------------------------------------------------------------------------


class TestListenerRegistry:
    def test_dispatch_in_registration_order(self) -> None:
        registry = ListenerRegistry()
        calls: list[str] = []
        registry.add(lambda m: calls.append("a"))
        registry.add(lambda m: calls.append("b"))
        registry.add(lambda m: calls.append("c"))
        registry.dispatch(Message(type="t"))
        assert calls == ["a", "b", "c"]

    def test_unsubscribe_is_idempotent(self) -> None:
        registry = ListenerRegistry()
        calls: list[Message] = []
        sub = registry.add(calls.append)
        sub.unsubscribe()
        sub.unsubscribe()
        registry.dispatch(Message(type="t"))
        assert calls == []
        assert len(registry) == 0

    def test_same_callback_twice_removed_once(self) -> None:
        registry = ListenerRegistry()
        calls: list[Message] = []
        registry.add(calls.append)
        registry.add(calls.append)
        assert registry.remove_callback(calls.append) is True
        registry.dispatch(Message(type="t"))
        assert len(calls) == 1

    def test_remove_unknown_callback(self) -> None:
        assert ListenerRegistry().remove_callback(print) is False

    def test_failing_listener_does_not_stop_fanout(self) -> None:
        registry = ListenerRegistry()
        calls: list[str] = []

        def boom(message: Message) -> None:
            raise RuntimeError("listener bug")

        registry.add(boom)
        registry.add(lambda m: calls.append("after"))
        registry.dispatch(Message(type="t"))
        assert calls == ["after"]

    def test_listener_unsubscribed_mid_fanout_is_skipped(self) -> None:
        registry = ListenerRegistry()
        calls: list[str] = []
        second = None

        def first(message: Message) -> None:
            calls.append("first")
            second.unsubscribe()

        registry.add(first)
        second = registry.add(lambda m: calls.append("second"))
        registry.dispatch(Message(type="t"))
        assert calls == ["first"]


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class TestStateMachine:
    def test_starts_disconnected(self) -> None:
        t = LoopbackTransport("ws://x/ws")
        assert t.state == ConnectionState.DISCONNECTED
        assert t.is_connected() is False

    def test_cannot_skip_connecting(self) -> None:
        t = LoopbackTransport("ws://x/ws")
        with pytest.raises(StateError):
            t._set_state(ConnectionState.OPEN)
        assert t.state == ConnectionState.DISCONNECTED

    def test_closed_only_reopens_via_connecting(self) -> None:
        t = LoopbackTransport("ws://x/ws")
        t._set_state(ConnectionState.CONNECTING)
        t._set_state(ConnectionState.CLOSED)
        with pytest.raises(StateError):
            t._set_state(ConnectionState.OPEN)
        t._set_state(ConnectionState.CONNECTING)
        t._set_state(ConnectionState.OPEN)
        assert t.is_connected()

    def test_same_state_is_noop(self) -> None:
        t = LoopbackTransport("ws://x/ws")
        t._set_state(ConnectionState.DISCONNECTED)
        assert t.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_send_when_not_open_returns_state_error(self) -> None:
        t = LoopbackTransport("ws://x/ws")
        result = await t.send_message("auth_request", {})
        assert result.ok is False
        assert isinstance(result.error, StateError)


# ---------------------------------------------------------------------------
# messages() streams
# ---------------------------------------------------------------------------


class TestMessageStream:
    @pytest.mark.asyncio
    async def test_stream_yields_in_order_and_ends_on_disconnect(self) -> None:
        t = await LoopbackTransport("ws://x/ws").connect()
        received: list[str] = []

        async def consume() -> None:
            async for message in t.messages():
                received.append(message.type)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        for name in ("one", "two", "three"):
            await t.send_message(name, None)
        await t.disconnect()
        await asyncio.wait_for(task, 1.0)
        assert received == ["one", "two", "three"]

    @pytest.mark.asyncio
    async def test_stream_on_disconnected_transport_is_empty(self) -> None:
        t = LoopbackTransport("ws://x/ws")
        assert [m async for m in t.messages()] == []

    @pytest.mark.asyncio
    async def test_stream_restarts_after_reconnect(self) -> None:
        t = await LoopbackTransport("ws://x/ws").connect()
        await t.disconnect()
        await t.connect()

        stream = t.messages()
        pending = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)
        await t.send_message("again", {"n": 1})
        message = await asyncio.wait_for(pending, 1.0)
        assert message == Message(type="again", payload={"n": 1})
        await stream.aclose()
        assert t.listener_count == 0

    @pytest.mark.asyncio
    async def test_closing_stream_unsubscribes(self) -> None:
        t = await LoopbackTransport("ws://x/ws").connect()
        async with contextlib.aclosing(t.messages()) as stream:
            pending = asyncio.ensure_future(stream.__anext__())
            await asyncio.sleep(0)
            assert t.listener_count == 1
            await t.send_message("x", None)
            await pending
        assert t.listener_count == 0
