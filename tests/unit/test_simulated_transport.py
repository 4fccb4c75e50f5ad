"""
Unit tests for SimulatedTransport.

Covers:
  - connect passes through CONNECTING and succeeds unless disconnect() interrupts it
  - auth_request answered with success only for the configured pair
  - fan-out to every listener in registration order
  - sends rejected while not OPEN
  - disconnect cancels pending responses and is idempotent
"""

from __future__ import annotations

import asyncio

import pytest

from userlink.core.config import SimulatedConfig
from userlink.core.exceptions import StateError, TransportConnectionError
from userlink.transport.base import ConnectionState
from userlink.transport.protocol import Message, MessageType, auth_request
from userlink.transport.simulated import SimulatedTransport

URL = "ws://localhost:8081/ws/users"

FAST = SimulatedConfig(connect_latency_seconds=0.0, auth_latency_seconds=0.01)


async def _login(transport: SimulatedTransport, username: str, password: str) -> Message:
    responses: list[Message] = []
    transport.add_message_listener(responses.append)
    result = await transport.send_message(
        MessageType.AUTH_REQUEST, auth_request(username, password)
    )
    assert result.ok
    await asyncio.sleep(0.05)
    assert len(responses) == 1
    return responses[0]


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_passes_through_connecting(self) -> None:
        t = SimulatedTransport(URL, SimulatedConfig(connect_latency_seconds=0.05))
        task = asyncio.create_task(t.connect())
        await asyncio.sleep(0.01)
        assert t.state == ConnectionState.CONNECTING
        assert await task is t
        assert t.state == ConnectionState.OPEN
        assert t.is_connected()

    @pytest.mark.asyncio
    async def test_connect_when_open_is_noop(self) -> None:
        t = await SimulatedTransport(URL, FAST).connect()
        assert await t.connect() is t
        assert t.is_connected()

    @pytest.mark.asyncio
    async def test_disconnect_during_connect(self) -> None:
        t = SimulatedTransport(URL, SimulatedConfig(connect_latency_seconds=0.05))
        task = asyncio.create_task(t.connect())
        await asyncio.sleep(0.01)
        await t.disconnect()
        with pytest.raises(TransportConnectionError) as excinfo:
            await task
        assert excinfo.value.reason == "cancelled"
        assert t.state == ConnectionState.DISCONNECTED
        assert t.pending_responses == 0


class TestAuth:
    @pytest.mark.asyncio
    async def test_valid_credentials(self) -> None:
        t = await SimulatedTransport(URL, FAST).connect()
        response = await _login(t, "admin", "password")
        assert response.type == "auth_response"
        assert response.payload["success"] is True
        assert response.payload["message"] == "Login successful"
        assert response.payload["token"]
        assert response.payload["user"] == {"id": 1, "username": "admin", "role": "admin"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "username,password",
        [("admin", "wrong"), ("root", "password"), ("", ""), ("ädmin", "pässword")],
    )
    async def test_invalid_credentials(self, username: str, password: str) -> None:
        t = await SimulatedTransport(URL, FAST).connect()
        response = await _login(t, username, password)
        assert response.payload["success"] is False
        assert response.payload["message"] == "Invalid credentials"
        assert response.payload["token"] is None
        assert response.payload["user"] is None

    @pytest.mark.asyncio
    async def test_non_object_payload_is_rejected(self) -> None:
        t = await SimulatedTransport(URL, FAST).connect()
        responses: list[Message] = []
        t.add_message_listener(responses.append)
        await t.send_message("auth_request", "admin:password")
        await asyncio.sleep(0.05)
        assert responses[0].payload["success"] is False

    @pytest.mark.asyncio
    async def test_tokens_are_fresh(self) -> None:
        t = await SimulatedTransport(URL, FAST).connect()
        first = await _login(t, "admin", "password")
        t2 = await SimulatedTransport(URL, FAST).connect()
        second = await _login(t2, "admin", "password")
        assert first.payload["token"] != second.payload["token"]

    @pytest.mark.asyncio
    async def test_configured_credentials(self) -> None:
        cfg = SimulatedConfig(
            connect_latency_seconds=0.0,
            auth_latency_seconds=0.0,
            username="ops",
            password="s3cret",
            role="operator",
        )
        t = await SimulatedTransport(URL, cfg).connect()
        assert (await _login(t, "admin", "password")).payload["success"] is False
        ok = await _login(t, "ops", "s3cret")
        assert ok.payload["success"] is True

    @pytest.mark.asyncio
    async def test_response_waits_for_processing_delay(self) -> None:
        cfg = SimulatedConfig(connect_latency_seconds=0.0, auth_latency_seconds=0.1)
        t = await SimulatedTransport(URL, cfg).connect()
        responses: list[Message] = []
        t.add_message_listener(responses.append)
        await t.send_message("auth_request", auth_request("admin", "password"))
        await asyncio.sleep(0.02)
        assert responses == []
        assert t.pending_responses == 1
        await asyncio.sleep(0.15)
        assert len(responses) == 1

    @pytest.mark.asyncio
    async def test_unknown_type_gets_no_response(self) -> None:
        t = await SimulatedTransport(URL, FAST).connect()
        responses: list[Message] = []
        t.add_message_listener(responses.append)
        result = await t.send_message("user_update", {"id": 1})
        assert result.ok
        await asyncio.sleep(0.05)
        assert responses == []


class TestFanOut:
    @pytest.mark.asyncio
    async def test_all_listeners_in_registration_order(self) -> None:
        t = await SimulatedTransport(URL, FAST).connect()
        order: list[str] = []
        t.add_message_listener(lambda m: order.append("first"))
        t.add_message_listener(lambda m: order.append("second"))
        t.add_message_listener(lambda m: order.append("third"))
        await t.send_message("auth_request", auth_request("admin", "password"))
        await asyncio.sleep(0.05)
        assert order == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_removed_listener_not_called(self) -> None:
        t = await SimulatedTransport(URL, FAST).connect()
        kept: list[Message] = []
        dropped: list[Message] = []
        t.add_message_listener(kept.append)
        t.add_message_listener(dropped.append)
        t.remove_message_listener(dropped.append)
        await t.send_message("auth_request", auth_request("admin", "password"))
        await asyncio.sleep(0.05)
        assert len(kept) == 1
        assert dropped == []

    @pytest.mark.asyncio
    async def test_user_list_pushed_after_connect(self) -> None:
        cfg = SimulatedConfig(
            connect_latency_seconds=0.0, auth_latency_seconds=0.01, push_user_list=True
        )
        t = SimulatedTransport(URL, cfg)
        received: list[Message] = []
        t.add_message_listener(received.append)
        await t.connect()
        await asyncio.sleep(0.05)
        assert [m.type for m in received] == ["user_list"]
        users = received[0].payload["users"]
        assert users[0]["username"] == "admin"
        assert users[0]["active"] is True


class TestSendWhileClosed:
    @pytest.mark.asyncio
    async def test_send_before_connect(self) -> None:
        t = SimulatedTransport(URL, FAST)
        result = await t.send_message("auth_request", auth_request("admin", "password"))
        assert result.ok is False
        assert isinstance(result.error, StateError)
        assert t.pending_responses == 0

    @pytest.mark.asyncio
    async def test_send_after_disconnect(self) -> None:
        t = await SimulatedTransport(URL, FAST).connect()
        await t.disconnect()
        result = await t.send_message("auth_request", auth_request("admin", "password"))
        assert not result


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_pending_response_never_fires(self) -> None:
        cfg = SimulatedConfig(connect_latency_seconds=0.0, auth_latency_seconds=0.05)
        t = await SimulatedTransport(URL, cfg).connect()
        responses: list[Message] = []
        t.add_message_listener(responses.append)
        await t.send_message("auth_request", auth_request("admin", "password"))
        await t.disconnect()
        assert t.pending_responses == 0
        await asyncio.sleep(0.1)
        assert responses == []

    @pytest.mark.asyncio
    async def test_disconnect_twice(self) -> None:
        t = await SimulatedTransport(URL, FAST).connect()
        t.add_message_listener(lambda m: None)
        await t.disconnect()
        await t.disconnect()
        assert t.listener_count == 0
        assert t.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_reconnect_after_disconnect(self) -> None:
        t = await SimulatedTransport(URL, FAST).connect()
        await t.disconnect()
        await t.connect()
        response = await _login(t, "admin", "password")
        assert response.payload["success"] is True

    def test_healthcheck(self) -> None:
        health = SimulatedTransport(URL, FAST).healthcheck()
        assert health["transport"] == "simulated"
        assert health["state"] == "disconnected"
        assert health["pending_responses"] == 0
