"""
Wire protocol for the user-service WebSocket.

Every frame is a UTF-8 JSON text frame carrying one envelope::

    {"type": "<message type>", "payload": <any JSON value>}

Known types:
  - auth_request   client → server  {username, password}
  - auth_response  server → client  {success, message?, token?, user?}
  - user_list      server → client  {users: [...]}, pushed on connect

Unknown types pass through untouched: the transport forwards, callers
interpret.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from userlink.core.exceptions import ProtocolError


class MessageType(StrEnum):
    """Message types used by the user service."""

    AUTH_REQUEST = "auth_request"
    AUTH_RESPONSE = "auth_response"
    USER_LIST = "user_list"


@dataclass(frozen=True)
class Message:
    """A single envelope. Immutable once constructed."""

    type: str
    payload: Any = None

    def to_json(self) -> str:
        return json.dumps({"type": self.type, "payload": self.payload})

    @classmethod
    def from_frame(cls, frame: str | bytes) -> Message:
        """
        Decode an inbound frame.

        Raises ProtocolError if the frame is not JSON, is not an object, or
        lacks a string ``type`` or a ``payload`` key.
        """
        if isinstance(frame, bytes):
            try:
                frame = frame.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ProtocolError(f"Frame is not UTF-8: {exc}") from exc
        try:
            data = json.loads(frame)
        except json.JSONDecodeError as exc:
            raise ProtocolError(f"Frame is not JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise ProtocolError(f"Frame is not an object: {type(data).__name__}")
        msg_type = data.get("type")
        if not isinstance(msg_type, str) or not msg_type:
            raise ProtocolError("Frame has no string 'type'")
        if "payload" not in data:
            raise ProtocolError(f"Frame of type {msg_type!r} has no 'payload'")
        return cls(type=msg_type, payload=data["payload"])


@dataclass(frozen=True)
class SendResult:
    """Outcome of a send. ``error`` is set iff ``ok`` is False."""

    ok: bool
    error: Exception | None = None

    def __bool__(self) -> bool:
        return self.ok


SENT = SendResult(ok=True)


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def auth_request(username: str, password: str) -> dict[str, str]:
    return {"username": username, "password": password}


def auth_response(
    success: bool,
    message: str,
    token: str | None = None,
    user: dict[str, Any] | None = None,
) -> Message:
    return Message(
        type=MessageType.AUTH_RESPONSE.value,
        payload={
            "success": success,
            "message": message,
            "token": token,
            "user": user,
        },
    )
