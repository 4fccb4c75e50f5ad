"""userlink exception hierarchy."""

from __future__ import annotations


class UserlinkError(Exception):
    """Base exception for all userlink errors."""


class ConfigError(UserlinkError):
    """Raised when the configuration is invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when an explicitly requested configuration file does not exist."""


class TransportError(UserlinkError):
    """Base class for transport failures."""


class TransportConnectionError(TransportError):
    """
    Raised when a probe or an open handshake fails.

    ``reason`` is one of ``unreachable``, ``timeout``, ``handshake``,
    ``invalid_url`` or ``cancelled`` so callers can tell a missing backend
    from a broken one.
    """

    def __init__(self, message: str, reason: str = "handshake") -> None:
        super().__init__(message)
        self.reason = reason

    @property
    def unreachable(self) -> bool:
        return self.reason in ("unreachable", "timeout")


class ProtocolError(TransportError):
    """Raised when an inbound frame is not a well-formed {type, payload} envelope."""


class StateError(TransportError):
    """Raised (or returned) when an operation is attempted in the wrong connection state."""
