"""
userlink.transport — transports for the user-service WebSocket.

  Transport           abstract contract every transport implements
  LiveTransport       real WebSocket with bounded reconnection
  SimulatedTransport  offline stand-in used when the backend is unreachable
  TransportFactory    probes once, picks one of the above, caches it
"""

from __future__ import annotations

from userlink.transport.base import ConnectionState, Subscription, Transport
from userlink.transport.factory import FactoryState, TransportFactory, probe_endpoint
from userlink.transport.live import LiveTransport
from userlink.transport.protocol import Message, MessageType, SendResult
from userlink.transport.simulated import SimulatedTransport

__all__ = [
    "ConnectionState",
    "FactoryState",
    "LiveTransport",
    "Message",
    "MessageType",
    "SendResult",
    "SimulatedTransport",
    "Subscription",
    "Transport",
    "TransportFactory",
    "probe_endpoint",
]
