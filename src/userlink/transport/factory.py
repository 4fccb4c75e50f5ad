"""
TransportFactory — probes the backend once and hands out one shared transport.

The factory is a context object: the composition root (the CLI, or a test)
builds one and passes it to whatever needs a transport.  Two factories
never share state.

Selection::

    UNINITIALIZED ──create_service()──► PROBING ──probe ok──► LIVE
          ▲                                 │
          │                                 └──probe failed──► SIMULATED
          └────────────────reset()───────────────────────────────┘

  - The first create_service() starts one probe task.  Every call that
    arrives while it runs awaits that same task.
  - Once settled, create_service() returns the cached transport without
    probing again, whatever URL it is given.
  - reset() empties the slot first, then disconnects the old transport.
    A probe still running at that moment settles for its existing awaiters
    but its transport is not cached.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from websockets.exceptions import ConnectionClosed

from userlink.core.config import UserlinkConfig
from userlink.core.exceptions import TransportConnectionError
from userlink.transport.base import Transport
from userlink.transport.live import LiveTransport, open_socket
from userlink.transport.simulated import SimulatedTransport

logger = logging.getLogger(__name__)

ProbeFunc = Callable[[str, float], Awaitable[None]]


class FactoryState(StrEnum):
    UNINITIALIZED = "uninitialized"
    PROBING = "probing"
    LIVE = "live"
    SIMULATED = "simulated"


async def probe_endpoint(url: str, timeout: float) -> None:
    """
    Open and immediately close a throwaway WebSocket to *url*.

    Raises TransportConnectionError if the endpoint does not complete the
    handshake within *timeout* seconds.
    """
    ws = await open_socket(url, timeout)
    with contextlib.suppress(ConnectionClosed, OSError):
        await ws.close()
    logger.debug("Probe of %s succeeded", url)


class TransportFactory:
    """Selects and caches the transport for one session."""

    def __init__(
        self,
        config: UserlinkConfig | None = None,
        probe: ProbeFunc = probe_endpoint,
    ) -> None:
        self._config = config or UserlinkConfig()
        self._probe = probe
        self._instance: Transport | None = None
        self._simulated: bool | None = None
        self._pending: asyncio.Task[Transport] | None = None
        self._generation = 0
        self.probes_started = 0

    @property
    def state(self) -> FactoryState:
        if self._instance is not None:
            return FactoryState.SIMULATED if self._simulated else FactoryState.LIVE
        if self._pending is not None:
            return FactoryState.PROBING
        return FactoryState.UNINITIALIZED

    @property
    def transport(self) -> Transport | None:
        """The cached transport, or None."""
        return self._instance

    def is_simulated(self) -> bool | None:
        """True for a simulated transport, False for a live one, None before selection."""
        return self._simulated

    async def create_service(self, url: str | None = None) -> Transport:
        """
        Return the session's transport, probing the endpoint on first use.

        *url* defaults to ``transport.url`` from the configuration and is
        ignored once a transport is cached.
        """
        if self._instance is not None:
            return self._instance
        if self._pending is None:
            target = url or self._config.transport.url
            self._pending = asyncio.create_task(
                self._select(target, self._generation), name="transport_probe"
            )
        # Shielded so that one cancelled caller does not abort the shared probe
        return await asyncio.shield(self._pending)

    async def reset(self) -> None:
        """Disconnect the cached transport and clear the selection."""
        # Detach before awaiting: a create_service() that arrives during the
        # disconnect must start a fresh selection, not get the old instance.
        self._generation += 1
        self._pending = None
        instance, self._instance = self._instance, None
        self._simulated = None
        if instance is not None:
            await instance.disconnect()
            logger.info("Transport factory reset (%s transport released)", instance.kind)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def _select(self, url: str, generation: int) -> Transport:
        self.probes_started += 1
        try:
            transport, simulated = await self._build(url)
        finally:
            if generation == self._generation:
                self._pending = None

        if generation != self._generation:
            logger.info("Factory reset during probe; %s transport not cached", transport.kind)
            return transport

        self._instance = transport
        self._simulated = simulated
        if simulated:
            logger.warning("Using simulated transport; start the backend at %s for live mode", url)
        else:
            logger.info("Using live transport for %s", url)
        return transport

    async def _build(self, url: str) -> tuple[Transport, bool]:
        cfg = self._config.transport
        try:
            await self._probe(url, cfg.probe_timeout_seconds)
        except TransportConnectionError as exc:
            if not cfg.simulated_fallback:
                logger.error("Endpoint %s unavailable and simulated fallback is off: %s", url, exc)
                raise
            logger.warning("Endpoint %s unavailable: %s", url, exc)
            return SimulatedTransport(url, self._config.simulated), True

        live = LiveTransport(
            url,
            reconnect=self._config.reconnect,
            open_timeout=cfg.open_timeout_seconds,
        )
        return live, False

    def healthcheck(self) -> dict[str, Any]:
        return {
            "state": str(self.state),
            "simulated": self._simulated,
            "transport": self._instance.healthcheck() if self._instance else None,
        }
