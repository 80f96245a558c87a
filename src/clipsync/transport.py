#!/usr/bin/env python3
"""Transport channel interface.

A transport is the engine's only view of the network. Two implementations
conform to it: the duplex stream transports (transport_stream) and the relay
store client (transport_relay).

Lifecycle per session: connect(), then run() concurrently with the engine's
tick loop until run() raises TransportError, then close().
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from clipsync.errors import TransportError
from clipsync.models import Update

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Abstract network link carrying Updates to and from a peer."""

    def __init__(self, heartbeat_interval: float, heartbeat_max_failures: int) -> None:
        self._heartbeat_interval = heartbeat_interval
        self._heartbeat_max_failures = heartbeat_max_failures

    @abstractmethod
    async def connect(self) -> None:
        """Establish the link.

        Raises:
            TransportError: If the peer cannot be reached.
        """

    @abstractmethod
    async def send(self, update: Update) -> None:
        """Deliver an update.

        Raises:
            TransportError: On link failure.
            ProtocolError: If the peer rejects this update only.
        """

    @abstractmethod
    async def try_recv(self) -> Update | None:
        """Return a new inbound update, or None if there is none."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Return True while a session is established."""

    @abstractmethod
    async def probe(self) -> None:
        """Run one liveness probe.

        Raises:
            TransportError: If the probe failed.
        """

    async def acknowledge(self, update: Update, applied: bool) -> None:
        """Tell the peer whether an inbound update was applied."""

    async def wait_inbound(self) -> None:
        """Wait until try_recv() may return an update.

        Request/response transports have nothing to wait on and never return;
        callers bound the wait with their own timeout.
        """
        await asyncio.Event().wait()

    async def run(self) -> None:
        """Service the link until it fails.

        Raises:
            TransportError: When the link is lost or the heartbeat times out.
        """
        await self._heartbeat_loop()

    async def _heartbeat_loop(self) -> None:
        failures = 0
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                await self.probe()
            except TransportError as e:
                failures += 1
                logger.warning(
                    "Heartbeat failed (%d/%d): %s",
                    failures, self._heartbeat_max_failures, e,
                )
                if failures >= self._heartbeat_max_failures:
                    raise TransportError(
                        f"Heartbeat timed out after {failures} consecutive failures"
                    ) from e
            else:
                failures = 0

    @abstractmethod
    async def close(self) -> None:
        """End the current session. Safe to call when not connected."""

    async def shutdown(self) -> None:
        """Release every resource held by the transport."""
        await self.close()
