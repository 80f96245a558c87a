#!/usr/bin/env python3
"""Lifecycle surface of the sync core.

SyncService wires the accessor, monitor, transport and engine for one
resolved SyncConfig and runs the three loops (clipboard poll, transport
read/heartbeat inside the engine session, engine tick) as asyncio tasks.
run_service() adds signal handling for the command line.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import suppress

from clipsync import defaults
from clipsync.clipboard import ClipboardAccessor, probe_backend
from clipsync.config import SyncConfig, SyncMode
from clipsync.errors import ConfigError
from clipsync.monitor import ChangeMonitor
from clipsync.sync_engine import SyncEngine
from clipsync.sync_state import SyncState
from clipsync.transport import Transport
from clipsync.transport_relay import RelayTransport
from clipsync.transport_stream import (
    StreamClientTransport,
    StreamServerTransport,
    parse_address,
)

logger = logging.getLogger(__name__)


def build_transport(config: SyncConfig) -> Transport:
    """Create the transport selected by config.mode.

    Raises:
        ConfigError: If peer_address does not fit the mode.
    """
    common = dict(
        max_content_size=config.max_content_size_bytes,
        heartbeat_interval=config.heartbeat_interval,
        heartbeat_max_failures=config.heartbeat_max_failures,
    )
    if config.mode is SyncMode.RELAY:
        url = config.peer_address
        if not url.startswith(("http://", "https://")):
            url = f"http://{url}"
        return RelayTransport(url, source_id=config.source_id, **common)

    try:
        host, port = parse_address(config.peer_address, defaults.STREAM_PORT)
    except ValueError as e:
        raise ConfigError(f"Invalid peer address {config.peer_address}: {e}") from e
    if config.mode is SyncMode.LISTEN:
        return StreamServerTransport(host, port, **common)
    return StreamClientTransport(host, port, **common)


class SyncService:
    """Start and stop one sync engine with its collaborators."""

    def __init__(self) -> None:
        self._accessor: ClipboardAccessor | None = None
        self._transport: Transport | None = None
        self._engine: SyncEngine | None = None
        self._tasks: list[asyncio.Task] = []
        self._stopped = False

    @property
    def engine(self) -> SyncEngine | None:
        return self._engine

    @property
    def state(self) -> SyncState | None:
        """Copy of the engine state, or None before start()."""
        return self._engine.snapshot() if self._engine is not None else None

    async def start(
        self,
        config: SyncConfig,
        accessor: ClipboardAccessor | None = None,
        transport: Transport | None = None,
    ) -> None:
        """Build the components and start their loops.

        Args:
            config: Resolved configuration.
            accessor: Accessor to use instead of probing a backend.
            transport: Transport to use instead of building one from config.

        Raises:
            FatalError: If no clipboard backend is usable.
            ConfigError: If the configuration does not describe a transport.
        """
        if self._tasks:
            raise RuntimeError("SyncService already started")
        self._stopped = False
        self._accessor = accessor or ClipboardAccessor(probe_backend(config.backend))
        self._transport = transport or build_transport(config)

        monitor = ChangeMonitor(
            self._accessor, config.poll_interval, config.max_content_size_bytes
        )
        # Content already on the clipboard at startup is not sent.
        await monitor.prime()

        self._engine = SyncEngine(config, self._accessor, monitor, self._transport)
        self._tasks = [
            asyncio.create_task(monitor.run(), name="clipsync-monitor"),
            asyncio.create_task(self._engine.run(), name="clipsync-engine"),
        ]
        logger.info(
            "Sync started (%s %s, %s backend, id %s)",
            config.mode.value, config.peer_address, self._accessor.kind.value,
            config.source_id,
        )

    async def wait(self) -> None:
        """Wait until a loop exits unexpectedly, re-raising its error."""
        if not self._tasks:
            return
        done, _ = await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled():
                task.result()

    async def stop(self) -> None:
        """Stop all loops and release resources. Safe to call repeatedly."""
        if self._stopped:
            return
        self._stopped = True

        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                try:
                    await task
                except Exception as e:
                    logger.debug("Task %s ended with %r during stop", task.get_name(), e)

        if self._transport is not None:
            await self._transport.shutdown()
        if self._accessor is not None:
            self._accessor.close()
        logger.info("Sync stopped")


async def run_service(config: SyncConfig) -> None:
    """Run sync until SIGINT or SIGTERM.

    Args:
        config: Resolved configuration.
    """
    service = SyncService()
    shutdown_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, shutdown_requested.set)
    loop.add_signal_handler(signal.SIGTERM, shutdown_requested.set)

    try:
        await service.start(config)
        waiter = asyncio.create_task(service.wait())
        shutdown = asyncio.create_task(shutdown_requested.wait())
        try:
            await asyncio.wait({waiter, shutdown}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            shutdown.cancel()
            waiter.cancel()
        if waiter.done() and not waiter.cancelled():
            waiter.result()
        logger.info("Shutdown requested")
    finally:
        await service.stop()
        loop.remove_signal_handler(signal.SIGINT)
        loop.remove_signal_handler(signal.SIGTERM)
