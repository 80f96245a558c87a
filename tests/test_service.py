#!/usr/bin/env python3
"""Tests for the service lifecycle and transport selection."""
import asyncio
import os
import signal
from unittest.mock import patch

import pytest

from clipsync.config import SyncConfig, SyncMode
from clipsync.errors import ConfigError, FatalError
from clipsync.service import SyncService, build_transport, run_service
from clipsync.sync_state import ConnectionState
from clipsync.transport_relay import RelayTransport
from clipsync.transport_stream import StreamClientTransport, StreamServerTransport

from conftest import wait_until


@pytest.mark.parametrize(
    "mode, address, expected",
    [
        (SyncMode.CONNECT, "10.0.0.2:9000", StreamClientTransport),
        (SyncMode.LISTEN, "0.0.0.0:9877", StreamServerTransport),
        (SyncMode.RELAY, "relay.lan:8080", RelayTransport),
    ],
)
def test_build_transport(mode, address, expected) -> None:
    config = SyncConfig(mode=mode, peer_address=address)

    assert isinstance(build_transport(config), expected)


def test_build_transport_rejects_bad_address() -> None:
    with pytest.raises(ConfigError):
        build_transport(SyncConfig(mode=SyncMode.CONNECT, peer_address="host:port"))


@pytest.mark.asyncio
async def test_start_runs_loops(fast_config, accessor, fake_backend, fake_transport) -> None:
    """Test start connects and a local change is sent."""
    fake_backend.content = b"at startup"
    service = SyncService()
    await service.start(fast_config, accessor=accessor, transport=fake_transport)
    try:
        await wait_until(lambda: service.state.connection_state is ConnectionState.SYNCING)
        fake_backend.content = b"changed"
        await wait_until(lambda: len(fake_transport.sent) == 1)

        assert fake_transport.sent[0].payload == b"changed"
    finally:
        await service.stop()


@pytest.mark.asyncio
async def test_stop_is_idempotent(fast_config, accessor, fake_backend, fake_transport) -> None:
    """Test stopping twice releases resources once."""
    service = SyncService()
    await service.start(fast_config, accessor=accessor, transport=fake_transport)

    await service.stop()
    await service.stop()

    assert fake_transport.shutdown_calls == 1
    assert fake_backend.closed


@pytest.mark.asyncio
async def test_stop_before_start_is_safe() -> None:
    await SyncService().stop()


@pytest.mark.asyncio
async def test_start_without_backend_is_fatal(fast_config) -> None:
    with patch("clipsync.service.probe_backend", side_effect=FatalError("no backend")):
        with pytest.raises(FatalError):
            await SyncService().start(fast_config)


@pytest.mark.asyncio
async def test_run_service_stops_on_signal(fast_config, accessor, fake_transport) -> None:
    """Test the shutdown event ends run_service and stops the service."""
    started = asyncio.Event()
    original_start = SyncService.start

    async def start(self, config):
        await original_start(self, config, accessor=accessor, transport=fake_transport)
        started.set()

    with patch.object(SyncService, "start", start):
        task = asyncio.create_task(run_service(fast_config))
        await asyncio.wait_for(started.wait(), timeout=2.0)
        os.kill(os.getpid(), signal.SIGTERM)
        await asyncio.wait_for(task, timeout=2.0)

    assert fake_transport.shutdown_calls == 1
