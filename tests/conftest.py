#!/usr/bin/env python3
"""Pytest fixtures for clipsync tests.

Provides an in-memory clipboard backend, an in-memory transport that can be
linked to a second one to form a peer pair, and small config helpers.
"""

import asyncio

import pytest

from clipsync.clipboard import ClipboardAccessor
from clipsync.clipboard_backend import BackendKind, ClipboardBackend
from clipsync.config import SyncConfig
from clipsync.errors import AccessError, TransportError
from clipsync.hashing import HashState, compute_fingerprint
from clipsync.models import ContentType, Update
from clipsync.monitor import ChangeMonitor
from clipsync.slot import LatestSlot
from clipsync.transport import Transport


class FakeBackend(ClipboardBackend):
    """In-memory clipboard."""

    kind = BackendKind.PYPERCLIP

    def __init__(self, content: bytes = b"", content_type: ContentType = ContentType.TEXT) -> None:
        self.content = content
        self.content_type = content_type
        self.writes: list[bytes] = []
        self.fail_reads = False
        self.fail_writes = False
        self.closed = False

    def read(self) -> tuple[bytes, ContentType] | None:
        if self.fail_reads:
            raise AccessError("backend unavailable")
        if not self.content:
            return None
        return self.content, self.content_type

    def write(self, content: bytes, content_type: ContentType) -> None:
        if self.fail_writes:
            raise AccessError("write rejected")
        self.content = content
        self.content_type = content_type
        self.writes.append(content)

    def close(self) -> None:
        self.closed = True


class FakeTransport(Transport):
    """In-memory transport; send() delivers to the linked peer, if any."""

    def __init__(self, source_id: str = "fake") -> None:
        super().__init__(heartbeat_interval=3600.0, heartbeat_max_failures=3)
        self.source_id = source_id
        self.peer: "FakeTransport | None" = None
        self.inbound: LatestSlot[Update] = LatestSlot()
        self.sent: list[Update] = []
        self.acks: list[tuple[str, bool]] = []
        self.connect_failures = 0
        self.connect_calls = 0
        self.shutdown_calls = 0
        self.connected = False
        self.lost = asyncio.Event()

    def deliver(self, payload: bytes, content_type: ContentType = ContentType.TEXT) -> Update:
        """Queue an inbound update as if a peer had sent it."""
        update = Update(
            source_id="peer",
            fingerprint=compute_fingerprint(payload),
            payload=payload,
            content_type=content_type,
        )
        self.inbound.put(update)
        return update

    def drop(self) -> None:
        """Simulate the link going down."""
        self.connected = False
        self.lost.set()

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_failures > 0:
            self.connect_failures -= 1
            raise TransportError("connection refused")
        self.connected = True
        self.lost = asyncio.Event()

    async def send(self, update: Update) -> None:
        if not self.connected:
            raise TransportError("not connected")
        self.sent.append(update)
        if self.peer is not None:
            self.peer.inbound.put(update)

    async def try_recv(self) -> Update | None:
        return self.inbound.take()

    async def wait_inbound(self) -> None:
        await self.inbound.wait()

    async def acknowledge(self, update: Update, applied: bool) -> None:
        self.acks.append((update.fingerprint, applied))

    def is_connected(self) -> bool:
        return self.connected

    async def probe(self) -> None:
        if not self.connected:
            raise TransportError("not connected")

    async def run(self) -> None:
        await self.lost.wait()
        raise TransportError("link lost")

    async def close(self) -> None:
        self.connected = False

    async def shutdown(self) -> None:
        self.shutdown_calls += 1
        await self.close()


async def wait_until(predicate, timeout: float = 3.0) -> None:
    """Poll predicate until it holds, failing the test after timeout."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def hash_state() -> HashState:
    """Create a fresh HashState instance for testing."""
    return HashState()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def accessor(fake_backend: FakeBackend) -> ClipboardAccessor:
    return ClipboardAccessor(fake_backend)


@pytest.fixture
def fast_config() -> SyncConfig:
    """Config with short intervals and no reconnect delay."""
    return SyncConfig(
        poll_interval_ms=10,
        reconnect_delay_ms=0,
        max_reconnect_delay_ms=0,
        max_content_size_bytes=1024,
        source_id="test-host",
    )


@pytest.fixture
def monitor(accessor: ClipboardAccessor, fast_config: SyncConfig) -> ChangeMonitor:
    return ChangeMonitor(accessor, fast_config.poll_interval, fast_config.max_content_size_bytes)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()
