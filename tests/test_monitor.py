#!/usr/bin/env python3
"""Tests for the clipboard change monitor."""
import asyncio

import pytest

from clipsync.hashing import compute_fingerprint
from clipsync.monitor import ChangeMonitor

from conftest import wait_until


@pytest.mark.asyncio
async def test_prime_adopts_current_content_without_emitting(fake_backend, monitor) -> None:
    """Test content present at startup is recorded but not emitted."""
    fake_backend.content = b"already there"

    await monitor.prime()

    assert monitor.last_seen_fingerprint == compute_fingerprint(b"already there")
    assert monitor.changes.peek() is None
    assert await monitor.poll_once() is None


@pytest.mark.asyncio
async def test_poll_emits_on_transition(fake_backend, monitor) -> None:
    """Test one change is emitted per fingerprint transition."""
    fake_backend.content = b"first"

    snapshot = await monitor.poll_once()

    assert snapshot.content == b"first"
    assert monitor.changes.take() is snapshot
    assert await monitor.poll_once() is None
    assert monitor.changes.peek() is None


@pytest.mark.asyncio
async def test_later_poll_overwrites_unconsumed_change(fake_backend, monitor) -> None:
    """Test only the most recent change is kept when nobody consumes."""
    fake_backend.content = b"v1"
    await monitor.poll_once()
    fake_backend.content = b"v2"
    await monitor.poll_once()

    assert monitor.changes.take().content == b"v2"
    assert monitor.changes.take() is None


@pytest.mark.asyncio
async def test_read_failure_is_no_change(fake_backend, monitor) -> None:
    """Test a backend failure on read is treated as no change."""
    fake_backend.fail_reads = True

    assert await monitor.poll_once() is None
    assert monitor.last_seen_fingerprint is None


@pytest.mark.asyncio
async def test_spurious_read_is_ignored(fake_backend, monitor) -> None:
    """Test a lone newline never becomes a change."""
    fake_backend.content = b"\n"

    assert await monitor.poll_once() is None


@pytest.mark.asyncio
async def test_oversize_content_is_skipped(fake_backend, monitor) -> None:
    """Test content over the size limit is not emitted, nor retried."""
    fake_backend.content = b"x" * 2048

    assert await monitor.poll_once() is None
    assert monitor.changes.peek() is None
    assert monitor.last_seen_fingerprint == compute_fingerprint(b"x" * 2048)


@pytest.mark.asyncio
async def test_mark_applied_suppresses_next_poll(fake_backend, monitor) -> None:
    """Test content written by the engine is not seen as a local change."""
    fake_backend.content = b"remote"
    monitor.mark_applied(compute_fingerprint(b"remote"))

    assert await monitor.poll_once() is None


@pytest.mark.asyncio
async def test_read_racing_with_remote_write_is_discarded(fake_backend, monitor) -> None:
    """Test a read overlapping mark_applied is dropped."""
    original_read = fake_backend.read

    def read_then_apply():
        result = original_read()
        monitor.mark_applied("0" * 64)
        return result

    fake_backend.read = read_then_apply
    fake_backend.content = b"stale"

    assert await monitor.poll_once() is None
    assert monitor.changes.peek() is None


@pytest.mark.asyncio
async def test_run_polls_until_cancelled(accessor, fake_backend) -> None:
    """Test the poll loop keeps emitting changes."""
    monitor = ChangeMonitor(accessor, poll_interval=0.01, max_content_size=1024)
    task = asyncio.create_task(monitor.run())
    try:
        fake_backend.content = b"one"
        await wait_until(lambda: monitor.changes.peek() is not None)
        assert monitor.changes.take().content == b"one"
        fake_backend.content = b"two"
        await wait_until(lambda: monitor.changes.peek() is not None)
        assert monitor.changes.take().content == b"two"
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
