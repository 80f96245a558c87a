#!/usr/bin/env python3
"""Tests for the single-slot latest value handoff."""
import asyncio

import pytest

from clipsync.slot import LatestSlot


@pytest.mark.asyncio
async def test_put_overwrites_and_take_empties() -> None:
    """Test put replaces any unconsumed value and take clears the slot."""
    slot: LatestSlot[int] = LatestSlot()
    slot.put(1)
    slot.put(2)

    assert slot.peek() == 2
    assert slot.take() == 2
    assert slot.take() is None


@pytest.mark.asyncio
async def test_wait_returns_after_put() -> None:
    """Test wait wakes up when a value arrives."""
    slot: LatestSlot[str] = LatestSlot()
    waiter = asyncio.create_task(slot.wait())
    await asyncio.sleep(0)
    assert not waiter.done()

    slot.put("ready")
    await asyncio.wait_for(waiter, timeout=1.0)


@pytest.mark.asyncio
async def test_wait_blocks_after_clear() -> None:
    """Test a cleared slot does not satisfy wait."""
    slot: LatestSlot[str] = LatestSlot()
    slot.put("value")
    slot.clear()

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(slot.wait(), timeout=0.05)
