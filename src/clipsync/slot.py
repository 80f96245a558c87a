#!/usr/bin/env python3
"""Single-slot "latest value" handoff between asyncio tasks.

A producer overwrites the slot; a consumer takes whatever is there. Nothing
ever queues up, so a slow consumer only ever sees the newest value.
"""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class LatestSlot(Generic[T]):
    """Holds at most one value; put() replaces any value not yet taken."""

    def __init__(self) -> None:
        self._value: T | None = None
        self._ready = asyncio.Event()

    def put(self, value: T) -> None:
        self._value = value
        self._ready.set()

    def take(self) -> T | None:
        """Remove and return the held value, or None if empty."""
        value, self._value = self._value, None
        self._ready.clear()
        return value

    def peek(self) -> T | None:
        return self._value

    def clear(self) -> None:
        self.take()

    async def wait(self) -> None:
        """Wait until a value is available."""
        await self._ready.wait()
