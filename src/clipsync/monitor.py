#!/usr/bin/env python3
"""Clipboard change monitor.

Polls the accessor at a fixed interval, fingerprints what it reads and emits
one LocalChange per fingerprint transition into a single-slot handoff. The
engine may overwrite the last-seen fingerprint after applying remote content
so the write is not mistaken for a local change.
"""

from __future__ import annotations

import asyncio
import logging

from clipsync.clipboard import ClipboardAccessor
from clipsync.errors import AccessError
from clipsync.hashing import fingerprint_prefix
from clipsync.models import ClipboardSnapshot
from clipsync.slot import LatestSlot

logger = logging.getLogger(__name__)


class ChangeMonitor:
    """Poll loop producing LocalChange snapshots.

    Attributes:
        changes: Slot holding the most recent unconsumed LocalChange.
    """

    def __init__(
        self,
        accessor: ClipboardAccessor,
        poll_interval: float,
        max_content_size: int,
    ) -> None:
        self._accessor = accessor
        self._poll_interval = poll_interval
        self._max_content_size = max_content_size
        self._last_seen: str | None = None
        # Bumped on every external overwrite; a read that started before the
        # bump may predate the write and is discarded.
        self._generation = 0
        self.changes: LatestSlot[ClipboardSnapshot] = LatestSlot()

    @property
    def last_seen_fingerprint(self) -> str | None:
        return self._last_seen

    def mark_applied(self, fingerprint: str) -> None:
        """Record content written by the engine as already seen."""
        self._last_seen = fingerprint
        self._generation += 1

    async def _read(self) -> ClipboardSnapshot | None:
        try:
            return await asyncio.to_thread(self._accessor.read)
        except AccessError as e:
            logger.debug("Clipboard read failed, treating as no change: %s", e)
            return None

    async def prime(self) -> None:
        """Adopt the current clipboard as last seen without emitting it."""
        snapshot = await self._read()
        if snapshot is not None:
            self._last_seen = snapshot.fingerprint
            logger.debug("Initial clipboard fingerprint %s", fingerprint_prefix(snapshot.fingerprint))

    async def poll_once(self) -> ClipboardSnapshot | None:
        """Run one poll tick.

        Returns:
            The emitted snapshot, or None when nothing changed.
        """
        generation = self._generation
        snapshot = await self._read()
        if generation != self._generation:
            logger.debug("Discarding read that raced with a remote write")
            return None
        if snapshot is None or snapshot.fingerprint == self._last_seen:
            return None

        self._last_seen = snapshot.fingerprint
        if len(snapshot.content) > self._max_content_size:
            logger.warning(
                "Clipboard content of %d bytes exceeds %d byte limit, skipping",
                len(snapshot.content), self._max_content_size,
            )
            return None

        logger.debug(
            "Local clipboard changed (%s, %d bytes, %s)",
            snapshot.content_type.value, len(snapshot.content),
            fingerprint_prefix(snapshot.fingerprint),
        )
        self.changes.put(snapshot)
        return snapshot

    async def run(self) -> None:
        """Poll until cancelled."""
        logger.debug("Polling clipboard every %.0f ms", self._poll_interval * 1000)
        while True:
            await self.poll_once()
            await asyncio.sleep(self._poll_interval)
