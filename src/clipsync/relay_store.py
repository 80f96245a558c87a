#!/usr/bin/env python3
"""Bounded, ordered store of relayed updates.

Writers are serialized by a lock and assign strictly increasing ids. Every
write publishes a new immutable tuple, so readers never take the lock and
never observe a half-applied append or eviction.
"""

from __future__ import annotations

import logging
import threading

from clipsync.hashing import compute_fingerprint, fingerprint_prefix
from clipsync.models import ContentType, Update

logger = logging.getLogger(__name__)


class RelayStore:
    """FIFO history of at most max_items updates."""

    def __init__(self, max_items: int) -> None:
        if max_items <= 0:
            raise ValueError(f"max_items must be positive, got {max_items}")
        self._max_items = max_items
        self._lock = threading.Lock()
        self._items: tuple[Update, ...] = ()
        self._next_id = 1

    @property
    def max_items(self) -> int:
        return self._max_items

    def __len__(self) -> int:
        return len(self._items)

    def submit(
        self,
        payload: bytes,
        content_type: ContentType = ContentType.TEXT,
        source_id: str = "unknown",
    ) -> Update:
        """Append an update, evicting the oldest entries beyond capacity.

        Args:
            payload: Decoded content bytes.
            content_type: Kind of content.
            source_id: Submitting client.

        Returns:
            The stored update with its assigned id.
        """
        with self._lock:
            update = Update(
                id=self._next_id,
                source_id=source_id,
                fingerprint=compute_fingerprint(payload),
                payload=payload,
                content_type=content_type,
            )
            self._next_id += 1
            items = self._items + (update,)
            evicted = len(items) - self._max_items
            if evicted > 0:
                items = items[evicted:]
            self._items = items

        logger.debug(
            "Stored id=%d from %s (%d bytes, %s)",
            update.id, source_id, len(payload), fingerprint_prefix(update.fingerprint),
        )
        return update

    def latest(self) -> Update | None:
        """Return the newest update, or None when empty."""
        items = self._items
        return items[-1] if items else None

    def history(
        self,
        limit: int | None = None,
        offset: int = 0,
        source: str | None = None,
        content_type: ContentType | None = None,
        query: str | None = None,
        newest_first: bool = False,
    ) -> tuple[list[Update], int]:
        """Return a page of updates matching the given filters.

        Filters combine with AND. The text query matches text and HTML items
        whose decoded content contains it, ignoring case; image items never
        match a query.

        Args:
            limit: Maximum number of items, or None for all remaining.
            offset: Number of matching items to skip.
            source: Only items submitted by this source id.
            content_type: Only items of this kind.
            query: Substring to look for in textual content.
            newest_first: Order by descending id instead of ascending.

        Returns:
            The page and the number of items matching the filters.
        """
        items = self._items
        if source is not None or content_type is not None or query is not None:
            needle = query.casefold() if query is not None else None
            items = tuple(
                u for u in items
                if (source is None or u.source_id == source)
                and (content_type is None or u.content_type is content_type)
                and (needle is None or _contains_text(u, needle))
            )
        if newest_first:
            items = items[::-1]
        end = None if limit is None else offset + limit
        return list(items[offset:end]), len(items)

    def clear(self) -> int:
        """Remove every retained update and return how many were removed.

        Ids keep increasing across a clear, so clients that remember the last
        id they saw are not confused by reused ids.
        """
        with self._lock:
            removed = len(self._items)
            self._items = ()
        logger.info("Cleared %d stored items", removed)
        return removed

    def stats(self) -> dict:
        """Summarize the retained history."""
        items = self._items
        by_type: dict[str, int] = {}
        by_source: dict[str, int] = {}
        for u in items:
            by_type[u.content_type.value] = by_type.get(u.content_type.value, 0) + 1
            by_source[u.source_id] = by_source.get(u.source_id, 0) + 1
        return {
            "items_count": len(items),
            "max_items": self._max_items,
            "total_bytes": sum(len(u.payload) for u in items),
            "oldest_id": items[0].id if items else None,
            "newest_id": items[-1].id if items else None,
            "by_content_type": by_type,
            "by_source": by_source,
        }


def _contains_text(update: Update, needle: str) -> bool:
    if update.content_type is ContentType.IMAGE:
        return False
    return needle in update.payload.decode("utf-8", errors="replace").casefold()
