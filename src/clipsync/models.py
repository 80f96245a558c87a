#!/usr/bin/env python3
"""Clipboard data model.

ClipboardSnapshot is what one poll tick observed; Update is a fingerprinted
payload in transit (stream mode) or stored (relay mode).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class ContentType(str, enum.Enum):
    """Clipboard content kinds carried by clipsync."""

    TEXT = "text"
    IMAGE = "image"
    HTML = "html"

    @classmethod
    def parse(cls, value: str) -> ContentType:
        """Parse a wire name into a ContentType.

        Raises:
            ValueError: If the name is not one of text, image or html.
        """
        return cls(value.lower())


@dataclass(frozen=True)
class ClipboardSnapshot:
    """Clipboard content observed by one poll tick.

    Attributes:
        content: Exact content bytes.
        content_type: Kind of content.
        fingerprint: SHA-256 hex digest of content.
        captured_at: When the read completed.
    """

    content: bytes
    content_type: ContentType
    fingerprint: str
    captured_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class Update:
    """A fingerprinted clipboard payload.

    Attributes:
        source_id: Identifier of the machine that produced the content.
        fingerprint: SHA-256 hex digest of payload.
        payload: Raw (decoded) content bytes.
        content_type: Kind of content.
        timestamp: When the update was created or stored.
        id: Relay store id, None outside relay mode.
    """

    source_id: str
    fingerprint: str
    payload: bytes
    content_type: ContentType = ContentType.TEXT
    timestamp: datetime = field(default_factory=utc_now)
    id: int | None = None

    @classmethod
    def from_snapshot(cls, snapshot: ClipboardSnapshot, source_id: str) -> Update:
        return cls(
            source_id=source_id,
            fingerprint=snapshot.fingerprint,
            payload=snapshot.content,
            content_type=snapshot.content_type,
        )
