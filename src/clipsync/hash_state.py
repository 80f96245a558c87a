#!/usr/bin/env python3
"""
Hash state management for loop prevention.

When content received from a peer is written to the local clipboard, the next
poll observes it as a changed fingerprint. Without tracking, that observation
would be sent straight back, bouncing content between peers forever.

The hash state tracks two values:
- last_sent_hash: Prevents duplicate sends of unchanged content
- last_applied_hash: Prevents echo (sending back what we just applied)

An update is neither applied nor sent when its fingerprint equals either value.
"""
from dataclasses import dataclass


@dataclass
class HashState:
    """
    Track fingerprints for loop prevention.

    Attributes:
        last_sent_hash: Fingerprint of the last sent content, or None.
        last_applied_hash: Fingerprint of the last applied remote content, or None.
    """

    last_sent_hash: str | None = None
    last_applied_hash: str | None = None

    def is_known(self, fingerprint: str) -> bool:
        """Return True if fingerprint matches the last sent or last applied value."""
        return fingerprint in (self.last_sent_hash, self.last_applied_hash)

    def should_send(self, fingerprint: str) -> bool:
        """
        Check if local content should be sent.

        Returns False if fingerprint matches last_sent_hash (duplicate send)
        or last_applied_hash (echo of applied content).

        Args:
            fingerprint: SHA-256 hex digest of current clipboard content.

        Returns:
            True if content should be sent, False if duplicate or echo.
        """
        return not self.is_known(fingerprint)

    def should_apply(self, fingerprint: str) -> bool:
        """
        Check if remote content should be written to the local clipboard.

        Remote content equal to what we sent is our own content coming back;
        content equal to what we applied is already on the clipboard.

        Args:
            fingerprint: SHA-256 hex digest of received content.

        Returns:
            True if content should be applied.
        """
        return not self.is_known(fingerprint)

    def record_sent(self, fingerprint: str) -> None:
        """
        Record fingerprint of successfully sent content.

        Args:
            fingerprint: SHA-256 hex digest of sent content.
        """
        self.last_sent_hash = fingerprint

    def record_applied(self, fingerprint: str) -> None:
        """
        Record fingerprint of applied remote content.

        Must be recorded together with the monitor's last-seen fingerprint so
        the next poll does not treat the write as a local change.

        Args:
            fingerprint: SHA-256 hex digest of applied content.
        """
        self.last_applied_hash = fingerprint

    def clear(self) -> None:
        """Reset hash state to initial values."""
        self.last_sent_hash = None
        self.last_applied_hash = None
