#!/usr/bin/env python3
"""
SHA-256 fingerprinting and loop prevention state.

A fingerprint is the SHA-256 hex digest of the exact decoded content bytes.
It is used both for change detection in the poll loop and for suppressing
echoes between peers.

This module provides:
- compute_fingerprint(): SHA-256 hex digest of clipboard content
- fingerprint_prefix(): short form used in logs and ACK frames
- HashState: dataclass tracking last_sent_hash and last_applied_hash
"""
import hashlib

from clipsync.hash_state import HashState

__all__ = ["compute_fingerprint", "fingerprint_prefix", "HashState", "PREFIX_LENGTH"]

# Number of hex characters shown in logs and carried in ACK frames.
PREFIX_LENGTH: int = 8


def compute_fingerprint(data: bytes) -> str:
    """
    Compute SHA-256 fingerprint of clipboard content.

    Args:
        data: Raw clipboard content bytes to hash.

    Returns:
        Hexadecimal string representation of the SHA-256 digest.
    """
    return hashlib.sha256(data).hexdigest()


def fingerprint_prefix(fingerprint: str | None) -> str:
    """Return the short prefix of a fingerprint, or "-" when unset."""
    if not fingerprint:
        return "-"
    return fingerprint[:PREFIX_LENGTH]
