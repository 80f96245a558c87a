#!/usr/bin/env python3
"""Synchronization state.

This module provides the SyncState dataclass owned by one SyncEngine. Only the
engine mutates it; diagnostic consumers read copies via SyncEngine.snapshot().
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime

from clipsync.hashing import HashState


class ConnectionState(str, enum.Enum):
    """Engine connection lifecycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SYNCING = "syncing"


@dataclass
class SyncState:
    """State for clipboard synchronization.

    Attributes:
        connection_state: Current lifecycle state.
        hash_state: Fingerprint tracking for loop prevention.
        reconnect_backoff: Delay in seconds before the next connect attempt.
        last_sync_at: When an update was last sent or applied.
        sent_count: Updates sent since start.
        applied_count: Remote updates written to the local clipboard.
        dropped_count: Remote updates dropped because the write failed.
        connect_attempts: Connect attempts since start.
    """

    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    hash_state: HashState = field(default_factory=HashState)
    reconnect_backoff: float = 0.0
    last_sync_at: datetime | None = None
    sent_count: int = 0
    applied_count: int = 0
    dropped_count: int = 0
    connect_attempts: int = 0

    @property
    def last_sent_fingerprint(self) -> str | None:
        return self.hash_state.last_sent_hash

    @property
    def last_applied_fingerprint(self) -> str | None:
        return self.hash_state.last_applied_hash
