#!/usr/bin/env python3
"""Error taxonomy for clipsync.

Each class maps to one failure domain and one propagation rule:
- AccessError: clipboard backend failures. Read-side errors mean "no change";
  write-side errors drop the offending update.
- TransportError: link failures. Drives the reconnect state machine.
- ProtocolError: a single unparseable or oversize message. Only that message
  is discarded.
- FatalError: no usable clipboard backend at startup. Terminates the process.
"""


class ClipSyncError(Exception):
    """Base class for all clipsync errors."""


class AccessError(ClipSyncError):
    """Raised when the platform clipboard cannot be read or written."""


class TransportError(ClipSyncError, ConnectionError):
    """Raised when the network link fails (refused, timeout, closed)."""


class ProtocolError(ClipSyncError):
    """
    Raised for protocol-level errors.

    Raised when a frame cannot be parsed, carries invalid base64, or exceeds
    the configured content size limit.
    """


class FatalError(ClipSyncError):
    """Raised when startup cannot continue (no usable clipboard backend)."""


class ConfigError(ClipSyncError):
    """Raised when the configuration file or options hold invalid values."""
