#!/usr/bin/env python3
"""Clipboard accessor.

The accessor is the only component that touches the platform clipboard. It
binds to one backend selected at startup, serializes reads and writes, turns
raw backend output into fingerprinted ClipboardSnapshot values and filters
spurious single-byte reads some backends emit while the owner is busy.

The module handles:
- Probing backends in priority order (probe_backend)
- Reading snapshots and writing content (ClipboardAccessor)
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable

from clipsync.clipboard_backend import BackendKind, ClipboardBackend
from clipsync.errors import AccessError, FatalError
from clipsync.hashing import compute_fingerprint, fingerprint_prefix
from clipsync.models import ClipboardSnapshot, ContentType

logger = logging.getLogger(__name__)


def _make_x11() -> ClipboardBackend:
    if not os.environ.get("DISPLAY"):
        raise FatalError("DISPLAY environment variable is not set")
    from clipsync.clipboard_x11 import X11Backend

    return X11Backend(os.environ["DISPLAY"])


def _make_pyperclip() -> ClipboardBackend:
    from clipsync.clipboard_pyperclip import PyperclipBackend

    return PyperclipBackend()


BACKEND_FACTORIES: dict[BackendKind, Callable[[], ClipboardBackend]] = {
    BackendKind.X11: _make_x11,
    BackendKind.PYPERCLIP: _make_pyperclip,
}


def probe_backend(forced: str | None = None) -> ClipboardBackend:
    """Bind to the first usable clipboard backend.

    Args:
        forced: Backend name to use instead of probing, or None.

    Returns:
        The constructed backend.

    Raises:
        FatalError: If no backend (or the forced one) is usable.
    """
    if forced is not None:
        try:
            kinds = [BackendKind(forced)]
        except ValueError:
            raise FatalError(f"Unknown clipboard backend: {forced}") from None
    else:
        kinds = list(BACKEND_FACTORIES)

    failures: list[str] = []
    for kind in kinds:
        try:
            backend = BACKEND_FACTORIES[kind]()
        except (FatalError, ImportError) as e:
            logger.debug("Clipboard backend %s unavailable: %s", kind.value, e)
            failures.append(f"{kind.value}: {e}")
            continue
        logger.info("Using %s clipboard backend", kind.value)
        return backend

    raise FatalError("No usable clipboard backend (" + "; ".join(failures) + ")")


def is_spurious(content: bytes) -> bool:
    """Return True for single-byte non-alphanumeric reads.

    Some backends briefly report a lone newline or punctuation byte while the
    clipboard owner is changing. Such reads are never treated as content.
    """
    return len(content) == 1 and not content.isalnum()


class ClipboardAccessor:
    """Serialized read/write access to one clipboard backend."""

    def __init__(self, backend: ClipboardBackend) -> None:
        self._backend = backend
        self._lock = threading.Lock()
        self._closed = False

    @property
    def kind(self) -> BackendKind:
        return self._backend.kind

    def read(self) -> ClipboardSnapshot | None:
        """Read the clipboard.

        Returns:
            A snapshot, or None when the clipboard is empty or the read was
            spurious.

        Raises:
            AccessError: On backend failure.
        """
        with self._lock:
            if self._closed:
                raise AccessError("Clipboard accessor is closed")
            try:
                result = self._backend.read()
            except AccessError:
                raise
            except Exception as e:
                raise AccessError(f"Clipboard read failed: {e}") from e

        if result is None:
            return None
        content, content_type = result
        if not content:
            return None
        if is_spurious(content):
            logger.debug("Ignoring spurious single-byte read %r", content)
            return None
        return ClipboardSnapshot(
            content=content,
            content_type=content_type,
            fingerprint=compute_fingerprint(content),
        )

    def write(self, content: bytes, content_type: ContentType) -> None:
        """Replace clipboard content.

        Raises:
            AccessError: If the backend rejects the write.
        """
        with self._lock:
            if self._closed:
                raise AccessError("Clipboard accessor is closed")
            try:
                self._backend.write(content, content_type)
            except AccessError:
                raise
            except Exception as e:
                raise AccessError(f"Clipboard write failed: {e}") from e
        logger.debug(
            "Wrote %d bytes of %s (%s)",
            len(content), content_type.value, fingerprint_prefix(compute_fingerprint(content)),
        )

    def close(self) -> None:
        """Release the backend. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._backend.close()
