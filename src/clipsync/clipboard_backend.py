#!/usr/bin/env python3
"""Clipboard backend capability interface.

A backend is one concrete way of reaching the platform clipboard. Exactly one
backend is selected at startup (see clipboard.probe_backend) and every later
read and write goes through it.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod

from clipsync.models import ContentType


class BackendKind(str, enum.Enum):
    """Tagged variant over the supported backends, in probe order."""

    X11 = "x11"
    PYPERCLIP = "pyperclip"


class ClipboardBackend(ABC):
    """Read and write the platform clipboard.

    Implementations raise AccessError on backend failures and return None from
    read() when the clipboard is empty or holds nothing readable.
    """

    kind: BackendKind

    @abstractmethod
    def read(self) -> tuple[bytes, ContentType] | None:
        """Return current content and its type, or None if empty."""

    @abstractmethod
    def write(self, content: bytes, content_type: ContentType) -> None:
        """Replace the clipboard content."""

    def close(self) -> None:
        """Release any handle held on the clipboard."""
