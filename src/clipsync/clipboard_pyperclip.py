#!/usr/bin/env python3
"""Text clipboard backend built on pyperclip.

pyperclip picks its platform mechanism (pbcopy/pbpaste on macOS, the Win32
API on Windows, wl-clipboard, xclip or xsel on Linux) once, when
determine_clipboard() runs at backend construction. Only text is supported;
html is written as its text source and images are rejected.
"""

from __future__ import annotations

import logging

import pyperclip

from clipsync.clipboard_backend import BackendKind, ClipboardBackend
from clipsync.errors import AccessError, FatalError
from clipsync.models import ContentType

logger = logging.getLogger(__name__)


class PyperclipBackend(ClipboardBackend):
    """Clipboard backend delegating to the mechanism pyperclip selects."""

    kind = BackendKind.PYPERCLIP

    def __init__(self) -> None:
        copy, paste = pyperclip.determine_clipboard()
        if not _is_usable(copy):
            raise FatalError("pyperclip found no clipboard mechanism")
        self._copy = copy
        self._paste = paste
        logger.debug("pyperclip mechanism: %s", getattr(copy, "__name__", copy))

    def read(self) -> tuple[bytes, ContentType] | None:
        try:
            text = self._paste()
        except pyperclip.PyperclipException as e:
            raise AccessError(f"pyperclip read failed: {e}") from e
        if not text:
            return None
        return text.encode("utf-8"), ContentType.TEXT

    def write(self, content: bytes, content_type: ContentType) -> None:
        if content_type is ContentType.IMAGE:
            raise AccessError("pyperclip backend cannot write images")
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise AccessError(f"Content is not valid UTF-8: {e}") from e
        try:
            self._copy(text)
        except pyperclip.PyperclipException as e:
            raise AccessError(f"pyperclip write failed: {e}") from e


def _is_usable(copy: object) -> bool:
    # pyperclip returns stub functions raising PyperclipException when no
    # mechanism exists; the stub class has a falsy __bool__.
    return bool(copy)
