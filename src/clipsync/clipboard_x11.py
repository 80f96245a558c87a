#!/usr/bin/env python3
"""X11 clipboard backend via python-xlib.

Reads the CLIPBOARD selection by negotiating TARGETS with the current owner
and converting to the best supported target. Writes by taking ownership of
CLIPBOARD with a hidden window and serving SelectionRequest events from a
dedicated thread until another client takes ownership or the backend closes.

Two display connections are used so the serving thread never competes with
reads for events on the same connection.
"""

from __future__ import annotations

import logging
import select
import threading
import time
from typing import TYPE_CHECKING

import Xlib.threaded  # noqa: F401  (makes Display connections thread-safe)
from Xlib import X, Xatom

from clipsync.clipboard_backend import BackendKind, ClipboardBackend
from clipsync.errors import AccessError, FatalError
from clipsync.models import ContentType

if TYPE_CHECKING:
    from Xlib.display import Display
    from Xlib.protocol.event import SelectionRequest
    from Xlib.xobject.drawable import Window

logger = logging.getLogger(__name__)

# Timeout in seconds for a selection conversion, so an unresponsive
# clipboard owner cannot hang the poll loop.
CLIPBOARD_TIMEOUT: float = 2.0

# How often the serving thread wakes up to check for shutdown.
SERVE_POLL_INTERVAL: float = 0.1

# Fraction of max_request_length used for a single change_property.
PROPERTY_SAFETY_MARGIN: float = 0.9

# Targets read, in preference order.
_READ_TARGETS: tuple[tuple[str, ContentType], ...] = (
    ("image/png", ContentType.IMAGE),
    ("UTF8_STRING", ContentType.TEXT),
    ("text/plain;charset=utf-8", ContentType.TEXT),
    ("STRING", ContentType.TEXT),
    ("text/html", ContentType.HTML),
)

# Targets offered when owning the selection.
_SERVE_TARGETS: dict[ContentType, tuple[str, ...]] = {
    ContentType.TEXT: ("UTF8_STRING", "text/plain;charset=utf-8", "STRING"),
    ContentType.HTML: ("text/html", "UTF8_STRING"),
    ContentType.IMAGE: ("image/png",),
}


def open_display(display_name: str | None) -> Display:
    """Open an X11 connection.

    Raises:
        FatalError: If the display cannot be opened.
    """
    from Xlib.display import Display as XDisplay

    try:
        return XDisplay(display_name)
    except Exception as e:
        raise FatalError(f"Failed to connect to X11 display: {e}") from e


def create_hidden_window(display: Display) -> Window:
    """Create a 1x1 unmapped window for clipboard ownership.

    X11 clipboard ownership and selection conversion both require a window.

    Args:
        display: The X11 display connection.

    Returns:
        A Window object.
    """
    screen = display.screen()
    return screen.root.create_window(
        0, 0, 1, 1, 0, screen.root_depth, event_mask=X.PropertyChangeMask,
    )


def get_max_property_size(display: Display) -> int:
    """Return the largest content served with a single change_property."""
    # max_request_length is in 4-byte units
    max_bytes = display.info.max_request_length * 4  # type: ignore[attr-defined]
    return int(max_bytes * PROPERTY_SAFETY_MARGIN)


def wait_for_selection_notify(display: Display, timeout: float):
    """Block until a SelectionNotify arrives or timeout expires.

    Other events on the reading connection are discarded; the reading window
    never owns a selection so it receives nothing it needs to answer.

    Returns:
        The SelectionNotify event, or None on timeout.
    """
    deadline = time.monotonic() + timeout
    while True:
        while display.pending_events() > 0:
            event = display.next_event()
            if event.type == X.SelectionNotify:
                return event
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        select.select([display], [], [], remaining)


class X11Backend(ClipboardBackend):
    """Clipboard backend speaking the X11 selection protocol."""

    kind = BackendKind.X11

    def __init__(self, display_name: str | None = None) -> None:
        self._reader = open_display(display_name)
        self._owner = open_display(display_name)
        self._reader_window = create_hidden_window(self._reader)
        self._owner_window = create_hidden_window(self._owner)
        self._clipboard_atom = self._reader.intern_atom("CLIPBOARD")
        self._property_atom = self._reader.intern_atom("CLIPSYNC_SEL")
        self._incr_atom = self._reader.intern_atom("INCR")

        self._lock = threading.Lock()
        self._served: tuple[bytes, ContentType] | None = None
        self._closed = threading.Event()
        self._thread = threading.Thread(
            target=self._serve_forever, name="clipsync-x11-owner", daemon=True,
        )
        self._thread.start()

    # Reading

    def read(self) -> tuple[bytes, ContentType] | None:
        owner = self._reader.get_selection_owner(self._clipboard_atom)
        if owner == X.NONE:
            return None
        if owner.id == self._owner_window.id:
            with self._lock:
                return self._served

        available = self._fetch_targets()
        for name, content_type in _READ_TARGETS:
            if available and name not in available:
                continue
            content = self._convert(self._reader.intern_atom(name))
            if content:
                return content, content_type
        return None

    def _fetch_targets(self) -> set[str]:
        targets_atom = self._reader.intern_atom("TARGETS")
        raw = self._convert(targets_atom, as_atoms=True)
        if not raw:
            return set()
        return {self._reader.get_atom_name(atom) for atom in raw}

    def _convert(self, target: int, as_atoms: bool = False):
        self._reader_window.convert_selection(
            self._clipboard_atom, target, self._property_atom, X.CurrentTime,
        )
        self._reader.flush()

        event = wait_for_selection_notify(self._reader, CLIPBOARD_TIMEOUT)
        if event is None:
            raise AccessError(f"Timed out after {CLIPBOARD_TIMEOUT}s waiting for selection")
        if event.property == X.NONE:
            return None

        prop = self._reader_window.get_full_property(self._property_atom, X.AnyPropertyType)
        self._reader_window.delete_property(self._property_atom)
        self._reader.flush()
        if prop is None:
            return None
        if prop.property_type == self._incr_atom:
            raise AccessError("Owner requested an INCR transfer, which is not supported")
        if as_atoms:
            return list(prop.value)
        data = prop.value
        if isinstance(data, str):
            return data.encode("utf-8")
        return bytes(data)

    # Writing

    def write(self, content: bytes, content_type: ContentType) -> None:
        if len(content) > get_max_property_size(self._owner):
            raise AccessError(
                f"Content of {len(content)} bytes exceeds the X11 property limit"
            )
        with self._lock:
            self._served = (content, content_type)
        self._owner_window.set_selection_owner(self._clipboard_atom, X.CurrentTime)
        self._owner.flush()

        owner = self._owner.get_selection_owner(self._clipboard_atom)
        if owner == X.NONE or owner.id != self._owner_window.id:
            with self._lock:
                self._served = None
            raise AccessError("Failed to acquire CLIPBOARD ownership")

    def _serve_forever(self) -> None:
        while not self._closed.is_set():
            try:
                select.select([self._owner], [], [], SERVE_POLL_INTERVAL)
                while self._owner.pending_events() > 0:
                    self._dispatch(self._owner.next_event())
            except Exception as e:
                if self._closed.is_set():
                    return
                logger.error("X11 owner loop failed: %s", e)
                time.sleep(SERVE_POLL_INTERVAL)

    def _dispatch(self, event) -> None:
        if event.type == X.SelectionRequest:
            self._handle_selection_request(event)
        elif event.type == X.SelectionClear:
            logger.debug("Lost CLIPBOARD ownership")
            with self._lock:
                self._served = None

    def _handle_selection_request(self, event: SelectionRequest) -> None:
        """Answer another client's request for our content.

        Supports TARGETS and the targets listed for the served content type;
        refuses everything else with property=None.
        """
        from Xlib.protocol.event import SelectionNotify as SelectionNotifyEvent

        with self._lock:
            served = self._served
        targets_atom = self._owner.intern_atom("TARGETS")
        prop = event.property if event.property != X.NONE else event.target

        if served is None:
            prop = X.NONE
        else:
            content, content_type = served
            offered = [self._owner.intern_atom(name) for name in _SERVE_TARGETS[content_type]]
            if event.target == targets_atom:
                event.requestor.change_property(
                    prop, Xatom.ATOM, 32, [targets_atom, *offered]
                )
            elif event.target in offered:
                event.requestor.change_property(prop, event.target, 8, content)
            else:
                prop = X.NONE

        event.requestor.send_event(
            SelectionNotifyEvent(
                time=event.time,
                requestor=event.requestor.id,
                selection=event.selection,
                target=event.target,
                property=prop,
            ),
            event_mask=0,
        )
        self._owner.flush()

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._thread.join(timeout=SERVE_POLL_INTERVAL * 10)
        with self._lock:
            self._served = None
        for display in (self._owner, self._reader):
            try:
                display.close()
            except Exception as e:
                logger.debug("Error closing X11 display: %s", e)
