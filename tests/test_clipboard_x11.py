#!/usr/bin/env python3
"""Integration tests for the X11 backend. Skipped without an X display."""
import os

import pytest

pytest.importorskip("Xlib")

from clipsync.models import ContentType  # noqa: E402

pytestmark = pytest.mark.skipif(not os.environ.get("DISPLAY"), reason="requires an X display")


@pytest.fixture
def backends():
    from clipsync.clipboard_x11 import X11Backend

    writer = X11Backend()
    reader = X11Backend()
    yield writer, reader
    writer.close()
    reader.close()


def test_owner_reads_back_its_own_content(backends) -> None:
    writer, _ = backends

    writer.write(b"owned text", ContentType.TEXT)

    assert writer.read() == (b"owned text", ContentType.TEXT)


def test_other_client_reads_served_text(backends) -> None:
    """Test content written by one backend is served to another."""
    writer, reader = backends

    writer.write("héllo".encode("utf-8"), ContentType.TEXT)

    assert reader.read() == ("héllo".encode("utf-8"), ContentType.TEXT)


def test_new_owner_replaces_content(backends) -> None:
    """Test taking ownership from another backend."""
    writer, reader = backends
    writer.write(b"first", ContentType.TEXT)

    reader.write(b"second", ContentType.TEXT)

    assert writer.read() == (b"second", ContentType.TEXT)


def test_close_is_idempotent(backends) -> None:
    writer, _ = backends
    writer.close()
    writer.close()
