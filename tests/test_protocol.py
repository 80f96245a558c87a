#!/usr/bin/env python3
"""
Unit tests for the line-framed stream protocol.

Tests frame encoding, decoding into typed messages and error cases.
"""
import asyncio
import base64

import pytest

from clipsync.errors import ProtocolError, TransportError
from clipsync.models import ContentType
from clipsync.protocol import (
    Ack,
    Clip,
    Nak,
    Ping,
    Pong,
    decode_frame,
    encode_message,
    max_frame_length,
    read_message,
)

MAX_SIZE = 64


def make_reader(data: bytes, limit: int = 2**16) -> asyncio.StreamReader:
    """Create a StreamReader with the given data for testing."""
    reader = asyncio.StreamReader(limit=limit)
    reader.feed_data(data)
    reader.feed_eof()
    return reader


def test_encode_text_clip() -> None:
    """Test text content is sent without a type tag."""
    assert encode_message(Clip(b"Hello World")) == b"CLIP:SGVsbG8gV29ybGQ=\n"


def test_encode_image_clip_is_tagged() -> None:
    """Test non-text content carries its type."""
    frame = encode_message(Clip(b"\x89PNG", ContentType.IMAGE))
    assert frame == b"CLIP:image:" + base64.b64encode(b"\x89PNG") + b"\n"


@pytest.mark.parametrize(
    "message, frame",
    [
        (Ack("abcdef12"), b"ACK:abcdef12\n"),
        (Nak(), b"NAK\n"),
        (Ping(), b"PING\n"),
        (Pong(), b"PONG\n"),
    ],
)
def test_encode_control_frames(message, frame) -> None:
    """Test control messages map to their fixed frames."""
    assert encode_message(message) == frame


def test_decode_clip_with_type_tag() -> None:
    """Test a tagged CLIP decodes its content type."""
    message = decode_frame(b"CLIP:html:" + base64.b64encode(b"<b>x</b>") + b"\n", MAX_SIZE)
    assert message == Clip(b"<b>x</b>", ContentType.HTML)


def test_decode_accepts_crlf() -> None:
    """Test a CRLF terminated frame decodes like LF."""
    assert decode_frame(b"PING\r\n", MAX_SIZE) == Ping()


def test_decode_ack_carries_prefix() -> None:
    """Test ACK keeps the fingerprint prefix."""
    assert decode_frame(b"ACK:0123abcd\n", MAX_SIZE) == Ack("0123abcd")


@pytest.mark.parametrize(
    "frame, match",
    [
        (b"CLIP:not base64!\n", "Invalid base64"),
        (b"CLIP:\n", "Empty CLIP"),
        (b"CLIP:video:AAAA\n", "Unknown content type"),
        (b"ACK:\n", "Empty ACK"),
        (b"HELLO\n", "Unknown frame"),
    ],
)
def test_decode_malformed_frames(frame, match) -> None:
    """Test malformed frames raise ProtocolError."""
    with pytest.raises(ProtocolError, match=match):
        decode_frame(frame, MAX_SIZE)


def test_decode_oversize_payload() -> None:
    """Test a payload over the content limit is rejected."""
    frame = encode_message(Clip(b"x" * (MAX_SIZE + 1)))
    with pytest.raises(ProtocolError, match="exceeds limit"):
        decode_frame(frame, MAX_SIZE)


def test_max_frame_length_fits_largest_frame() -> None:
    """Test the largest legal frame fits the computed limit."""
    frame = encode_message(Clip(b"x" * MAX_SIZE, ContentType.IMAGE))
    assert len(frame) <= max_frame_length(MAX_SIZE)


@pytest.mark.asyncio
async def test_read_message_sequence() -> None:
    """Test consecutive frames are read in order."""
    reader = make_reader(b"PING\nCLIP:aGk=\nPONG\n")

    assert await read_message(reader, MAX_SIZE) == Ping()
    assert await read_message(reader, MAX_SIZE) == Clip(b"hi")
    assert await read_message(reader, MAX_SIZE) == Pong()


@pytest.mark.asyncio
async def test_read_message_truncated_frame_then_eof() -> None:
    """Test a frame cut off by EOF is a ProtocolError, then EOF is a TransportError."""
    reader = make_reader(b"CLIP:aGVsbG8")

    with pytest.raises(ProtocolError, match="Truncated"):
        await read_message(reader, MAX_SIZE)
    with pytest.raises(TransportError, match="closed"):
        await read_message(reader, MAX_SIZE)


@pytest.mark.asyncio
async def test_malformed_frame_does_not_poison_stream() -> None:
    """Test a bad frame is reported and the next valid frame still reads."""
    reader = make_reader(b"CLIP:aGVs!!bG8=\nCLIP:aGk=\n")

    with pytest.raises(ProtocolError):
        await read_message(reader, MAX_SIZE)
    assert await read_message(reader, MAX_SIZE) == Clip(b"hi")


@pytest.mark.asyncio
async def test_overlong_line_is_discarded() -> None:
    """Test a line beyond the reader limit is skipped as a whole."""
    limit = max_frame_length(MAX_SIZE)
    reader = make_reader(b"CLIP:" + b"A" * (limit * 2) + b"\nPING\n", limit=limit)

    with pytest.raises(ProtocolError, match="maximum length"):
        await read_message(reader, MAX_SIZE)
    assert await read_message(reader, MAX_SIZE) == Ping()


@pytest.mark.asyncio
async def test_read_message_connection_closed() -> None:
    """Test EOF before any data raises TransportError."""
    reader = make_reader(b"")
    with pytest.raises(TransportError):
        await read_message(reader, MAX_SIZE)
