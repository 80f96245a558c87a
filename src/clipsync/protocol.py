#!/usr/bin/env python3
"""
Line framing for the duplex stream protocol.

Every frame is one line of ASCII terminated by a newline:

    CLIP:<base64>           text content update
    CLIP:<type>:<base64>    html or image content update
    ACK:<fingerprint-prefix>
    NAK
    PING
    PONG

Base64 never contains a colon, so the optional type tag is unambiguous.
Frames are parsed into typed messages at this boundary; nothing past the
transport ever handles raw lines.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass
from typing import Union

from clipsync.errors import ProtocolError, TransportError
from clipsync.models import ContentType

CLIP_PREFIX: bytes = b"CLIP:"
ACK_PREFIX: bytes = b"ACK:"
NAK_FRAME: bytes = b"NAK"
PING_FRAME: bytes = b"PING"
PONG_FRAME: bytes = b"PONG"

# Longest non-payload part of a frame: "CLIP:image:" plus "\r\n".
FRAME_OVERHEAD: int = len(b"CLIP:image:") + 2


@dataclass(frozen=True)
class Clip:
    """Content update."""

    payload: bytes
    content_type: ContentType = ContentType.TEXT


@dataclass(frozen=True)
class Ack:
    """Prior Clip accepted; carries the fingerprint prefix of what was applied."""

    prefix: str


@dataclass(frozen=True)
class Nak:
    """Prior Clip rejected because the local write failed."""


@dataclass(frozen=True)
class Ping:
    """Liveness probe."""


@dataclass(frozen=True)
class Pong:
    """Liveness probe response."""


Message = Union[Clip, Ack, Nak, Ping, Pong]


def max_frame_length(max_content_size: int) -> int:
    """Return the longest frame a payload of max_content_size can produce."""
    return 4 * ((max_content_size + 2) // 3) + FRAME_OVERHEAD


def encode_message(message: Message) -> bytes:
    """
    Encode a message as a newline-terminated frame.

    Args:
        message: Message to encode.

    Returns:
        Frame bytes including the trailing newline.
    """
    if isinstance(message, Clip):
        encoded = base64.b64encode(message.payload)
        if message.content_type is ContentType.TEXT:
            return CLIP_PREFIX + encoded + b"\n"
        return CLIP_PREFIX + message.content_type.value.encode("ascii") + b":" + encoded + b"\n"
    if isinstance(message, Ack):
        return ACK_PREFIX + message.prefix.encode("ascii") + b"\n"
    if isinstance(message, Nak):
        return NAK_FRAME + b"\n"
    if isinstance(message, Ping):
        return PING_FRAME + b"\n"
    if isinstance(message, Pong):
        return PONG_FRAME + b"\n"
    raise TypeError(f"Cannot encode {message!r}")


def _decode_clip(body: bytes, max_content_size: int) -> Clip:
    content_type = ContentType.TEXT
    if b":" in body:
        tag, body = body.split(b":", 1)
        try:
            content_type = ContentType.parse(tag.decode("ascii"))
        except (UnicodeDecodeError, ValueError):
            raise ProtocolError(f"Unknown content type {tag!r}") from None
    if not body:
        raise ProtocolError("Empty CLIP payload")
    try:
        payload = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProtocolError(f"Invalid base64 payload: {e}") from e
    if len(payload) > max_content_size:
        raise ProtocolError(
            f"Content size {len(payload)} exceeds limit {max_content_size}"
        )
    return Clip(payload=payload, content_type=content_type)


def decode_frame(line: bytes, max_content_size: int) -> Message:
    """
    Parse one frame into a typed message.

    Args:
        line: Frame bytes, with or without the line terminator.
        max_content_size: Largest accepted decoded payload.

    Returns:
        The decoded message.

    Raises:
        ProtocolError: On an unknown, truncated or oversize frame.
    """
    frame = line.rstrip(b"\r\n")
    if frame.startswith(CLIP_PREFIX):
        return _decode_clip(frame[len(CLIP_PREFIX):], max_content_size)
    if frame.startswith(ACK_PREFIX):
        prefix = frame[len(ACK_PREFIX):]
        if not prefix:
            raise ProtocolError("Empty ACK fingerprint")
        try:
            return Ack(prefix=prefix.decode("ascii"))
        except UnicodeDecodeError:
            raise ProtocolError(f"Invalid ACK fingerprint {prefix!r}") from None
    if frame == NAK_FRAME:
        return Nak()
    if frame == PING_FRAME:
        return Ping()
    if frame == PONG_FRAME:
        return Pong()
    raise ProtocolError(f"Unknown frame {frame[:32]!r}")


async def read_message(reader: asyncio.StreamReader, max_content_size: int) -> Message:
    """
    Read and decode one frame from an async stream.

    Args:
        reader: asyncio StreamReader to read from. Its limit must be at least
            max_frame_length(max_content_size).
        max_content_size: Largest accepted decoded payload.

    Returns:
        The decoded message.

    Raises:
        ProtocolError: On a malformed or oversize frame. The stream stays
            usable and the next call reads the following frame.
        TransportError: When the connection is closed or fails.
    """
    try:
        line = await reader.readline()
    except ValueError as e:
        # StreamReader discards the overlong line before raising.
        raise ProtocolError(f"Frame exceeds maximum length: {e}") from e
    except OSError as e:
        raise TransportError(f"Connection failed while reading: {e}") from e
    if not line:
        raise TransportError("Connection closed by peer")
    if not line.endswith(b"\n"):
        raise ProtocolError(f"Truncated frame of {len(line)} bytes")
    return decode_frame(line, max_content_size)
