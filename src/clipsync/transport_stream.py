#!/usr/bin/env python3
"""Duplex stream transports.

One long-lived TCP connection carries line frames (see protocol.py) in both
directions. StreamClientTransport dials the peer; StreamServerTransport listens
and accepts one peer at a time. Both share the session logic in StreamTransport:
a read loop that answers PING, logs ACK/NAK and hands the newest CLIP to the
engine through a single-slot handoff, plus the heartbeat loop from Transport.

Nothing is replayed on reconnect: a new session starts with an empty slot.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from clipsync.errors import ProtocolError, TransportError
from clipsync.hashing import compute_fingerprint, fingerprint_prefix
from clipsync.models import Update
from clipsync.protocol import (
    Ack,
    Clip,
    Message,
    Nak,
    Ping,
    Pong,
    encode_message,
    max_frame_length,
    read_message,
)
from clipsync.slot import LatestSlot
from clipsync.transport import Transport

logger = logging.getLogger(__name__)

# Timeout in seconds for establishing an outbound TCP connection.
CONNECT_TIMEOUT: float = 10.0

# Timeout in seconds for flushing a frame to the peer.
DRAIN_TIMEOUT: float = 10.0


def parse_address(address: str, default_port: int) -> tuple[str, int]:
    """Split "host:port" (or bare "host") into its parts.

    IPv6 hosts must be bracketed: "[::1]:9877" or "[::1]".

    Raises:
        ValueError: If the port is not a number or an IPv6 host is unbracketed.
    """
    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep or (rest and not rest.startswith(":")):
            raise ValueError(f"Malformed bracketed address: {address!r}")
        return host, int(rest[1:]) if rest else default_port
    if address.count(":") > 1:
        raise ValueError(f"IPv6 address must be bracketed, e.g. [{address}]:{default_port}")
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, default_port
    return host or "0.0.0.0", int(port)


class StreamTransport(Transport):
    """Session logic shared by both stream roles."""

    def __init__(
        self,
        max_content_size: int,
        heartbeat_interval: float,
        heartbeat_max_failures: int,
    ) -> None:
        super().__init__(heartbeat_interval, heartbeat_max_failures)
        self._max_content_size = max_content_size
        self._frame_limit = max_frame_length(max_content_size)
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._peer = "peer"
        self._inbound: LatestSlot[Update] = LatestSlot()
        self._traffic_seen = False

    def _attach(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peername = writer.get_extra_info("peername")
        self._peer = f"{peername[0]}:{peername[1]}" if peername else "peer"
        self._reader = reader
        self._writer = writer
        self._inbound.clear()
        self._traffic_seen = True
        logger.info("Connected to %s", self._peer)

    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def _write(self, message: Message) -> None:
        if not self.is_connected():
            raise TransportError("Not connected")
        assert self._writer is not None
        try:
            self._writer.write(encode_message(message))
            await asyncio.wait_for(self._writer.drain(), timeout=DRAIN_TIMEOUT)
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"Failed to send to {self._peer}: {e}") from e

    async def send(self, update: Update) -> None:
        await self._write(Clip(payload=update.payload, content_type=update.content_type))
        logger.debug(
            "Sent %d bytes to %s (%s)",
            len(update.payload), self._peer, fingerprint_prefix(update.fingerprint),
        )

    async def try_recv(self) -> Update | None:
        return self._inbound.take()

    async def wait_inbound(self) -> None:
        await self._inbound.wait()

    async def acknowledge(self, update: Update, applied: bool) -> None:
        if applied:
            await self._write(Ack(prefix=fingerprint_prefix(update.fingerprint)))
        else:
            await self._write(Nak())

    async def probe(self) -> None:
        if not self._traffic_seen:
            raise TransportError(f"No traffic from {self._peer} since last PING")
        self._traffic_seen = False
        await self._write(Ping())

    async def run(self) -> None:
        tasks = {
            asyncio.create_task(self._read_loop()),
            asyncio.create_task(self._heartbeat_loop()),
        }
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                task.result()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _read_loop(self) -> None:
        if self._reader is None:
            raise TransportError("Not connected")
        while True:
            try:
                message = await read_message(self._reader, self._max_content_size)
            except ProtocolError as e:
                self._traffic_seen = True
                logger.warning("Discarding malformed frame from %s: %s", self._peer, e)
                continue
            self._traffic_seen = True
            await self._handle(message)

    async def _handle(self, message: Message) -> None:
        if isinstance(message, Clip):
            update = Update(
                source_id=self._peer,
                fingerprint=compute_fingerprint(message.payload),
                payload=message.payload,
                content_type=message.content_type,
            )
            logger.debug(
                "Received %d bytes from %s (%s)",
                len(update.payload), self._peer, fingerprint_prefix(update.fingerprint),
            )
            self._inbound.put(update)
        elif isinstance(message, Ping):
            await self._write(Pong())
        elif isinstance(message, Pong):
            logger.debug("%s alive", self._peer)
        elif isinstance(message, Ack):
            logger.debug("%s acknowledged %s", self._peer, message.prefix)
        elif isinstance(message, Nak):
            logger.warning("%s rejected clipboard update", self._peer)

    async def close(self) -> None:
        writer, self._writer, self._reader = self._writer, None, None
        self._inbound.clear()
        if writer is None:
            return
        writer.close()
        with suppress(OSError, asyncio.TimeoutError):
            await asyncio.wait_for(writer.wait_closed(), timeout=DRAIN_TIMEOUT)
        logger.debug("Closed connection to %s", self._peer)


class StreamClientTransport(StreamTransport):
    """Stream transport that dials the peer."""

    def __init__(self, host: str, port: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self._host = host
        self._port = port

    async def connect(self) -> None:
        """Connect to the peer over TCP.

        Raises:
            TransportError: If the connection fails (refused, timeout, etc).
        """
        logger.debug("Connecting to %s:%s", self._host, self._port)
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port, limit=self._frame_limit),
                timeout=CONNECT_TIMEOUT,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"Failed to connect to {self._host}:{self._port}: {e}") from e
        self._attach(reader, writer)


class StreamServerTransport(StreamTransport):
    """Stream transport that listens and serves one peer at a time.

    A peer arriving while another is connected is turned away. Once the
    current peer drops, the next connect() waits for a new one.
    """

    def __init__(self, host: str, port: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self._host = host
        self._port = port
        self._server: asyncio.Server | None = None
        self._pending: LatestSlot[tuple[asyncio.StreamReader, asyncio.StreamWriter]] = LatestSlot()

    @property
    def bound_port(self) -> int | None:
        """Port actually bound, useful when listening on port 0."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start_listening(self) -> None:
        """Bind the listening socket if not already bound.

        Raises:
            TransportError: If the address cannot be bound.
        """
        if self._server is not None:
            return
        try:
            self._server = await asyncio.start_server(
                self._on_peer, self._host, self._port, limit=self._frame_limit,
            )
        except OSError as e:
            raise TransportError(f"Cannot listen on {self._host}:{self._port}: {e}") from e
        logger.info("Listening on %s:%s", self._host, self.bound_port)

    def _on_peer(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        if self.is_connected():
            logger.warning("Rejecting %s, already connected to %s",
                writer.get_extra_info("peername"), self._peer)
            writer.close()
            return
        stale = self._pending.take()
        if stale is not None:
            stale[1].close()
        self._pending.put((reader, writer))

    async def connect(self) -> None:
        """Wait for a peer to connect."""
        await self.start_listening()
        while True:
            await self._pending.wait()
            accepted = self._pending.take()
            if accepted is None:
                continue
            reader, writer = accepted
            if writer.is_closing():
                continue
            self._attach(reader, writer)
            return

    async def shutdown(self) -> None:
        await self.close()
        stale = self._pending.take()
        if stale is not None:
            stale[1].close()
        if self._server is not None:
            self._server.close()
            with suppress(OSError):
                await self._server.wait_closed()
            self._server = None
