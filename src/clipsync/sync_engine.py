#!/usr/bin/env python3
"""Sync engine: the central state machine.

States: DISCONNECTED -> CONNECTING -> SYNCING. A failed connect goes back to
DISCONNECTED and is retried with bounded backoff forever; a lost link or a
heartbeat timeout drops SYNCING back to DISCONNECTED and reconnects after
reconnect_delay.

While SYNCING every tick runs, in this order:
1. Inbound: take one update from the transport and apply it unless its
   fingerprint is the last sent or last applied one.
2. Outbound: take the latest LocalChange and send it unless its fingerprint
   (re-checked after step 1) is the last sent or last applied one.
Inbound first means content just received is never bounced back to its
origin in the same cycle.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from contextlib import suppress

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_never,
    wait_exponential,
)

from clipsync.clipboard import ClipboardAccessor
from clipsync.config import SyncConfig
from clipsync.errors import AccessError, ProtocolError, TransportError
from clipsync.hashing import fingerprint_prefix
from clipsync.models import Update, utc_now
from clipsync.monitor import ChangeMonitor
from clipsync.sync_state import ConnectionState, SyncState
from clipsync.transport import Transport

logger = logging.getLogger(__name__)


class SyncEngine:
    """Drive one transport session after another, applying and sending updates."""

    def __init__(
        self,
        config: SyncConfig,
        accessor: ClipboardAccessor,
        monitor: ChangeMonitor,
        transport: Transport,
    ) -> None:
        self._config = config
        self._accessor = accessor
        self._monitor = monitor
        self._transport = transport
        self.state = SyncState(reconnect_backoff=config.reconnect_delay)

    def snapshot(self) -> SyncState:
        """Return a copy of the current state for diagnostic consumers."""
        return copy.deepcopy(self.state)

    def _set_state(self, new_state: ConnectionState) -> None:
        if self.state.connection_state is not new_state:
            logger.debug("%s -> %s", self.state.connection_state.value, new_state.value)
            self.state.connection_state = new_state

    # Connection management

    def _before_backoff(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        self.state.reconnect_backoff = delay
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning("Connection failed: %s, retrying in %.1fs", error, delay)

    async def _connect_once(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        self.state.connect_attempts += 1
        try:
            await self._transport.connect()
        except TransportError:
            self._set_state(ConnectionState.DISCONNECTED)
            raise

    async def connect_with_retry(self) -> None:
        """Connect, retrying with backoff until it succeeds."""
        retrying = AsyncRetrying(
            wait=wait_exponential(
                multiplier=self._config.reconnect_delay,
                exp_base=self._config.reconnect_backoff,
                max=self._config.max_reconnect_delay,
            ),
            retry=retry_if_exception_type(TransportError),
            stop=stop_never,
            before_sleep=self._before_backoff,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self._connect_once()
        self.state.reconnect_backoff = self._config.reconnect_delay
        self._set_state(ConnectionState.SYNCING)

    async def run(self) -> None:
        """Run sessions until cancelled. Never returns normally."""
        while True:
            await self.connect_with_retry()
            try:
                await self._run_session()
            except TransportError as e:
                logger.warning("Connection lost: %s, will retry", e)
            finally:
                self._set_state(ConnectionState.DISCONNECTED)
                await self._transport.close()
            await asyncio.sleep(self._config.reconnect_delay)

    async def _run_session(self) -> None:
        tasks = {
            asyncio.create_task(self._tick_loop(), name="clipsync-tick"),
            asyncio.create_task(self._transport.run(), name="clipsync-transport"),
        }
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                task.result()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    # Ticking

    async def _tick_loop(self) -> None:
        while True:
            await self.tick()
            await self._wait_for_work()

    async def _wait_for_work(self) -> None:
        """Sleep up to one poll interval, waking early on a change or inbound update."""
        waiters = {
            asyncio.create_task(self._monitor.changes.wait()),
            asyncio.create_task(self._transport.wait_inbound()),
        }
        try:
            await asyncio.wait(
                waiters, timeout=self._config.poll_interval,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in waiters:
                waiter.cancel()
                with suppress(asyncio.CancelledError):
                    await waiter

    async def tick(self) -> None:
        """Run one inbound-then-outbound cycle.

        Raises:
            TransportError: If the link fails while receiving or sending.
        """
        await self._process_inbound()
        await self._process_outbound()

    async def _process_inbound(self) -> None:
        try:
            update = await self._transport.try_recv()
        except ProtocolError as e:
            logger.warning("Discarding malformed inbound update: %s", e)
            return
        if update is None:
            return

        prefix = fingerprint_prefix(update.fingerprint)
        if not self.state.hash_state.should_apply(update.fingerprint):
            logger.debug("Skipping inbound %s, already sent or applied", prefix)
            return

        try:
            await asyncio.to_thread(self._accessor.write, update.payload, update.content_type)
        except AccessError as e:
            # Clipboard state is ephemeral; a retried stale value means nothing.
            logger.error("Failed to apply update %s from %s: %s", prefix, update.source_id, e)
            self.state.dropped_count += 1
            await self._transport.acknowledge(update, applied=False)
            return

        self.state.hash_state.record_applied(update.fingerprint)
        self._monitor.mark_applied(update.fingerprint)
        self.state.applied_count += 1
        self.state.last_sync_at = utc_now()
        logger.info(
            "Applied %s from %s (%d bytes, %s)",
            update.content_type.value, update.source_id, len(update.payload), prefix,
        )
        await self._transport.acknowledge(update, applied=True)

    async def _process_outbound(self) -> None:
        snapshot = self._monitor.changes.take()
        if snapshot is None:
            return

        prefix = fingerprint_prefix(snapshot.fingerprint)
        if not self.state.hash_state.should_send(snapshot.fingerprint):
            logger.debug("Skipping outbound %s, duplicate or echo", prefix)
            return

        update = Update.from_snapshot(snapshot, self._config.source_id)
        try:
            await self._transport.send(update)
        except ProtocolError as e:
            logger.warning("Peer rejected update %s: %s", prefix, e)
            return
        except TransportError:
            # Keep the change for the next session unless a newer one arrived.
            if self._monitor.changes.peek() is None:
                self._monitor.changes.put(snapshot)
            raise

        self.state.hash_state.record_sent(snapshot.fingerprint)
        self.state.sent_count += 1
        self.state.last_sync_at = utc_now()
        logger.info(
            "Sent %s (%d bytes, %s)",
            snapshot.content_type.value, len(snapshot.content), prefix,
        )
