#!/usr/bin/env python3
"""Relay store transport.

Stateless request/response channel against a relay server (relay_server.py):
send() submits an update, try_recv() fetches the latest stored update and
returns it only when its id is newer than anything seen so far, and the
heartbeat probes the health endpoint.
"""

from __future__ import annotations

import base64
import binascii
import logging

import httpx

from clipsync import defaults
from clipsync.errors import ProtocolError, TransportError
from clipsync.hashing import compute_fingerprint, fingerprint_prefix
from clipsync.models import ContentType, Update
from clipsync.transport import Transport

logger = logging.getLogger(__name__)

SUBMIT_PATH = "/api/clipboard"
LATEST_PATH = "/api/clipboard/latest"
HISTORY_PATH = "/api/clipboard/history"
STATS_PATH = "/api/clipboard/stats"
HEALTH_PATH = "/health"


def parse_item(item: dict, max_content_size: int) -> Update:
    """Convert a latest/history item into an Update.

    The fingerprint is recomputed over the decoded content and checked
    against the server's hash.

    Raises:
        ProtocolError: If the item is malformed, oversize or inconsistent.
    """
    try:
        item_id = int(item["id"])
        encoded = item["content"]
        content_type = ContentType.parse(item.get("content_type", "text"))
    except (KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed relay item: {e}") from e
    try:
        payload = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise ProtocolError(f"Invalid base64 in relay item {item_id}: {e}") from e
    if len(payload) > max_content_size:
        raise ProtocolError(
            f"Relay item {item_id} of {len(payload)} bytes exceeds limit {max_content_size}"
        )
    fingerprint = compute_fingerprint(payload)
    if item.get("hash") and item["hash"] != fingerprint:
        raise ProtocolError(f"Relay item {item_id} hash does not match its content")
    return Update(
        id=item_id,
        source_id=str(item.get("source_id", "relay")),
        fingerprint=fingerprint,
        payload=payload,
        content_type=content_type,
    )


def json_object(response: httpx.Response, error: type[Exception] = ProtocolError) -> dict:
    """Decode a response body that must be a JSON object.

    Args:
        response: Response with status already checked.
        error: Exception class raised when the body is not a JSON object.

    Raises:
        error: If the body is not JSON or not an object.
    """
    try:
        body = response.json()
    except ValueError as e:
        raise error(f"Relay returned a non-JSON body ({response.status_code}): {e}") from e
    if not isinstance(body, dict):
        raise error(f"Relay returned {type(body).__name__}, expected an object")
    return body


class RelayTransport(Transport):
    """Transport polling a relay store over HTTP."""

    def __init__(
        self,
        base_url: str,
        source_id: str,
        max_content_size: int,
        heartbeat_interval: float,
        heartbeat_max_failures: int,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(heartbeat_interval, heartbeat_max_failures)
        self._base_url = base_url.rstrip("/")
        self._source_id = source_id
        self._max_content_size = max_content_size
        self._client = client
        self._owns_client = client is None
        self._connected = False
        self._last_seen_id = 0

    @property
    def last_seen_id(self) -> int:
        return self._last_seen_id

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=defaults.HTTP_TIMEOUT)
        return self._client

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._http().request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {self._base_url}{path} failed: {e}") from e

    async def health(self) -> dict:
        """Query the relay's health endpoint.

        Raises:
            TransportError: If the relay is unreachable or unhealthy.
        """
        response = await self._request("GET", HEALTH_PATH)
        if response.status_code != 200:
            raise TransportError(f"Relay health check returned {response.status_code}")
        # Whatever answers /health with a non-object is not a relay.
        return json_object(response, TransportError)

    async def connect(self) -> None:
        health = await self.health()
        self._connected = True
        logger.info(
            "Connected to relay %s (status=%s, items=%s, uptime=%ss)",
            self._base_url, health.get("status"), health.get("items_count"),
            health.get("uptime_seconds"),
        )

    def is_connected(self) -> bool:
        return self._connected

    async def send(self, update: Update) -> None:
        body = {
            "content": base64.b64encode(update.payload).decode("ascii"),
            "content_type": update.content_type.value,
            "source_id": self._source_id,
        }
        response = await self._request("POST", SUBMIT_PATH, json=body)
        if 400 <= response.status_code < 500:
            raise ProtocolError(f"Relay rejected update: {response.status_code} {response.text}")
        if response.status_code != 200:
            raise TransportError(f"Relay submit returned {response.status_code}")
        result = json_object(response)
        try:
            stored_id = int(result["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed relay submit reply: {e}") from e
        # Our own submission is already on the local clipboard.
        self._last_seen_id = max(self._last_seen_id, stored_id)
        logger.debug(
            "Submitted %d bytes to relay as id=%d (%s)",
            len(update.payload), stored_id, fingerprint_prefix(update.fingerprint),
        )

    async def try_recv(self) -> Update | None:
        response = await self._request("GET", LATEST_PATH)
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise TransportError(f"Relay latest returned {response.status_code}")
        item = json_object(response)
        try:
            item_id = int(item["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed relay item: {e}") from e
        if item_id <= self._last_seen_id:
            return None
        # Advance first so a malformed item is discarded, not refetched forever.
        self._last_seen_id = item_id
        return parse_item(item, self._max_content_size)

    async def history(
        self,
        limit: int | None = None,
        offset: int = 0,
        source: str | None = None,
        content_type: ContentType | None = None,
        query: str | None = None,
        newest_first: bool = False,
    ) -> tuple[list[Update], int]:
        """Fetch a page of relay history.

        Args:
            limit: Maximum number of items, or None for all.
            offset: Number of matching items to skip.
            source: Only items submitted by this source id.
            content_type: Only items of this kind.
            query: Only text items whose content contains this string.
            newest_first: Order by descending id instead of ascending.

        Returns:
            The page and the number of items matching the filters.

        Raises:
            TransportError: If the relay is unreachable or answers non-200.
            ProtocolError: If the reply is malformed.
        """
        params: dict[str, str | int] = {"offset": offset}
        if limit is not None:
            params["limit"] = limit
        if source is not None:
            params["source"] = source
        if content_type is not None:
            params["content_type"] = content_type.value
        if query is not None:
            params["q"] = query
        if newest_first:
            params["order"] = "desc"
        response = await self._request("GET", HISTORY_PATH, params=params)
        if response.status_code != 200:
            raise TransportError(f"Relay history returned {response.status_code}")
        body = json_object(response)
        try:
            raw_items = list(body["items"])
            total = int(body["total"])
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed relay history: {e}") from e
        return [parse_item(item, self._max_content_size) for item in raw_items], total

    async def clear(self) -> int:
        """Delete all relay history; returns the number of removed items."""
        response = await self._request("DELETE", SUBMIT_PATH)
        if response.status_code != 200:
            raise TransportError(f"Relay clear returned {response.status_code}")
        try:
            return int(json_object(response)["cleared"])
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed relay clear reply: {e}") from e

    async def stats(self) -> dict:
        """Fetch relay store statistics."""
        response = await self._request("GET", STATS_PATH)
        if response.status_code != 200:
            raise TransportError(f"Relay stats returned {response.status_code}")
        return json_object(response)

    async def probe(self) -> None:
        await self.health()

    async def close(self) -> None:
        self._connected = False

    async def shutdown(self) -> None:
        await self.close()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
