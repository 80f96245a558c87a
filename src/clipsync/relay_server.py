#!/usr/bin/env python3
"""HTTP front end of the relay store.

Endpoints:
    POST /api/clipboard            submit {content, content_type?, source_id?}
    GET  /api/clipboard/latest     newest item, 404 when empty
    GET  /api/clipboard/history    {items, total}; filters source, content_type,
                                   q (text search), order=asc|desc, limit, offset
    DELETE /api/clipboard          drop all history, {cleared}
    GET  /api/clipboard/stats      counts and sizes of the retained history
    GET  /health                   {status, items_count, uptime_seconds}

Errors, including malformed requests, are returned as {"error": "..."}
with status 400, 404 or 413.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from datetime import datetime

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

from clipsync import defaults
from clipsync.models import ContentType, Update
from clipsync.relay_store import RelayStore

logger = logging.getLogger(__name__)


class SubmitRequest(BaseModel):
    content: str
    content_type: str = ContentType.TEXT.value
    source_id: str = "unknown"


class SubmitResponse(BaseModel):
    id: int
    hash: str
    timestamp: datetime


class ClipboardItem(BaseModel):
    id: int
    content: str
    hash: str
    timestamp: datetime
    size: int
    content_type: str
    source_id: str

    @classmethod
    def from_update(cls, update: Update) -> ClipboardItem:
        return cls(
            id=update.id,
            content=base64.b64encode(update.payload).decode("ascii"),
            hash=update.fingerprint,
            timestamp=update.timestamp,
            size=len(update.payload),
            content_type=update.content_type.value,
            source_id=update.source_id,
        )


class HistoryResponse(BaseModel):
    items: list[ClipboardItem]
    total: int


class ClearResponse(BaseModel):
    cleared: int


class StatsResponse(BaseModel):
    items_count: int
    max_items: int
    total_bytes: int
    oldest_id: int | None
    newest_id: int | None
    by_content_type: dict[str, int]
    by_source: dict[str, int]


class HealthResponse(BaseModel):
    status: str
    items_count: int
    uptime_seconds: int


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(store: RelayStore, max_content_size: int = defaults.MAX_CONTENT_SIZE_BYTES) -> FastAPI:
    """Build the relay application around a store.

    Args:
        store: Store shared by all requests.
        max_content_size: Largest accepted decoded payload in bytes.

    Returns:
        The FastAPI application.
    """
    app = FastAPI(title="clipsync relay")
    started = time.monotonic()

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _error(400, f"Invalid request: {detail}")

    @app.post("/api/clipboard", response_model=SubmitResponse)
    async def submit(request: SubmitRequest):
        if not request.content:
            return _error(400, "Content cannot be empty")
        try:
            content_type = ContentType.parse(request.content_type)
        except ValueError:
            return _error(400, f"Unsupported content type: {request.content_type}")
        try:
            payload = base64.b64decode(request.content, validate=True)
        except (binascii.Error, ValueError):
            return _error(400, "Invalid base64 content")
        if len(payload) > max_content_size:
            return _error(
                413, f"Content too large: {len(payload)} bytes (max {max_content_size})"
            )

        update = store.submit(payload, content_type, request.source_id)
        logger.info(
            "Accepted id=%d from %s (%d bytes)", update.id, update.source_id, len(payload)
        )
        return SubmitResponse(id=update.id, hash=update.fingerprint, timestamp=update.timestamp)

    @app.get("/api/clipboard/latest", response_model=ClipboardItem)
    async def latest():
        update = store.latest()
        if update is None:
            return _error(404, "No clipboard content available")
        return ClipboardItem.from_update(update)

    @app.get("/api/clipboard/history", response_model=HistoryResponse)
    async def history(
        limit: int | None = Query(None, ge=1),
        offset: int = Query(0, ge=0),
        source: str | None = Query(None, min_length=1),
        content_type: str | None = None,
        q: str | None = Query(None, min_length=1),
        order: str = Query("asc", pattern="^(asc|desc)$"),
    ):
        kind = None
        if content_type is not None:
            try:
                kind = ContentType.parse(content_type)
            except ValueError:
                return _error(400, f"Unsupported content type: {content_type}")
        items, total = store.history(
            limit=limit,
            offset=offset,
            source=source,
            content_type=kind,
            query=q,
            newest_first=order == "desc",
        )
        return HistoryResponse(
            items=[ClipboardItem.from_update(u) for u in items],
            total=total,
        )

    @app.delete("/api/clipboard", response_model=ClearResponse)
    async def clear():
        return ClearResponse(cleared=store.clear())

    @app.get("/api/clipboard/stats", response_model=StatsResponse)
    async def stats():
        return StatsResponse(**store.stats())

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(
            status="healthy",
            items_count=len(store),
            uptime_seconds=int(time.monotonic() - started),
        )

    return app


def run_relay(
    host: str = defaults.RELAY_HOST,
    port: int = defaults.RELAY_PORT,
    max_history: int = defaults.MAX_HISTORY_ITEMS,
    max_content_size: int = defaults.MAX_CONTENT_SIZE_BYTES,
) -> None:
    """Serve the relay until interrupted."""
    store = RelayStore(max_history)
    app = create_app(store, max_content_size)
    logger.info("Relay listening on %s:%d (history %d)", host, port, max_history)
    uvicorn.run(app, host=host, port=port, workers=1, log_level="warning")
