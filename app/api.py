"""HTTP route definitions for the service."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Request,
    WebSocket,
    status,
)
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from app.schemas import (
    AlertPayload,
    ErrorResponse,
    IngestResponse,
    LatestReadingsResponse,
    StatsResponse,
    StoredReading,
)
from services.aggregator import Aggregator
from services.errors import IngestionError, StorageError, UnexpectedError
from services.ingestion import IngestionService, build_default_ingestion_service
from services.notifier import ChangeNotifier
from services.queries import QueryFacade

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

router = APIRouter()


def get_service() -> IngestionService:
    return build_default_ingestion_service()


def get_queries(service: IngestionService = Depends(get_service)) -> QueryFacade:
    return QueryFacade(table=service.table, aggregator=Aggregator())


def get_notifier(service: IngestionService = Depends(get_service)) -> ChangeNotifier:
    return service.notifier


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _error_response(exc: IngestionError) -> JSONResponse:
    body = ErrorResponse(timestamp=_now(), **exc.to_payload())
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=CORS_HEADERS,
    )


@router.options("/ingest", include_in_schema=False)
async def ingest_preflight() -> PlainTextResponse:
    return PlainTextResponse("ok", headers=CORS_HEADERS)


@router.post(
    "/ingest",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Record a sensor reading.",
)
async def ingest_reading(
    request: Request,
    service: IngestionService = Depends(get_service),
) -> JSONResponse:
    raw = await request.body()
    try:
        # Persistence may block; keep it off the event loop.
        outcome = await run_in_threadpool(service.ingest_body, raw)
    except StorageError as exc:
        logger.error("Storage failure: %s", exc.message, extra={"code": exc.code})
        return _error_response(exc)
    except IngestionError as exc:
        return _error_response(exc)
    except Exception as exc:
        logger.exception("Unexpected ingestion failure")
        return _error_response(UnexpectedError(f"Server error: {exc}"))

    body = IngestResponse(
        data=outcome.reading,
        alerts=[AlertPayload(**alert.as_dict()) for alert in outcome.alerts] or None,
        timestamp=_now(),
    )
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=body.model_dump(mode="json"),
        headers=CORS_HEADERS,
    )


@router.api_route(
    "/ingest",
    methods=["GET", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def ingest_method_not_allowed(request: Request) -> JSONResponse:
    body = ErrorResponse(
        error=f"Method {request.method} not allowed. Only POST requests are supported.",
        code="MethodNotAllowed",
        timestamp=_now(),
    )
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content=body.model_dump(mode="json", exclude_none=True),
        headers={**CORS_HEADERS, "Allow": "POST, OPTIONS"},
    )


@router.get(
    "/readings/latest",
    response_model=LatestReadingsResponse,
    summary="Most recent readings, newest first.",
)
async def latest_readings(
    limit: int = Query(10, ge=1, le=1000),
    user_id: Optional[str] = Query(None, description="Restrict to one owner."),
    queries: QueryFacade = Depends(get_queries),
) -> LatestReadingsResponse:
    try:
        readings = await run_in_threadpool(queries.latest_n, limit, user_id)
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=exc.message,
        ) from exc
    return LatestReadingsResponse(data=readings)


@router.get(
    "/readings/stats",
    response_model=StatsResponse,
    summary="Temperature statistics over a time window.",
)
async def reading_stats(
    start: datetime = Query(..., description="Inclusive window start (ISO-8601)."),
    end: datetime = Query(..., description="Inclusive window end (ISO-8601)."),
    user_id: Optional[str] = Query(None),
    queries: QueryFacade = Depends(get_queries),
) -> StatsResponse:
    try:
        stats = await run_in_threadpool(queries.stats_over_range, start, end, user_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=exc.message,
        ) from exc
    return StatsResponse(data=stats)


@router.websocket("/readings/stream")
async def stream_readings(
    websocket: WebSocket,
    user_id: Optional[str] = None,
    notifier: ChangeNotifier = Depends(get_notifier),
) -> None:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[StoredReading] = asyncio.Queue()

    def enqueue(reading: StoredReading) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, reading)

    # Registered before accepting so the client never misses a reading
    # published after its handshake completes.
    subscription = notifier.subscribe(enqueue, owner_id=user_id)
    await websocket.accept()

    async def forward() -> None:
        while True:
            reading = await queue.get()
            await websocket.send_json(reading.model_dump(mode="json"))

    forwarder = asyncio.create_task(forward())
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        subscription.unsubscribe()
        forwarder.cancel()


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> Dict[str, Any]:
    return {"status": "ok"}
