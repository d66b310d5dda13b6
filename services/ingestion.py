"""Orchestration of a single reading ingestion."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, List, Optional

from app.schemas import StoredReading
from datastore.readings_table import ReadingsTable, build_default_table
from models.records import Alert, SensorDefaults
from services.alerts import AlertEvaluator, AlertThresholds
from services.enrichment import apply_defaults
from services.errors import BadRequestBody, ValidationError
from services.notifier import ChangeNotifier
from services.validator import validate_payload
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class IngestionOutcome:
    reading: StoredReading
    alerts: List[Alert] = field(default_factory=list)


class IngestionService:
    """Coordinates validation, persistence, alerting and fanout."""

    def __init__(
        self,
        table: ReadingsTable,
        notifier: ChangeNotifier,
        evaluator: AlertEvaluator,
        defaults: SensorDefaults | None = None,
    ) -> None:
        self.table = table
        self.notifier = notifier
        self.evaluator = evaluator
        self.defaults = defaults or SensorDefaults()

    def ingest_body(self, raw: bytes, now: Optional[datetime] = None) -> IngestionOutcome:
        """Parse a raw request body and ingest it."""
        try:
            payload = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise BadRequestBody("Invalid JSON format in request body") from exc

        if not isinstance(payload, dict):
            raise BadRequestBody("Request body must be a JSON object")

        return self.ingest(payload, now=now)

    def ingest(self, payload: dict[str, Any], now: Optional[datetime] = None) -> IngestionOutcome:
        """Validate, store, evaluate and publish one reading.

        ``ValidationError`` and ``StorageError`` propagate to the caller and
        leave the store untouched. Publishing problems are logged only.
        """
        start_time = time.perf_counter()
        try:
            candidate = validate_payload(payload, now=now)
        except ValidationError as exc:
            logger.info(
                "Rejected reading: %s",
                exc.message,
                extra={"code": exc.code, "field": exc.field},
            )
            raise

        stored = self.table.insert(apply_defaults(candidate, self.defaults))
        alerts = self.evaluator.evaluate(stored.temperature)
        self._notify(stored)

        logger.info(
            "Reading recorded",
            extra={
                "reading_id": stored.id,
                "user_id": stored.user_id,
                "sensor_id": stored.sensor_id,
                "alert_count": len(alerts),
                "processing_ms": int((time.perf_counter() - start_time) * 1000),
            },
        )
        for alert in alerts:
            logger.warning(alert.message, extra={"reading_id": stored.id})

        return IngestionOutcome(reading=stored, alerts=alerts)

    def shutdown(self) -> None:
        """Stop fanout workers during application shutdown."""
        self.notifier.shutdown()

    def _notify(self, reading: StoredReading) -> None:
        try:
            future = self.notifier.publish(reading)
        except RuntimeError:
            logger.exception(
                "Could not schedule subscriber notification",
                extra={"reading_id": reading.id},
            )
            return
        future.add_done_callback(lambda f, rid=reading.id: self._log_delivery(f, rid))

    @staticmethod
    def _log_delivery(future, reading_id: str) -> None:
        if future.cancelled():
            logger.warning("Notification cancelled", extra={"reading_id": reading_id})
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Notification failed: %s", exc, extra={"reading_id": reading_id}
            )


@lru_cache
def build_default_ingestion_service(
    workers: Optional[int] = None,
) -> IngestionService:
    """Factory that wires the service from environment settings."""
    settings = get_settings()
    thresholds = AlertThresholds(
        low=settings.alert_low_threshold,
        high=settings.alert_high_threshold,
    )
    return IngestionService(
        table=build_default_table(),
        notifier=ChangeNotifier(workers=workers or settings.notifier_workers),
        evaluator=AlertEvaluator(thresholds),
    )
