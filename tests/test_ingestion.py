import json
import logging
import threading
import time
from datetime import datetime, timezone
from typing import List

import pytest

from app.schemas import StoredReading
from datastore.readings_table import ReadingsTable
from models.records import NewReading
from services.alerts import AlertEvaluator
from services.errors import BadRequestBody, MissingField, OutOfRange, StorageError
from services.ingestion import IngestionService
from services.notifier import ChangeNotifier
from services.queries import QueryFacade
from services.aggregator import Aggregator


def _build_service(table: ReadingsTable | None = None, workers: int = 1) -> IngestionService:
    return IngestionService(
        table=table or ReadingsTable(name="test"),
        notifier=ChangeNotifier(workers=workers),
        evaluator=AlertEvaluator(),
    )


@pytest.fixture()
def service() -> IngestionService:
    built = _build_service()
    yield built
    built.shutdown()


def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.01)
    pytest.fail("Condition was not met in time.")


def test_ingest_stores_enriched_reading(service: IngestionService) -> None:
    outcome = service.ingest({"temperature": 23.456, "user_id": "u1"})

    stored = outcome.reading
    assert stored.temperature == 23.46
    assert stored.user_id == "u1"
    assert stored.ph_level == 6.5
    assert stored.ec_level == 1.2
    assert stored.co2_level == 400.0
    assert stored.ndvi_value == 0.5
    assert stored.sensor_id == "ESP32_DEFAULT"
    assert stored.location == "Main Greenhouse"
    assert outcome.alerts == []
    assert service.table.scan() == [stored]


def test_ingest_uses_supplied_measurements(service: IngestionService) -> None:
    outcome = service.ingest(
        {
            "temperature": 25,
            "user_id": "u1",
            "sensor_id": "esp-7",
            "location": "Tunnel 2",
            "ph_level": 7.123,
            "ec_level": 2.0,
            "co2_level": 650,
            "ndvi_value": 0.8,
            "timestamp": "2024-04-01T06:00:00Z",
        }
    )

    stored = outcome.reading
    assert stored.ph_level == 7.12
    assert stored.co2_level == 650.0
    assert stored.sensor_id == "esp-7"
    assert stored.location == "Tunnel 2"
    assert stored.recorded_at == datetime(2024, 4, 1, 6, 0, tzinfo=timezone.utc)
    assert stored.created_at != stored.recorded_at


def test_invalid_timestamp_uses_ingestion_time(service: IngestionService) -> None:
    now = datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc)

    outcome = service.ingest({"temperature": 20, "user_id": "u1", "timestamp": "soon"}, now=now)

    assert outcome.reading.recorded_at == now


@pytest.mark.parametrize(
    "payload,error",
    [
        ({"user_id": "u1"}, MissingField),
        ({"temperature": 20}, MissingField),
        ({"temperature": 25, "user_id": "u1", "ph_level": 20}, OutOfRange),
    ],
)
def test_rejected_payload_persists_nothing(service: IngestionService, payload, error) -> None:
    with pytest.raises(error):
        service.ingest(payload)

    assert service.table.scan() == []


def test_low_and_high_alerts(service: IngestionService) -> None:
    low = service.ingest({"temperature": 10, "user_id": "u1"})
    high = service.ingest({"temperature": 40, "user_id": "u1"})

    assert [alert.level for alert in low.alerts] == ["warning"]
    assert "LOW" in low.alerts[0].message
    assert "HIGH" in high.alerts[0].message


@pytest.mark.parametrize("raw", [b"{not json", b"", b"\xff\xfe"])
def test_ingest_body_rejects_unparsable_json(service: IngestionService, raw: bytes) -> None:
    with pytest.raises(BadRequestBody):
        service.ingest_body(raw)


def test_ingest_body_rejects_non_object(service: IngestionService) -> None:
    with pytest.raises(BadRequestBody) as excinfo:
        service.ingest_body(b"[1, 2, 3]")

    assert "JSON object" in excinfo.value.message


def test_ingest_body_accepts_json_object(service: IngestionService) -> None:
    outcome = service.ingest_body(json.dumps({"temperature": 18.5, "user_id": "u9"}).encode())

    assert outcome.reading.user_id == "u9"


def test_subscriber_registered_before_ingestion_receives_reading(service: IngestionService) -> None:
    received: List[StoredReading] = []
    service.notifier.subscribe(received.append, owner_id="u1")

    outcome = service.ingest({"temperature": 21, "user_id": "u1"})
    _wait_for(lambda: len(received) == 1)

    assert received == [outcome.reading]


def test_subscriber_registered_after_ingestion_receives_nothing(service: IngestionService) -> None:
    service.ingest({"temperature": 21, "user_id": "u1"})
    received: List[StoredReading] = []
    service.notifier.subscribe(received.append)

    time.sleep(0.1)

    assert received == []


def test_storage_failure_is_raised_and_not_published() -> None:
    class UnavailableTable(ReadingsTable):
        def insert(self, reading: NewReading) -> StoredReading:
            raise StorageError("Database error: connection refused")

    service = _build_service(table=UnavailableTable(name="test"))
    received: List[StoredReading] = []
    service.notifier.subscribe(received.append)
    try:
        with pytest.raises(StorageError):
            service.ingest({"temperature": 21, "user_id": "u1"})
        time.sleep(0.05)
        assert received == []
    finally:
        service.shutdown()


def test_notifier_failure_does_not_fail_ingestion(caplog) -> None:
    service = _build_service()
    service.notifier.shutdown()

    with caplog.at_level(logging.ERROR):
        outcome = service.ingest({"temperature": 21, "user_id": "u1"})

    assert outcome.reading.temperature == 21.0
    assert service.table.scan() == [outcome.reading]
    assert any(
        "Could not schedule subscriber notification" in record.getMessage()
        for record in caplog.records
    )


def test_slow_subscriber_does_not_delay_ingestion(service: IngestionService) -> None:
    release = threading.Event()
    service.notifier.subscribe(lambda reading: release.wait(timeout=5))

    start = time.perf_counter()
    service.ingest({"temperature": 21, "user_id": "u1"})
    elapsed = time.perf_counter() - start
    release.set()

    assert elapsed < 1.0


def test_ingestion_logs_recorded_reading(service: IngestionService, caplog) -> None:
    with caplog.at_level(logging.INFO):
        outcome = service.ingest({"temperature": 12, "user_id": "u1"})

    records = [record for record in caplog.records if record.name == "services.ingestion"]
    assert any(getattr(record, "reading_id", None) == outcome.reading.id for record in records)
    assert any(record.levelno == logging.WARNING and "LOW" in record.getMessage() for record in records)


def test_round_trip_through_latest(service: IngestionService) -> None:
    outcome = service.ingest({"temperature": 19.99, "user_id": "u1"})
    facade = QueryFacade(table=service.table, aggregator=Aggregator())

    latest = facade.latest_n(1, owner_id="u1")

    assert latest == [outcome.reading]
