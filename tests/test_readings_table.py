"""Unit tests for the append-only readings table."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from datastore.readings_table import ReadingsTable
from models.records import NewReading
from services.errors import StorageError

BASE = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _reading(
    user_id: str = "u1",
    temperature: float = 22.5,
    minutes: int = 0,
) -> NewReading:
    return NewReading(
        user_id=user_id,
        sensor_id="esp-1",
        temperature=temperature,
        ph_level=6.5,
        ec_level=1.2,
        co2_level=400.0,
        ndvi_value=0.5,
        location="Main Greenhouse",
        recorded_at=BASE + timedelta(minutes=minutes),
    )


def test_insert_assigns_id_and_created_at() -> None:
    table = ReadingsTable(name="farming_data")

    stored = table.insert(_reading())

    assert stored.id
    assert stored.created_at.tzinfo is not None
    assert stored.recorded_at == BASE
    assert stored.temperature == 22.5


def test_insert_generates_unique_ids() -> None:
    table = ReadingsTable(name="farming_data")

    ids = {table.insert(_reading()).id for _ in range(5)}

    assert len(ids) == 5


def test_reads_return_copies() -> None:
    table = ReadingsTable(name="farming_data")
    table.insert(_reading())

    fetched = table.query_latest()[0]
    fetched.temperature = 99.0

    assert table.query_latest()[0].temperature == 22.5


def test_query_latest_orders_by_recorded_at_descending() -> None:
    table = ReadingsTable(name="farming_data")
    table.insert(_reading(temperature=1.0, minutes=5))
    table.insert(_reading(temperature=2.0, minutes=30))
    table.insert(_reading(temperature=3.0, minutes=10))

    latest = table.query_latest(limit=2)

    assert [row.temperature for row in latest] == [2.0, 3.0]


def test_query_latest_filters_by_owner() -> None:
    table = ReadingsTable(name="farming_data")
    table.insert(_reading(user_id="u1", minutes=1))
    table.insert(_reading(user_id="u2", minutes=2))

    rows = table.query_latest(owner_id="u1")

    assert [row.user_id for row in rows] == ["u1"]


def test_query_range_is_inclusive() -> None:
    table = ReadingsTable(name="farming_data")
    for minutes in (0, 10, 20, 30):
        table.insert(_reading(minutes=minutes))

    rows = table.query_range(start=BASE + timedelta(minutes=10), end=BASE + timedelta(minutes=20))

    assert sorted(row.recorded_at for row in rows) == [
        BASE + timedelta(minutes=10),
        BASE + timedelta(minutes=20),
    ]


def test_insert_persists_to_disk_and_reloads(tmp_path: Path) -> None:
    path = tmp_path / "readings.json"
    table = ReadingsTable(name="farming_data", persistence_path=path)

    stored = table.insert(_reading())

    payload = json.loads(path.read_text())
    assert payload[0]["id"] == stored.id

    reloaded = ReadingsTable(name="farming_data", persistence_path=path)
    assert reloaded.scan() == [stored]


@pytest.mark.parametrize(
    "contents",
    ["{not json", '{"rows": []}', '[{"id": "x"}]', "42"],
)
def test_corrupt_file_is_ignored_with_warning(tmp_path: Path, caplog, contents: str) -> None:
    path = tmp_path / "readings.json"
    path.write_text(contents)

    with caplog.at_level("WARNING"):
        table = ReadingsTable(name="farming_data", persistence_path=path)

    assert table.scan() == []
    assert any("unreadable" in record.getMessage() for record in caplog.records)


def test_failed_write_rolls_back_and_raises(tmp_path: Path) -> None:
    class FailingTable(ReadingsTable):
        def _persist(self) -> None:
            raise OSError("disk full")

    table = FailingTable(name="farming_data", persistence_path=tmp_path / "readings.json")

    with pytest.raises(StorageError) as excinfo:
        table.insert(_reading())

    assert "disk full" in excinfo.value.message
    assert table.scan() == []


def test_persist_replaces_file_without_leaving_staging_copy(tmp_path: Path) -> None:
    path = tmp_path / "readings.json"
    table = ReadingsTable(name="farming_data", persistence_path=path)

    table.insert(_reading(minutes=1))
    table.insert(_reading(minutes=2))

    assert sorted(p.name for p in tmp_path.iterdir()) == ["readings.json"]
    assert len(ReadingsTable(name="farming_data", persistence_path=path).scan()) == 2


def test_failed_replace_keeps_previous_file(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "readings.json"
    table = ReadingsTable(name="farming_data", persistence_path=path)
    first = table.insert(_reading())
    before = path.read_text()

    def refuse(src, dst) -> None:
        raise OSError("rename refused")

    monkeypatch.setattr("datastore.readings_table.os.replace", refuse)

    with pytest.raises(StorageError):
        table.insert(_reading(minutes=5))

    assert path.read_text() == before
    assert table.scan() == [first]


def test_closed_table_raises_storage_error() -> None:
    table = ReadingsTable(name="farming_data")
    table.close()

    with pytest.raises(StorageError):
        table.insert(_reading())
    with pytest.raises(StorageError):
        table.query_latest()


def test_concurrent_inserts_are_all_kept() -> None:
    table = ReadingsTable(name="farming_data")

    def worker(index: int) -> None:
        for offset in range(25):
            table.insert(_reading(user_id=f"u{index}", minutes=offset))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(table.scan()) == 100
    assert len(table.query_latest(owner_id="u2", limit=1000)) == 25
