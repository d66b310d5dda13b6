from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import List, Optional
from uuid import uuid4

from pydantic import ValidationError

from app.schemas import StoredReading
from models.records import NewReading
from services.errors import StorageError
from settings import get_settings

logger = logging.getLogger(__name__)


class ReadingsTable:
    """Append-only table of sensor readings.

    Rows are never updated or deleted. Every read hands out deep copies so a
    caller cannot mutate what has been stored.
    """

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._rows: List[StoredReading] = []
        self.persistence_path = persistence_path
        self._lock = Lock()
        self._closed = False
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def insert(self, reading: NewReading) -> StoredReading:
        """Append ``reading`` and return the stored row with its generated fields."""

        row = StoredReading(
            id=str(uuid4()),
            created_at=datetime.now(timezone.utc),
            **asdict(reading),
        )
        with self._lock:
            if self._closed:
                raise StorageError(f"Table {self.name!r} is not available.")
            self._rows.append(row)
            try:
                self._persist()
            except OSError as exc:
                self._rows.pop()
                raise StorageError(f"Database error: {exc}") from exc
        return row.model_copy(deep=True)

    def query_latest(self, owner_id: Optional[str] = None, limit: int = 10) -> List[StoredReading]:
        with self._lock:
            rows = self._select(owner_id)
        rows.sort(key=lambda row: (row.recorded_at, row.created_at), reverse=True)
        return [row.model_copy(deep=True) for row in rows[:limit]]

    def query_range(
        self,
        start: datetime,
        end: datetime,
        owner_id: Optional[str] = None,
    ) -> List[StoredReading]:
        with self._lock:
            rows = self._select(owner_id)
        return [
            row.model_copy(deep=True) for row in rows if start <= row.recorded_at <= end
        ]

    def scan(self) -> List[StoredReading]:
        """Return deep copies of every stored reading in insertion order."""

        with self._lock:
            return [row.model_copy(deep=True) for row in self._rows]

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def _select(self, owner_id: Optional[str]) -> List[StoredReading]:
        if self._closed:
            raise StorageError(f"Table {self.name!r} is not available.")
        if owner_id is None:
            return list(self._rows)
        return [row for row in self._rows if row.user_id == owner_id]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = [row.model_dump(mode="json") for row in self._rows]
        staging = self.persistence_path.with_name(self.persistence_path.name + ".tmp")
        staging.write_text(json.dumps(payload, indent=2))
        os.replace(staging, self.persistence_path)

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            data = json.loads(self.persistence_path.read_text() or "[]")
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "Ignoring unreadable readings file %s: %s", self.persistence_path, exc
            )
            return

        try:
            rows = [StoredReading.model_validate(item) for item in data]
        except (TypeError, ValidationError) as exc:
            logger.warning(
                "Ignoring unreadable readings file %s: %s", self.persistence_path, exc
            )
            return
        self._rows = rows


@lru_cache
def build_default_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> ReadingsTable:
    settings = get_settings()
    table_name = settings.table_name if name is None else name
    table_path = settings.table_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return ReadingsTable(name=table_name, persistence_path=persistence)
