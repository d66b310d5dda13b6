"""Read-side helpers consumed by the dashboard."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from app.schemas import StoredReading, TemperatureStats
from datastore.readings_table import ReadingsTable
from services.aggregator import Aggregator


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class QueryFacade:
    def __init__(self, table: ReadingsTable, aggregator: Aggregator) -> None:
        self.table = table
        self.aggregator = aggregator

    def latest_n(self, limit: int = 10, owner_id: Optional[str] = None) -> List[StoredReading]:
        """Up to ``limit`` readings, most recent ``recorded_at`` first."""
        if limit < 1:
            raise ValueError("limit must be a positive integer.")
        return self.table.query_latest(owner_id=owner_id, limit=limit)

    def stats_over_range(
        self,
        start: datetime,
        end: datetime,
        owner_id: Optional[str] = None,
    ) -> Optional[TemperatureStats]:
        """Temperature statistics for readings recorded in ``[start, end]``.

        Returns ``None`` when no reading falls inside the window.
        """
        start, end = _as_utc(start), _as_utc(end)
        if start > end:
            raise ValueError("start must not be after end.")
        readings = self.table.query_range(start=start, end=end, owner_id=owner_id)
        return self.aggregator.temperature_stats(readings)
