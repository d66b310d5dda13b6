"""Aggregation logic for sensor readings."""

from __future__ import annotations

from typing import Iterable, Optional

from app.schemas import StoredReading, TemperatureStats


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def temperature_stats(self, readings: Iterable[StoredReading]) -> Optional[TemperatureStats]:
        """Return avg/min/max/count of temperatures, or ``None`` for no readings."""

        count = 0
        total = 0.0
        minimum: float | None = None
        maximum: float | None = None

        for reading in readings:
            value = reading.temperature
            count += 1
            total += value

            if minimum is None or value < minimum:
                minimum = value
            if maximum is None or value > maximum:
                maximum = value

        if count == 0 or minimum is None or maximum is None:
            return None

        return TemperatureStats(avg=total / count, min=minimum, max=maximum, count=count)
