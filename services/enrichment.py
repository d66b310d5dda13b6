"""Fill measurements a device did not report with configured defaults."""

from __future__ import annotations

from models.records import NewReading, ReadingCandidate, SensorDefaults


def _pick(value, default):
    return default if value is None else value


def apply_defaults(candidate: ReadingCandidate, defaults: SensorDefaults) -> NewReading:
    """Merge a validated candidate with the defaults table.

    Values supplied by the caller always win; only absent fields are filled.
    """

    return NewReading(
        user_id=candidate.user_id,
        sensor_id=_pick(candidate.sensor_id, defaults.sensor_id),
        temperature=candidate.temperature,
        ph_level=_pick(candidate.ph_level, defaults.ph_level),
        ec_level=_pick(candidate.ec_level, defaults.ec_level),
        co2_level=_pick(candidate.co2_level, defaults.co2_level),
        ndvi_value=_pick(candidate.ndvi_value, defaults.ndvi_value),
        location=_pick(candidate.location, defaults.location),
        recorded_at=candidate.recorded_at,
    )
