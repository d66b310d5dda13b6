"""Validation of raw ingestion payloads."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Optional

from models.records import ReadingCandidate
from services.errors import InvalidField, MissingField, OutOfRange, TypeMismatch

TEMPERATURE_MIN = -50.0
TEMPERATURE_MAX = 150.0


@dataclass(frozen=True)
class MeasurementDomain:
    """Inclusive bounds for an optional measurement; ``None`` means unbounded."""

    label: str
    minimum: Optional[float] = None
    maximum: Optional[float] = None

    def contains(self, value: float) -> bool:
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True

    def describe(self) -> str:
        if self.maximum is None:
            return f"must be at least {self.minimum:g}"
        return f"must be between {self.minimum:g} and {self.maximum:g}"


# Checked in this order; the first failure is reported.
MEASUREMENT_DOMAINS = {
    "ph_level": MeasurementDomain("pH level", 0.0, 14.0),
    "ec_level": MeasurementDomain("EC level", 0.0),
    "co2_level": MeasurementDomain("CO2 level", 0.0),
    "ndvi_value": MeasurementDomain("NDVI value", 0.0, 1.0),
}

_TEXT_FIELDS = ("sensor_id", "location")

_TWO_PLACES = Decimal("0.01")


def _is_number(value: Any) -> bool:
    # bool is an int subclass but is not a measurement.
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _round(value: float) -> float:
    # Half away from zero on the exact binary value, like JavaScript's toFixed(2).
    return float(Decimal(value).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def _as_float(value: Any, field: str, out_of_range: str) -> float:
    try:
        return float(value)
    except OverflowError as exc:
        raise OutOfRange(out_of_range, field=field) from exc


def _validate_temperature(payload: Mapping[str, Any]) -> float:
    temperature = payload.get("temperature")
    if temperature is None:
        raise MissingField("temperature")

    if not _is_number(temperature):
        raise TypeMismatch(
            f"Invalid temperature type: expected 'number', got '{type(temperature).__name__}'",
            field="temperature",
        )

    bounds = f"Must be between {TEMPERATURE_MIN:g}°C and {TEMPERATURE_MAX:g}°C"
    value = _as_float(temperature, "temperature", f"Invalid temperature. {bounds}")

    if math.isnan(value):
        raise TypeMismatch(
            "Temperature value is NaN (not a valid number)", field="temperature"
        )

    if not TEMPERATURE_MIN <= value <= TEMPERATURE_MAX:
        raise OutOfRange(
            f"Invalid temperature: {value:g}°C. {bounds}",
            field="temperature",
        )

    return _round(value)


def _validate_user_id(payload: Mapping[str, Any]) -> str:
    user_id = payload.get("user_id")
    if user_id is None or user_id == "":
        raise MissingField("user_id")

    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidField("Invalid user_id: must be a non-empty string", field="user_id")

    return user_id.strip()


def _validate_measurement(name: str, raw: Any) -> float:
    domain = MEASUREMENT_DOMAINS[name]
    out_of_range = f"Invalid {domain.label}: {domain.describe()}"
    if not _is_number(raw):
        raise TypeMismatch(f"Invalid {domain.label}: must be a number", field=name)

    value = _as_float(raw, name, out_of_range)
    if math.isnan(value):
        raise TypeMismatch(f"Invalid {domain.label}: must be a number", field=name)

    if not domain.contains(value):
        raise OutOfRange(out_of_range, field=name)

    return _round(value)


def _validate_text(name: str, value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise TypeMismatch(f"Invalid {name}: must be a string", field=name)
    return value


def parse_timestamp(value: Any, fallback: datetime) -> datetime:
    """Parse an ISO-8601 timestamp, returning ``fallback`` when it cannot be read."""

    if not isinstance(value, str):
        return fallback

    candidate = value.strip()
    if not candidate:
        return fallback

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return fallback

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def validate_payload(
    payload: Mapping[str, Any], now: Optional[datetime] = None
) -> ReadingCandidate:
    """Turn an untyped payload into a range-checked candidate reading.

    Raises a ``ValidationError`` subclass for the first rule that fails, in
    this order: temperature presence, type, range; user id; optional
    measurements; text fields. Absent optional values stay ``None`` so the
    enrichment step can fill them.
    """

    temperature = _validate_temperature(payload)
    user_id = _validate_user_id(payload)

    measurements: dict[str, Optional[float]] = {}
    for name in MEASUREMENT_DOMAINS:
        value = payload.get(name)
        measurements[name] = None if value is None else _validate_measurement(name, value)

    texts = {name: _validate_text(name, payload.get(name)) for name in _TEXT_FIELDS}

    received_at = now or datetime.now(timezone.utc)
    recorded_at = parse_timestamp(payload.get("timestamp"), fallback=received_at)

    return ReadingCandidate(
        user_id=user_id,
        temperature=temperature,
        recorded_at=recorded_at,
        sensor_id=texts["sensor_id"],
        location=texts["location"],
        **measurements,
    )
