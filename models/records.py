"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional


@dataclass(frozen=True)
class SensorDefaults:
    """Fallback values for measurements a device did not report."""

    ph_level: float = 6.5
    ec_level: float = 1.2
    co2_level: float = 400.0
    ndvi_value: float = 0.5
    sensor_id: str = "ESP32_DEFAULT"
    location: str = "Main Greenhouse"


@dataclass(slots=True)
class ReadingCandidate:
    """A validated reading whose optional fields may still be absent."""

    user_id: str
    temperature: float
    recorded_at: datetime
    sensor_id: Optional[str] = None
    location: Optional[str] = None
    ph_level: Optional[float] = None
    ec_level: Optional[float] = None
    co2_level: Optional[float] = None
    ndvi_value: Optional[float] = None


@dataclass(slots=True)
class NewReading:
    """A fully populated reading ready to be appended to the store."""

    user_id: str
    sensor_id: str
    temperature: float
    ph_level: float
    ec_level: float
    co2_level: float
    ndvi_value: float
    location: str
    recorded_at: datetime


@dataclass(frozen=True, slots=True)
class Alert:
    """Advisory message derived from a reading; never persisted."""

    level: str
    message: str

    def as_dict(self) -> Dict[str, str]:
        return {"level": self.level, "message": self.message}
