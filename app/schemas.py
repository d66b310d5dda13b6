"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class StoredReading(BaseModel):
    """A reading as persisted by the store and returned to clients."""

    id: str = Field(..., description="Store-assigned identifier.")
    user_id: str
    sensor_id: str
    temperature: float = Field(..., ge=-50, le=150)
    ph_level: float
    ec_level: float
    co2_level: float
    ndvi_value: float
    location: str
    recorded_at: datetime = Field(..., description="When the device took the measurement.")
    created_at: datetime = Field(..., description="When the store accepted the write.")


class AlertPayload(BaseModel):
    level: str
    message: str


class IngestResponse(BaseModel):
    """Body returned with ``201 Created`` after a reading is stored."""

    success: bool = True
    message: str = "Temperature recorded successfully"
    data: StoredReading
    alerts: Optional[List[AlertPayload]] = None
    timestamp: datetime


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str
    field: Optional[str] = None
    timestamp: datetime


class TemperatureStats(BaseModel):
    """Aggregate temperature metrics over a time window."""

    avg: float
    min: float
    max: float
    count: int = Field(..., ge=1)


class LatestReadingsResponse(BaseModel):
    success: bool = True
    data: List[StoredReading] = Field(default_factory=list)


class StatsResponse(BaseModel):
    success: bool = True
    data: Optional[TemperatureStats] = Field(
        default=None, description="Null when no readings fall inside the window."
    )
