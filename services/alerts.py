"""Threshold alerts derived from a reading's temperature."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from models.records import Alert

WARNING_LEVEL = "warning"


@dataclass(frozen=True)
class AlertThresholds:
    low: float = 15.0
    high: float = 35.0

    def __post_init__(self) -> None:
        if not self.low < self.high:
            raise ValueError(
                f"Alert thresholds overlap: low ({self.low}) must be below high ({self.high})."
            )


class AlertEvaluator:
    """Pure component producing advisory alerts; it never blocks persistence."""

    def __init__(self, thresholds: AlertThresholds | None = None) -> None:
        self.thresholds = thresholds or AlertThresholds()

    def evaluate(self, temperature: float) -> List[Alert]:
        alerts: List[Alert] = []
        low, high = self.thresholds.low, self.thresholds.high

        if temperature < low:
            alerts.append(
                Alert(
                    level=WARNING_LEVEL,
                    message=f"Temperature is LOW: {temperature}°C (below {low}°C threshold)",
                )
            )
        if temperature > high:
            alerts.append(
                Alert(
                    level=WARNING_LEVEL,
                    message=f"Temperature is HIGH: {temperature}°C (above {high}°C threshold)",
                )
            )

        return alerts
