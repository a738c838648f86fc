"""Position fix model."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import Field

from fleetsync.models._base import FleetBaseModel, FleetEnum
from fleetsync.models.geo import Position


class AccuracyClass(FleetEnum):
    HIGH = "high"
    LOW = "low"
    FALLBACK = "fallback"


class LocationMode(FleetEnum):
    GPS = "gps"
    NETWORK = "network"


class Fix(FleetBaseModel):
    """A single position observation."""

    position: Position
    accuracy: AccuracyClass
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    heading: float | None = Field(default=None, allow_inf_nan=False)
    speed: float | None = Field(default=None, ge=0.0, allow_inf_nan=False)
    accuracy_m: float | None = None

    @property
    def is_fallback(self) -> bool:
        return self.accuracy == AccuracyClass.FALLBACK
