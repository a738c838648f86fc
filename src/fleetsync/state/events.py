"""Position source attribution."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fleetsync.models.fix import AccuracyClass


class PositionSource(StrEnum):
    SIMULATION = "simulation"
    GPS = "gps"
    NETWORK = "network"
    FALLBACK = "fallback"
    OPERATOR = "operator"


class Attribution(BaseModel):
    """Which external source last wrote an entity's position, and when."""

    model_config = ConfigDict(frozen=True)

    source: PositionSource
    accuracy: AccuracyClass | None = None
    at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
