"""Tracked entity model."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator, model_validator

from fleetsync._normalize import normalize_heading, parse_timestamp, safe_int
from fleetsync.models._base import FleetBaseModel, FleetEnum
from fleetsync.models.geo import Position


class EntityStatus(FleetEnum):
    ON_TIME = "on_time"
    DELAYED = "delayed"
    EARLY = "early"


class EntityKind(FleetEnum):
    VEHICLE = "vehicle"
    DRIVER = "driver"


class Occupancy(FleetBaseModel):
    """Passenger load, displayed as ``current/capacity``."""

    current: int = Field(default=0, ge=0)
    capacity: int = Field(..., ge=0)

    @model_validator(mode="before")
    @classmethod
    def _parse_fraction(cls, values: Any) -> Any:
        # Accept the "24/45" spelling used by the dashboard tables.
        if isinstance(values, str) and "/" in values:
            current, _, capacity = values.partition("/")
            return {"current": safe_int(current) or 0, "capacity": safe_int(capacity) or 0}
        return values

    def __str__(self) -> str:
        return f"{self.current}/{self.capacity}"


class Entity(FleetBaseModel):
    """A tracked vehicle or driver.

    Parameters
    ----------
    id : str
        Opaque identifier assigned by the registry; never changes.
    label : str
        Route or bus identifier shown on the map.
    position : Position
        Current coordinate.
    heading : float
        Degrees in ``[0, 360)``; other values are wrapped on construction.
    speed : float
        Non-negative simulation speed.
    status : EntityStatus
        Schedule adherence.
    occupancy : Occupancy or None
        Passenger load, when known.
    next_stop, eta : str
        Advisory display strings.
    last_updated : datetime or None
        Stamped by the registry on every write.
    kind : EntityKind
        Vehicle added by an operator, or driver-owned session entity.
    driver_id : str or None
        Driver whose session created the entity.
    """

    id: str = Field(..., min_length=1)
    label: str = ""
    position: Position
    heading: float = Field(default=0.0, allow_inf_nan=False)
    speed: float = Field(default=0.0, ge=0.0, allow_inf_nan=False)
    status: EntityStatus = EntityStatus.ON_TIME
    occupancy: Occupancy | None = None
    next_stop: str = ""
    eta: str = ""
    last_updated: datetime | None = None
    kind: EntityKind = EntityKind.VEHICLE
    driver_id: str | None = None

    @field_validator("heading", mode="after")
    @classmethod
    def _wrap_heading(cls, value: float) -> float:
        return normalize_heading(value)

    @field_validator("last_updated", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    def with_changes(self, **changes: Any) -> Entity:
        """Return a validated copy with *changes* applied.

        Unlike ``model_copy(update=...)`` this runs validation, so headings
        are wrapped and speeds checked.
        """
        data = self.model_dump()
        data.update(changes)
        return Entity.model_validate(data)
