"""Render-surface value types."""

from __future__ import annotations

from pydantic import Field

from fleetsync._constants import SELECT_DURATION_MS, SELECT_TILT, SELECT_ZOOM
from fleetsync.models._base import FleetBaseModel, FleetEnum
from fleetsync.models.entity import Entity, EntityStatus


class ControlKind(FleetEnum):
    NAVIGATION = "navigation"
    GEOLOCATE = "geolocate"


class CameraOptions(FleetBaseModel):
    """Parameters of a camera move."""

    zoom: float = SELECT_ZOOM
    tilt: float = Field(default=SELECT_TILT, ge=0.0, le=85.0)
    duration_ms: int = Field(default=SELECT_DURATION_MS, ge=0)


class MarkerMeta(FleetBaseModel):
    """Everything a marker shows besides its position.

    Two metas compare equal when nothing visible changed, which is what
    lets the reconciler skip redundant updates.
    """

    label: str
    heading: float
    status: EntityStatus
    occupancy: str | None = None
    next_stop: str = ""
    eta: str = ""

    @classmethod
    def from_entity(cls, entity: Entity) -> MarkerMeta:
        return cls(
            label=entity.label,
            heading=entity.heading,
            status=entity.status,
            occupancy=str(entity.occupancy) if entity.occupancy is not None else None,
            next_stop=entity.next_stop,
            eta=entity.eta,
        )
