"""Seed coordinates for network (cell-tower) position approximation."""

from __future__ import annotations

from pydantic import Field

from fleetsync.models._base import FleetBaseModel
from fleetsync.models.geo import Position

REGION_ZONE = "region"


class ApproximationZone(FleetBaseModel):
    """An area whose cell coverage resolves to one seed coordinate."""

    name: str = Field(..., min_length=1)
    center: Position
    description: str = ""


def default_zones(region_center: Position) -> dict[str, ApproximationZone]:
    """Zones for the Punjab service area, keyed by name.

    ``region`` always maps to *region_center*, the configured fallback.
    """
    zones = [
        ApproximationZone(name=REGION_ZONE, center=region_center, description="Regional center"),
        ApproximationZone(name="amritsar", center=Position(lat=31.6340, lng=75.8573), description="Amritsar"),
        ApproximationZone(name="ludhiana", center=Position(lat=30.9010, lng=75.8573), description="Ludhiana"),
        ApproximationZone(name="chandigarh", center=Position(lat=30.7333, lng=76.7794), description="Chandigarh"),
        ApproximationZone(name="patiala", center=Position(lat=30.3398, lng=76.3869), description="Patiala"),
        ApproximationZone(name="jalandhar", center=Position(lat=31.3260, lng=75.5762), description="Jalandhar"),
        ApproximationZone(name="bathinda", center=Position(lat=30.2110, lng=74.9455), description="Bathinda"),
    ]
    return {zone.name: zone for zone in zones}
