"""Geographic primitives."""

from __future__ import annotations

from pydantic import Field

from fleetsync.models._base import FleetBaseModel


class Position(FleetBaseModel):
    """A WGS84 coordinate in degrees."""

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)

    def offset(self, *, d_lat: float = 0.0, d_lng: float = 0.0) -> Position:
        """Return a new position moved by the given degree deltas.

        Latitude is clamped to the poles and longitude wrapped into
        ``[-180, 180]`` so a long-running random walk never produces an
        invalid coordinate.
        """
        lat = max(-90.0, min(90.0, self.lat + d_lat))
        lng = self.lng + d_lng
        if lng > 180.0 or lng < -180.0:
            lng = ((lng + 180.0) % 360.0) - 180.0
        return Position(lat=lat, lng=lng)

    def as_lng_lat(self) -> tuple[float, float]:
        """Coordinate pair in the ``(lng, lat)`` order map libraries expect."""
        return (self.lng, self.lat)
