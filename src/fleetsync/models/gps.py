"""GPS payload model for external telemetry feeds."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from fleetsync._normalize import normalize_heading, parse_timestamp, safe_float, safe_str
from fleetsync.models.fix import AccuracyClass, Fix
from fleetsync.models.geo import Position


class GpsReading(BaseModel):
    """A position payload as received from an MQTT or HTTP feed.

    Numeric fields are ``None`` when the value is absent or unparseable.

    Parameters
    ----------
    entity_id : str or None
        Entity the reading belongs to, when the feed carries it.
    latitude, longitude : float or None
        Coordinate in degrees.
    speed : float or None
        Ground speed.
    direction : float or None
        Heading in degrees.
    accuracy_m : float or None
        Reported horizontal accuracy radius in meters.
    gps_timestamp : Any
        Fix time as epoch seconds, epoch milliseconds or ISO string.
    raw : dict
        Full payload dict.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    entity_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("entity_id", "entityId", "busId", "bus_id", "id"),
    )
    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat", "gpsLatitude"))
    longitude: float | None = Field(
        default=None,
        validation_alias=AliasChoices("longitude", "lng", "lon", "gpsLongitude"),
    )
    speed: float | None = Field(default=None, validation_alias=AliasChoices("speed", "gpsSpeed"))
    direction: float | None = Field(default=None, validation_alias=AliasChoices("direction", "heading", "course"))
    accuracy_m: float | None = Field(default=None, validation_alias=AliasChoices("accuracy", "accuracy_m", "hdop"))
    gps_timestamp: Any = Field(
        default=None,
        validation_alias=AliasChoices("gpsTimestamp", "gpsTime", "timestamp", "time", "gps_timestamp"),
    )
    raw: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _merge_nested_data(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        nested = values.get("coords") or values.get("data")
        if isinstance(nested, dict):
            merged.update(nested)
        merged.setdefault("raw", values)
        return merged

    @field_validator("latitude", "longitude", "speed", "direction", "accuracy_m", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("entity_id", mode="before")
    @classmethod
    def _coerce_entity_id(cls, value: Any) -> str | None:
        return safe_str(value)

    @property
    def has_position(self) -> bool:
        if self.latitude is None or self.longitude is None:
            return False
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0

    def to_fix(self) -> Fix | None:
        """Convert into a high-accuracy :class:`Fix`; ``None`` without a usable coordinate."""
        if self.latitude is None or self.longitude is None or not self.has_position:
            return None
        kwargs: dict[str, Any] = {
            "position": Position(lat=self.latitude, lng=self.longitude),
            "accuracy": AccuracyClass.HIGH,
            "heading": normalize_heading(self.direction) if self.direction is not None else None,
            "speed": self.speed if self.speed is not None and self.speed >= 0 else None,
            "accuracy_m": self.accuracy_m,
        }
        timestamp = parse_timestamp(self.gps_timestamp)
        if timestamp is not None:
            kwargs["timestamp"] = timestamp
        return Fix(**kwargs)
