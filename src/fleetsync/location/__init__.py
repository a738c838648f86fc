"""Position acquisition: providers, approximation zones and the arbitrating source."""

from fleetsync.location.providers import (
    HttpPositionProvider,
    MqttPositionProvider,
    PositionProvider,
    UnavailablePositionProvider,
    WatchHandle,
    parse_position_payload,
)
from fleetsync.location.source import AcquisitionHandle, LocationSource
from fleetsync.location.zones import REGION_ZONE, ApproximationZone, default_zones

__all__ = [
    "REGION_ZONE",
    "AcquisitionHandle",
    "ApproximationZone",
    "HttpPositionProvider",
    "LocationSource",
    "MqttPositionProvider",
    "PositionProvider",
    "UnavailablePositionProvider",
    "WatchHandle",
    "default_zones",
    "parse_position_payload",
]
