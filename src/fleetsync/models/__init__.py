"""Data models for fleetsync."""

from fleetsync.models._base import FleetBaseModel, FleetEnum
from fleetsync.models.entity import Entity, EntityKind, EntityStatus, Occupancy
from fleetsync.models.fix import AccuracyClass, Fix, LocationMode
from fleetsync.models.geo import Position
from fleetsync.models.gps import GpsReading
from fleetsync.models.render import CameraOptions, ControlKind, MarkerMeta
from fleetsync.models.session import SessionIdentity, SessionRole

__all__ = [
    "AccuracyClass",
    "CameraOptions",
    "ControlKind",
    "Entity",
    "EntityKind",
    "EntityStatus",
    "Fix",
    "FleetBaseModel",
    "FleetEnum",
    "GpsReading",
    "LocationMode",
    "MarkerMeta",
    "Occupancy",
    "Position",
    "SessionIdentity",
    "SessionRole",
]
