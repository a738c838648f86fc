"""fleetsync - live bus-fleet tracking and map synchronization."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fleetsync")
except PackageNotFoundError:
    __version__ = "0+local"
from fleetsync.config import FleetConfig
from fleetsync.escalation import EmergencyEscalation, EmergencySignal, EscalationPhase
from fleetsync.exceptions import (
    AcquisitionFailure,
    DispatchError,
    FleetConfigError,
    FleetError,
    LocationAcquisitionError,
    PersistenceError,
    RenderSurfaceNotReadyError,
)
from fleetsync.location import (
    HttpPositionProvider,
    LocationSource,
    MqttPositionProvider,
    PositionProvider,
    UnavailablePositionProvider,
)
from fleetsync.models import (
    AccuracyClass,
    CameraOptions,
    Entity,
    EntityKind,
    EntityStatus,
    Fix,
    LocationMode,
    MarkerMeta,
    Occupancy,
    Position,
    SessionIdentity,
)
from fleetsync.persistence import FleetPersistence, JsonFileKeyValueStore, MemoryKeyValueStore
from fleetsync.prompts import PromptBroker, PromptKind, PromptRequest, PromptResponse
from fleetsync.render import HeadlessSurface, MapSyncReconciler, RenderSurface, SyncReport
from fleetsync.selection import SelectionController
from fleetsync.simulation import KinematicSimulator
from fleetsync.state import EntityRegistry
from fleetsync.tracker import FleetTracker

__all__ = [
    "AccuracyClass",
    "AcquisitionFailure",
    "CameraOptions",
    "DispatchError",
    "EmergencyEscalation",
    "EmergencySignal",
    "Entity",
    "EntityKind",
    "EntityRegistry",
    "EntityStatus",
    "EscalationPhase",
    "Fix",
    "FleetConfig",
    "FleetConfigError",
    "FleetError",
    "FleetPersistence",
    "FleetTracker",
    "HeadlessSurface",
    "HttpPositionProvider",
    "JsonFileKeyValueStore",
    "KinematicSimulator",
    "LocationAcquisitionError",
    "LocationMode",
    "LocationSource",
    "MapSyncReconciler",
    "MarkerMeta",
    "MemoryKeyValueStore",
    "MqttPositionProvider",
    "Occupancy",
    "PersistenceError",
    "Position",
    "PositionProvider",
    "PromptBroker",
    "PromptKind",
    "PromptRequest",
    "PromptResponse",
    "RenderSurface",
    "RenderSurfaceNotReadyError",
    "SelectionController",
    "SessionIdentity",
    "SyncReport",
    "UnavailablePositionProvider",
    "__version__",
]
