"""Map synchronization: surface protocol, reconciler and a headless surface."""

from fleetsync.render.headless import HeadlessMarker, HeadlessSurface, SurfaceCall
from fleetsync.render.reconciler import MapSyncReconciler, SelectionSink, SyncReport
from fleetsync.render.surface import ClickHandler, RenderSurface

__all__ = [
    "ClickHandler",
    "HeadlessMarker",
    "HeadlessSurface",
    "MapSyncReconciler",
    "RenderSurface",
    "SelectionSink",
    "SurfaceCall",
    "SyncReport",
]
