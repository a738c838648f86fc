"""In-memory rendering surface.

Keeps markers in a dict and records every call, which makes it useful for
headless runs (logging a fleet without a browser) and for tests.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field

from fleetsync.exceptions import RenderSurfaceNotReadyError
from fleetsync.models.geo import Position
from fleetsync.models.render import CameraOptions, ControlKind, MarkerMeta
from fleetsync.render.surface import ClickHandler

_logger = logging.getLogger(__name__)


@dataclass
class HeadlessMarker:
    marker_id: str
    position: Position
    meta: MarkerMeta
    on_click: ClickHandler | None = None


@dataclass(frozen=True)
class SurfaceCall:
    """One recorded surface operation."""

    op: str
    target: str | None = None


@dataclass
class CameraState:
    center: Position | None = None
    options: CameraOptions = field(default_factory=CameraOptions)


class HeadlessSurface:
    """A :class:`~fleetsync.render.surface.RenderSurface` without a screen."""

    def __init__(self, *, mounted: bool = True) -> None:
        self._ids = itertools.count(1)
        self._generation = 0
        self._mounted = False
        self.markers: dict[str, HeadlessMarker] = {}
        self.calls: list[SurfaceCall] = []
        self.controls: list[ControlKind] = []
        self.camera = CameraState()
        if mounted:
            self.mount()

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    @property
    def mount_generation(self) -> int:
        return self._generation

    def mount(self) -> None:
        self._generation += 1
        self._mounted = True
        self.markers.clear()
        self.controls.clear()
        _logger.debug("Surface mounted generation=%d", self._generation)

    def unmount(self) -> None:
        """Tear the surface down; its markers go with it."""
        self._mounted = False
        self.markers.clear()
        _logger.debug("Surface unmounted generation=%d", self._generation)

    def _require_mounted(self) -> None:
        if not self._mounted:
            raise RenderSurfaceNotReadyError("Surface is not mounted")

    def count(self, op: str) -> int:
        return sum(1 for call in self.calls if call.op == op)

    def create_marker(self, position: Position, meta: MarkerMeta, on_click: ClickHandler | None = None) -> str:
        self._require_mounted()
        marker_id = f"m{next(self._ids)}"
        self.markers[marker_id] = HeadlessMarker(marker_id, position, meta, on_click)
        self.calls.append(SurfaceCall("create", marker_id))
        return marker_id

    def update_marker(self, marker_id: str, position: Position, meta: MarkerMeta) -> None:
        self._require_mounted()
        marker = self.markers.get(marker_id)
        if marker is None:
            raise KeyError(marker_id)
        marker.position = position
        marker.meta = meta
        self.calls.append(SurfaceCall("update", marker_id))

    def remove_marker(self, marker_id: str) -> None:
        self._require_mounted()
        self.markers.pop(marker_id, None)
        self.calls.append(SurfaceCall("remove", marker_id))

    def pan_to(self, position: Position, options: CameraOptions) -> None:
        self._require_mounted()
        self.camera = CameraState(center=position, options=options)
        self.calls.append(SurfaceCall("pan"))

    def add_control(self, kind: ControlKind) -> None:
        self._require_mounted()
        self.controls.append(kind)
        self.calls.append(SurfaceCall("control", str(kind)))

    def click(self, marker_id: str) -> None:
        """Simulate a user clicking a marker."""
        marker = self.markers[marker_id]
        if marker.on_click is not None:
            marker.on_click()
