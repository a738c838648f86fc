"""Rendering-surface capability interface.

The reconciler and selection controller talk to the map only through this
protocol, so neither depends on a particular map library.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from fleetsync.models.geo import Position
from fleetsync.models.render import CameraOptions, ControlKind, MarkerMeta

ClickHandler = Callable[[], None]


class RenderSurface(Protocol):
    """A map that can host markers and move its camera.

    ``mount_generation`` changes every time the surface is (re)mounted;
    markers created under one generation do not exist in the next. Marker
    and camera calls on an unmounted surface raise
    :class:`~fleetsync.exceptions.RenderSurfaceNotReadyError`.
    """

    @property
    def is_mounted(self) -> bool: ...

    @property
    def mount_generation(self) -> int: ...

    def create_marker(self, position: Position, meta: MarkerMeta, on_click: ClickHandler | None = None) -> str: ...

    def update_marker(self, marker_id: str, position: Position, meta: MarkerMeta) -> None: ...

    def remove_marker(self, marker_id: str) -> None: ...

    def pan_to(self, position: Position, options: CameraOptions) -> None: ...

    def add_control(self, kind: ControlKind) -> None: ...
