"""Focused-entity tracking and camera control."""

from __future__ import annotations

import logging
from collections.abc import Callable

from fleetsync import _constants as c
from fleetsync.exceptions import RenderSurfaceNotReadyError
from fleetsync.models.entity import Entity
from fleetsync.models.geo import Position
from fleetsync.models.render import CameraOptions
from fleetsync.render.surface import RenderSurface
from fleetsync.state.registry import EntityRegistry

_logger = logging.getLogger(__name__)


class SelectionController:
    """Track which entity is focused and point the camera at it.

    Positions are always read from the registry at the moment of the camera
    move; the controller only remembers the focused id.
    """

    def __init__(
        self,
        registry: EntityRegistry,
        surface: RenderSurface,
        *,
        camera: CameraOptions | None = None,
        follow: bool = False,
    ) -> None:
        self._registry = registry
        self._surface = surface
        self._camera = camera or CameraOptions()
        self._follow_camera = self._camera.model_copy(update={"duration_ms": c.FOLLOW_DURATION_MS})
        self._follow = follow
        self._focused: str | None = None
        self._last_center: Position | None = None
        self._listeners: list[Callable[[str | None], None]] = []

    @property
    def follow(self) -> bool:
        return self._follow

    @follow.setter
    def follow(self, value: bool) -> None:
        self._follow = value

    def on_change(self, callback: Callable[[str | None], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._focused)

    def _pan(self, position: Position, options: CameraOptions) -> None:
        try:
            self._surface.pan_to(position, options)
        except RenderSurfaceNotReadyError:
            _logger.debug("Camera move skipped; surface not mounted")
            return
        self._last_center = position

    def focused(self) -> str | None:
        return self._focused

    def focused_entity(self) -> Entity | None:
        if self._focused is None:
            return None
        return self._registry.get(self._focused)

    def select(self, entity_id: str) -> bool:
        """Focus *entity_id* and fly the camera to it; ``False`` if unknown."""
        entity = self._registry.get(entity_id)
        if entity is None:
            _logger.debug("Select ignored; unknown id=%s", entity_id)
            return False
        changed = entity_id != self._focused
        self._focused = entity_id
        self._pan(entity.position, self._camera)
        if changed:
            self._notify()
        return True

    def clear(self) -> None:
        if self._focused is None:
            return
        self._focused = None
        self._last_center = None
        self._notify()

    def center_on(self, position: Position) -> None:
        """Fly to an arbitrary point, such as the operator's own location."""
        self._pan(position, CameraOptions(zoom=c.USER_ZOOM, tilt=c.USER_TILT, duration_ms=self._camera.duration_ms))

    def on_reconciled(self, entity_ids: set[str]) -> None:
        """Drop a selection whose entity left the registry, or follow it.

        *entity_ids* are the ids just rendered; a focused entity that is
        registered but filtered out of the map stays selected.
        """
        if self._focused is None:
            return
        if self._focused not in self._registry:
            _logger.debug("Focused entity id=%s disappeared; clearing selection", self._focused)
            self.clear()
            return
        if not self._follow or self._focused not in entity_ids:
            return
        entity = self._registry.get(self._focused)
        if entity is not None and entity.position != self._last_center:
            self._pan(entity.position, self._follow_camera)
