"""Marker reconciliation.

Makes the set of markers on a rendering surface match a set of entities
with the fewest surface calls: create what is new, update in place what
changed, remove what is gone. Existing markers are never destroyed and
recreated, so open popups survive and nothing flickers.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from fleetsync.exceptions import RenderSurfaceNotReadyError
from fleetsync.models.entity import Entity
from fleetsync.models.geo import Position
from fleetsync.models.render import MarkerMeta
from fleetsync.render.surface import RenderSurface

_logger = logging.getLogger(__name__)


class SelectionSink(Protocol):
    """What the reconciler needs from the selection controller."""

    def select(self, entity_id: str) -> bool: ...

    def on_reconciled(self, entity_ids: set[str]) -> None: ...


@dataclass
class _TrackedMarker:
    marker_id: str
    position: Position
    meta: MarkerMeta


@dataclass(frozen=True)
class SyncReport:
    """Entity ids touched by one reconciliation pass."""

    created: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    deferred: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.removed)


class MapSyncReconciler:
    """Own the entity-id → marker mapping for one rendering surface."""

    def __init__(self, *, selection: SelectionSink | None = None) -> None:
        self._selection = selection
        self._markers: dict[str, _TrackedMarker] = {}
        self._generation: int | None = None
        self._passes = 0

    @property
    def markers(self) -> dict[str, str]:
        """Live marker ids keyed by entity id."""
        return {entity_id: tracked.marker_id for entity_id, tracked in self._markers.items()}

    def attach_selection(self, selection: SelectionSink) -> None:
        self._selection = selection

    def _on_marker_click(self, entity_id: str) -> None:
        _logger.debug("Marker clicked id=%s", entity_id)
        if self._selection is not None and entity_id in self._markers:
            self._selection.select(entity_id)

    def _forget_all(self) -> None:
        self._markers.clear()
        self._generation = None

    def _defer(self) -> SyncReport:
        self._forget_all()
        if self._selection is not None:
            # Nothing is rendered, but a removed focus still has to go.
            self._selection.on_reconciled(set())
        return SyncReport(deferred=True)

    def sync(self, entities: Iterable[Entity], surface: RenderSurface) -> SyncReport:
        """Reconcile *surface* markers with *entities*.

        Deferred (not an error) when the surface is not mounted; the next
        call retries. A remounted surface gets a full rebuild.
        """
        if not surface.is_mounted:
            if self._markers:
                _logger.debug("Surface unmounted; dropping %d tracked markers", len(self._markers))
            return self._defer()

        if self._generation != surface.mount_generation:
            if self._markers:
                _logger.debug("Surface remounted; rebuilding %d markers", len(self._markers))
            self._markers.clear()
            self._generation = surface.mount_generation

        wanted = {entity.id: entity for entity in entities}
        created: list[str] = []
        updated: list[str] = []
        removed: list[str] = []

        try:
            for entity_id in [eid for eid in self._markers if eid not in wanted]:
                tracked = self._markers.pop(entity_id)
                surface.remove_marker(tracked.marker_id)
                removed.append(entity_id)

            for entity_id, entity in wanted.items():
                meta = MarkerMeta.from_entity(entity)
                tracked = self._markers.get(entity_id)
                if tracked is None:
                    marker_id = surface.create_marker(
                        entity.position,
                        meta,
                        functools.partial(self._on_marker_click, entity_id),
                    )
                    self._markers[entity_id] = _TrackedMarker(marker_id, entity.position, meta)
                    created.append(entity_id)
                elif tracked.position != entity.position or tracked.meta != meta:
                    surface.update_marker(tracked.marker_id, entity.position, meta)
                    tracked.position = entity.position
                    tracked.meta = meta
                    updated.append(entity_id)
        except RenderSurfaceNotReadyError:
            # Surface went away mid-pass; its markers are gone with it.
            _logger.debug("Surface became unavailable during sync; deferring")
            return self._defer()

        self._passes += 1
        report = SyncReport(created=tuple(created), updated=tuple(updated), removed=tuple(removed))
        if report.changed:
            _logger.debug(
                "Sync pass=%d created=%d updated=%d removed=%d",
                self._passes,
                len(created),
                len(updated),
                len(removed),
            )
        if self._selection is not None:
            self._selection.on_reconciled(set(wanted))
        return report

    def release(self, surface: RenderSurface) -> None:
        """Remove every tracked marker, e.g. before tearing the map down."""
        if surface.is_mounted and self._generation == surface.mount_generation:
            for tracked in self._markers.values():
                try:
                    surface.remove_marker(tracked.marker_id)
                except RenderSurfaceNotReadyError:
                    break
        self._forget_all()
