"""Canonical in-memory entity registry.

This is the only component allowed to store entity state. Entities are
immutable snapshots; every write replaces the whole entity, so readers never
observe a half-applied update.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Iterable, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

from fleetsync.models.entity import Entity, EntityKind, EntityStatus, Occupancy
from fleetsync.models.fix import Fix
from fleetsync.models.geo import Position
from fleetsync.state.events import Attribution, PositionSource
from fleetsync.state.policy import is_fresh, should_accept_fix

_logger = logging.getLogger(__name__)

_TIMESTAMP_STEP = timedelta(microseconds=1)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return secrets.token_hex(8)


class EntityRegistry:
    """Store of tracked entities keyed by id.

    ``last_updated`` is strictly increasing per entity: a write carrying an
    equal-or-earlier timestamp is still applied, but the registry stamps it
    with a fresh time instead of reordering history.

    Unknown ids are never an error: ``remove`` and ``update`` on a missing
    entity are no-ops.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        external_fix_ttl: timedelta = timedelta(seconds=30),
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._clock = clock
        self._external_fix_ttl = external_fix_ttl
        self._id_factory = id_factory
        self._entities: dict[str, Entity] = {}
        self._attribution: dict[str, Attribution] = {}
        self._version = 0

    @property
    def version(self) -> int:
        """Counter bumped by every mutation."""
        return self._version

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.list())

    def _stamp(self, previous: Entity | None, incoming: datetime | None) -> datetime:
        candidate = incoming if incoming is not None else self._clock()
        if previous is None or previous.last_updated is None:
            return candidate
        last = previous.last_updated
        if candidate <= last:
            candidate = self._clock()
            if candidate <= last:
                candidate = last + _TIMESTAMP_STEP
        return candidate

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def upsert(self, entity: Entity) -> Entity:
        """Insert or replace *entity* as a whole and return the stored snapshot."""
        previous = self._entities.get(entity.id)
        stamped = entity.model_copy(update={"last_updated": self._stamp(previous, entity.last_updated)})
        self._entities[entity.id] = stamped
        self._version += 1
        return stamped

    def create(
        self,
        label: str,
        position: Position,
        *,
        heading: float = 0.0,
        speed: float = 0.0,
        status: EntityStatus = EntityStatus.ON_TIME,
        occupancy: Occupancy | None = None,
        next_stop: str = "",
        eta: str = "",
        kind: EntityKind = EntityKind.VEHICLE,
        driver_id: str | None = None,
        entity_id: str | None = None,
    ) -> Entity:
        """Create a new entity with a freshly assigned id."""
        new_id = entity_id or self._id_factory()
        while entity_id is None and new_id in self._entities:
            new_id = self._id_factory()
        entity = Entity(
            id=new_id,
            label=label,
            position=position,
            heading=heading,
            speed=speed,
            status=status,
            occupancy=occupancy,
            next_stop=next_stop,
            eta=eta,
            kind=kind,
            driver_id=driver_id,
        )
        stored = self.upsert(entity)
        _logger.debug("Entity created id=%s label=%s kind=%s", stored.id, stored.label, stored.kind)
        return stored

    def update(self, entity_id: str, **changes: Any) -> Entity | None:
        """Apply *changes* to one entity; ``None`` if it does not exist."""
        current = self._entities.get(entity_id)
        if current is None:
            return None
        changes.pop("id", None)
        changes.setdefault("last_updated", None)
        return self.upsert(current.with_changes(**changes))

    def remove(self, entity_id: str) -> Entity | None:
        """Remove an entity; missing ids are ignored."""
        removed = self._entities.pop(entity_id, None)
        self._attribution.pop(entity_id, None)
        if removed is not None:
            self._version += 1
            _logger.debug("Entity removed id=%s", entity_id)
        return removed

    def replace_all(self, entities: Iterable[Entity]) -> None:
        """Swap the whole registry content, e.g. after loading persisted state."""
        self._entities = {}
        self._attribution = {}
        for entity in entities:
            self.upsert(entity)
        self._version += 1

    # ------------------------------------------------------------------
    # External fixes
    # ------------------------------------------------------------------

    def record_fix(self, entity_id: str, fix: Fix, source: PositionSource) -> Entity | None:
        """Write an external position fix and attribute it to *source*.

        Returns the stored entity, or ``None`` when the entity is unknown or
        a fresher, higher-priority source currently owns its position.
        """
        current = self._entities.get(entity_id)
        if current is None:
            return None
        now = self._clock()
        if not should_accept_fix(
            current=self._attribution.get(entity_id),
            incoming=source,
            now=now,
            ttl=self._external_fix_ttl,
        ):
            _logger.debug("Fix from %s ignored for id=%s; owned by a fresher source", source, entity_id)
            return None

        changes: dict[str, Any] = {"position": fix.position, "last_updated": fix.timestamp}
        if fix.heading is not None:
            changes["heading"] = fix.heading
        if fix.speed is not None:
            changes["speed"] = fix.speed
        stored = self.upsert(current.with_changes(**changes))
        self._attribution[entity_id] = Attribution(source=source, accuracy=fix.accuracy, at=now)
        return stored

    def attribution(self, entity_id: str) -> Attribution | None:
        return self._attribution.get(entity_id)

    def release(self, entity_id: str) -> None:
        """Hand an entity's position back to the simulation."""
        self._attribution.pop(entity_id, None)

    def is_externally_tracked(self, entity_id: str) -> bool:
        return is_fresh(self._attribution.get(entity_id), self._clock(), self._external_fix_ttl)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, entity_id: str) -> Entity | None:
        return self._entities.get(entity_id)

    def list(self) -> list[Entity]:
        """Snapshot of all entities in insertion order."""
        return list(self._entities.values())

    def ids(self) -> set[str]:
        return set(self._entities)
