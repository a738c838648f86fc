"""Kinematic random-walk simulation for entities without a live feed.

Each tick moves an entity one step along its heading and perturbs the
heading by a uniform jitter. Vehicles are not snapped to their route
polyline; the walk is unconstrained.
"""

from __future__ import annotations

import logging
import math
import random

from fleetsync import _constants as c
from fleetsync._normalize import normalize_heading
from fleetsync.models.entity import Entity
from fleetsync.state.registry import EntityRegistry

_logger = logging.getLogger(__name__)


class KinematicSimulator:
    """Advance simulation-owned entities once per tick.

    Parameters
    ----------
    speed_scale : float
        ``K``: speed units per coordinate degree of displacement.
    jitter_degrees : float
        ``J``: heading jitter is drawn from ``Uniform(-J, J)``. ``0``
        disables jitter and consumes no randomness.
    rng : random.Random or None
        Random source; pass a seeded instance for reproducible runs.
    refresh_eta : bool
        Re-roll the advisory ``eta`` string on every step.
    """

    def __init__(
        self,
        *,
        speed_scale: float = c.DEFAULT_SPEED_SCALE,
        jitter_degrees: float = c.DEFAULT_JITTER_DEGREES,
        rng: random.Random | None = None,
        refresh_eta: bool = False,
    ) -> None:
        if speed_scale <= 0:
            raise ValueError("speed_scale must be positive")
        if jitter_degrees < 0:
            raise ValueError("jitter_degrees must not be negative")
        self._speed_scale = speed_scale
        self._jitter_degrees = jitter_degrees
        self._rng = rng or random.Random()
        self._refresh_eta = refresh_eta
        self._ticks = 0

    @property
    def ticks(self) -> int:
        return self._ticks

    def _jitter(self) -> float:
        if self._jitter_degrees == 0:
            return 0.0
        return self._rng.uniform(-self._jitter_degrees, self._jitter_degrees)

    def step(self, entity: Entity) -> Entity:
        """Return *entity* advanced by one tick (not yet stored)."""
        heading_rad = math.radians(entity.heading)
        distance = entity.speed / self._speed_scale
        d_lng = math.cos(heading_rad) * distance
        d_lat = math.sin(heading_rad) * distance
        new_heading = normalize_heading(entity.heading + self._jitter() + 360.0)

        changes: dict[str, object] = {
            "position": entity.position.offset(d_lat=d_lat, d_lng=d_lng),
            "heading": new_heading,
            "last_updated": None,
        }
        if self._refresh_eta:
            minutes = self._rng.randint(c.ETA_MIN_MINUTES, c.ETA_MAX_MINUTES)
            changes["eta"] = f"{minutes} min"
        return entity.model_copy(update=changes)

    def tick(self, registry: EntityRegistry) -> list[Entity]:
        """Move every entity that is not receiving an external fix.

        Returns the stored snapshots of the entities that moved.
        """
        moved: list[Entity] = []
        for entity in registry.list():
            if registry.is_externally_tracked(entity.id):
                continue
            moved.append(registry.upsert(self.step(entity)))
        self._ticks += 1
        _logger.debug("Simulation tick=%d moved=%d of %d", self._ticks, len(moved), len(registry))
        return moved
