"""Position acquisition with GPS / network arbitration.

A :class:`LocationSource` owns at most one acquisition at a time:

* ``gps`` watches a :class:`PositionProvider` for continuous high-accuracy
  fixes. When the platform refuses or lacks the capability the source
  reports the error once and continues in degraded mode at the configured
  regional center.
* ``network`` synthesizes coarse fixes on a slow timer from the seed
  coordinate of an approximation zone.

Every delivery is checked against the current acquisition token, so once
:meth:`LocationSource.stop` returns no callback from the old acquisition
reaches listeners.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import random
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from fleetsync._scheduler import PeriodicTask
from fleetsync.config import FleetConfig
from fleetsync.exceptions import AcquisitionFailure, LocationAcquisitionError
from fleetsync.location.providers import PositionProvider, WatchHandle
from fleetsync.location.zones import REGION_ZONE, ApproximationZone, default_zones
from fleetsync.models.fix import AccuracyClass, Fix, LocationMode
from fleetsync.models.geo import Position

_logger = logging.getLogger(__name__)

_tokens = itertools.count(1)


@dataclass(frozen=True)
class AcquisitionHandle:
    """Ownership token of the active acquisition."""

    token: int
    mode: LocationMode
    zone: str | None = None


class LocationSource:
    """Acquire position fixes from a GPS provider or network approximation."""

    def __init__(
        self,
        provider: PositionProvider | None,
        *,
        config: FleetConfig | None = None,
        zones: Mapping[str, ApproximationZone] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._provider = provider
        self._config = config or FleetConfig()
        self._fallback = Position(lat=self._config.fallback_lat, lng=self._config.fallback_lng)
        self._zones = dict(zones) if zones is not None else default_zones(self._fallback)
        self._rng = rng or random.Random()

        self._fix_listeners: list[Callable[[Fix], None]] = []
        self._error_listeners: list[Callable[[LocationAcquisitionError], None]] = []

        self._handle: AcquisitionHandle | None = None
        self._watch: WatchHandle | None = None
        self._watch_wanted = False
        self._timer: PeriodicTask | None = None
        self._error_reported = False
        self._degraded = False
        self._last_fix: Fix | None = None
        self._last_error: LocationAcquisitionError | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def mode(self) -> LocationMode | None:
        return self._handle.mode if self._handle is not None else None

    @property
    def handle(self) -> AcquisitionHandle | None:
        return self._handle

    @property
    def is_active(self) -> bool:
        return self._handle is not None

    @property
    def degraded(self) -> bool:
        """``True`` while positions come from the fallback coordinate."""
        return self._degraded

    @property
    def last_fix(self) -> Fix | None:
        return self._last_fix

    @property
    def last_error(self) -> LocationAcquisitionError | None:
        return self._last_error

    @property
    def zones(self) -> dict[str, ApproximationZone]:
        return dict(self._zones)

    def on_fix(self, callback: Callable[[Fix], None]) -> None:
        self._fix_listeners.append(callback)

    def on_error(self, callback: Callable[[LocationAcquisitionError], None]) -> None:
        self._error_listeners.append(callback)

    def fallback_fix(self) -> Fix:
        return Fix(position=self._fallback, accuracy=AccuracyClass.FALLBACK)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, mode: LocationMode | str, *, zone: str | None = None) -> AcquisitionHandle:
        """Start acquiring in *mode*, replacing any running acquisition.

        Raises
        ------
        ValueError
            If *zone* names an unknown approximation zone.
        """
        mode = LocationMode(mode)
        selected_zone: ApproximationZone | None = None
        if mode == LocationMode.NETWORK:
            zone_name = zone or REGION_ZONE
            selected_zone = self._zones.get(zone_name)
            if selected_zone is None:
                raise ValueError(f"Unknown approximation zone: {zone_name!r}")

        self.stop()

        handle = AcquisitionHandle(token=next(_tokens), mode=mode, zone=selected_zone.name if selected_zone else None)
        self._handle = handle
        self._error_reported = False
        self._degraded = False
        _logger.info("Location source started mode=%s zone=%s", mode, handle.zone)

        if selected_zone is None:
            self._start_gps(handle)
        else:
            self._start_network(handle, selected_zone)
        return handle

    def stop(self) -> None:
        """Release the active acquisition; a no-op when idle."""
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        self._release_watch()
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()
        _logger.info("Location source stopped mode=%s", handle.mode)

    def _release_watch(self) -> None:
        self._watch_wanted = False
        watch = self._watch
        self._watch = None
        if watch is not None and self._provider is not None:
            self._provider.cancel(watch)

    def _start_gps(self, handle: AcquisitionHandle) -> None:
        if self._provider is None:
            self._fail(
                handle,
                LocationAcquisitionError("No position provider available", reason=AcquisitionFailure.UNAVAILABLE),
            )
            return
        self._watch_wanted = True
        watch = self._provider.watch(
            lambda fix: self._deliver_gps(handle, fix),
            lambda error: self._fail(handle, error),
        )
        # A provider may fail synchronously inside watch().
        if self._watch_wanted and self._is_current(handle):
            self._watch = watch
        else:
            self._provider.cancel(watch)

    def _start_network(self, handle: AcquisitionHandle, zone: ApproximationZone) -> None:
        timer = PeriodicTask(
            self._config.network_poll_interval,
            lambda: self._emit_network(handle, zone),
            name=f"network-fix-{handle.token}",
            immediate=True,
        )
        self._timer = timer
        timer.start()

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _is_current(self, handle: AcquisitionHandle) -> bool:
        return self._handle is handle

    def _publish(self, fix: Fix) -> None:
        self._last_fix = fix
        for listener in list(self._fix_listeners):
            listener(fix)

    def _deliver_gps(self, handle: AcquisitionHandle, fix: Fix) -> None:
        if not self._is_current(handle):
            _logger.debug("Dropping fix from stale acquisition token=%d", handle.token)
            return
        if self._degraded:
            _logger.info("GPS fixes resumed; leaving degraded mode")
        self._degraded = False
        if fix.accuracy != AccuracyClass.HIGH:
            fix = fix.model_copy(update={"accuracy": AccuracyClass.HIGH})
        self._publish(fix)

    def _emit_network(self, handle: AcquisitionHandle, zone: ApproximationZone) -> None:
        if not self._is_current(handle):
            return
        bound = self._config.network_offset_degrees
        position = zone.center.offset(
            d_lat=self._rng.uniform(-bound, bound),
            d_lng=self._rng.uniform(-bound, bound),
        )
        self._publish(Fix(position=position, accuracy=AccuracyClass.LOW))

    def _fail(self, handle: AcquisitionHandle, error: LocationAcquisitionError) -> None:
        if not self._is_current(handle):
            return
        self._last_error = error
        if not error.is_transient:
            # Permission denied or no capability: stop asking the platform.
            self._release_watch()

        if self._error_reported:
            return
        self._error_reported = True
        self._degraded = True
        _logger.warning(
            "Location acquisition failed reason=%s; using fallback %s,%s",
            error.reason,
            self._fallback.lat,
            self._fallback.lng,
        )
        for listener in list(self._error_listeners):
            listener(error)
        if self._is_current(handle):
            self._publish(self.fallback_fix())

    async def locate_once(self) -> Fix:
        """One-shot position lookup, falling back to the regional center."""
        if self._provider is None:
            return self.fallback_fix()
        try:
            return await asyncio.wait_for(self._provider.get_current_fix(), self._config.gps_timeout)
        except (LocationAcquisitionError, TimeoutError):
            _logger.warning("One-shot location lookup failed; using fallback", exc_info=True)
            return self.fallback_fix()
