"""High-level fleet tracker.

:class:`FleetTracker` owns one of each component and is the only place
where they meet. It runs the simulation tick, routes location fixes into
the registry, reconciles the map after every batch of writes and keeps
the persisted blob current.

Usage::

    async with FleetTracker(FleetConfig.from_env(), surface=surface) as tracker:
        await tracker.start_driver_session("drv-7", "PB-210", "gps")
        ...
"""

from __future__ import annotations

import logging
import random
from datetime import timedelta
from typing import Any

from fleetsync._scheduler import PeriodicTask
from fleetsync.config import FleetConfig
from fleetsync.escalation import DispatchAction, EmergencyEscalation, EmergencySignal, log_emergency_call
from fleetsync.exceptions import PersistenceError, RenderSurfaceNotReadyError
from fleetsync.location.providers import (
    HttpPositionProvider,
    MqttPositionProvider,
    PositionProvider,
)
from fleetsync.location.source import LocationSource
from fleetsync.models.entity import Entity, EntityKind, EntityStatus, Occupancy
from fleetsync.models.fix import AccuracyClass, Fix, LocationMode
from fleetsync.models.geo import Position
from fleetsync.models.render import ControlKind
from fleetsync.models.session import SessionIdentity, SessionRole
from fleetsync.persistence import FleetPersistence, JsonFileKeyValueStore
from fleetsync.prompts import PromptBroker, PromptKind
from fleetsync.render.headless import HeadlessSurface
from fleetsync.render.reconciler import MapSyncReconciler, SyncReport
from fleetsync.render.surface import RenderSurface
from fleetsync.selection import SelectionController
from fleetsync.simulation import KinematicSimulator
from fleetsync.state.events import PositionSource
from fleetsync.state.registry import EntityRegistry

_logger = logging.getLogger(__name__)

DEMO_FLEET: tuple[dict[str, Any], ...] = (
    {
        "label": "PB-001",
        "position": {"lat": 31.6340, "lng": 75.8573},
        "heading": 45,
        "speed": 45,
        "status": "on_time",
        "occupancy": "24/45",
        "next_stop": "Civil Hospital",
        "eta": "8 min",
    },
    {
        "label": "PB-045",
        "position": {"lat": 30.7333, "lng": 76.7794},
        "heading": 180,
        "speed": 35,
        "status": "delayed",
        "occupancy": "31/40",
        "next_stop": "Railway Station",
        "eta": "12 min",
    },
    {
        "label": "PB-078",
        "position": {"lat": 31.3260, "lng": 75.5762},
        "heading": 270,
        "speed": 50,
        "status": "early",
        "occupancy": "18/35",
        "next_stop": "Bus Stand",
        "eta": "2 min",
    },
    {
        "label": "PB-112",
        "position": {"lat": 30.2110, "lng": 74.9455},
        "heading": 90,
        "speed": 40,
        "status": "on_time",
        "occupancy": "12/30",
        "next_stop": "Market Complex",
        "eta": "15 min",
    },
)

_FIX_SOURCES = {
    AccuracyClass.HIGH: PositionSource.GPS,
    AccuracyClass.LOW: PositionSource.NETWORK,
    AccuracyClass.FALLBACK: PositionSource.FALLBACK,
}

END_SHIFT_MESSAGE = "End your shift? Your bus will be removed from the live map."
REPORT_ISSUE_MESSAGE = "Describe the issue with your bus or route."
CONFIRM_REMOVE_MESSAGE = "Are you sure you want to delete this bus?"


def build_provider(config: FleetConfig) -> PositionProvider | None:
    """Pick the position provider configured in *config*.

    MQTT wins over HTTP; with neither configured there is no provider and
    GPS acquisition runs in degraded mode.
    """
    if config.mqtt_host:
        return MqttPositionProvider(
            config.mqtt_host,
            port=config.mqtt_port,
            topic=config.mqtt_topic,
            keepalive=config.mqtt_keepalive,
            timeout=config.gps_timeout,
        )
    if config.position_url:
        return HttpPositionProvider(
            config.position_url,
            interval=config.gps_push_interval,
            timeout=config.gps_timeout,
        )
    return None


class FleetTracker:
    """Live fleet tracking bound to one rendering surface.

    Parameters
    ----------
    config : FleetConfig or None
        Tracker settings; defaults apply when omitted.
    surface : RenderSurface or None
        Map to keep in sync. A :class:`HeadlessSurface` is used when omitted.
    provider : PositionProvider or None
        Position capability for driver sessions. Built from *config* when
        omitted; pass :class:`UnavailablePositionProvider` to force
        degraded mode.
    persistence : FleetPersistence or None
        State blob. Backed by ``config.state_path`` when omitted.
    prompts : PromptBroker or None
        Channel for confirmations and text prompts.
    signal : EmergencySignal or None
        Emergency trigger shared with other parts of the application.
    dispatch : callable
        Emergency dispatch action.
    rng : random.Random or None
        Shared random source for simulation and network approximation.
    """

    def __init__(
        self,
        config: FleetConfig | None = None,
        *,
        surface: RenderSurface | None = None,
        provider: PositionProvider | None = None,
        persistence: FleetPersistence | None = None,
        prompts: PromptBroker | None = None,
        signal: EmergencySignal | None = None,
        dispatch: DispatchAction = log_emergency_call,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config or FleetConfig()
        rng = rng or random.Random()

        self._owns_provider = provider is None
        if provider is None:
            provider = build_provider(self._config)
        self._provider = provider

        if persistence is None:
            store = JsonFileKeyValueStore(self._config.state_path) if self._config.state_path else None
            persistence = FleetPersistence(store)
        self._persistence = persistence

        self._surface: RenderSurface = surface if surface is not None else HeadlessSurface()
        self._registry = EntityRegistry(external_fix_ttl=timedelta(seconds=self._config.external_fix_ttl))
        self._simulator = KinematicSimulator(
            speed_scale=self._config.speed_scale,
            jitter_degrees=self._config.jitter_degrees,
            rng=rng,
            refresh_eta=self._config.refresh_eta,
        )
        self._selection = SelectionController(self._registry, self._surface)
        self._reconciler = MapSyncReconciler(selection=self._selection)
        self._location = LocationSource(provider, config=self._config, rng=rng)
        self._location.on_fix(self._on_fix)
        self._escalation = EmergencyEscalation(
            dispatch,
            countdown_start=self._config.sos_countdown,
            tick_interval=self._config.sos_tick_interval,
        )
        self._signal = signal or EmergencySignal()
        self._prompts = prompts or PromptBroker()

        self._tick_timer = PeriodicTask(self._config.tick_interval, self.tick, name="simulation-tick")
        self._controls_generation: int | None = None
        self._detach_signal: Any = None
        self._session: SessionIdentity | None = None
        self._restored_session: SessionIdentity | None = None
        self._user_fix: Fix | None = None
        self._running = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FleetTracker:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def config(self) -> FleetConfig:
        return self._config

    @property
    def registry(self) -> EntityRegistry:
        return self._registry

    @property
    def simulator(self) -> KinematicSimulator:
        return self._simulator

    @property
    def surface(self) -> RenderSurface:
        return self._surface

    @property
    def reconciler(self) -> MapSyncReconciler:
        return self._reconciler

    @property
    def selection(self) -> SelectionController:
        return self._selection

    @property
    def location(self) -> LocationSource:
        return self._location

    @property
    def escalation(self) -> EmergencyEscalation:
        return self._escalation

    @property
    def signal(self) -> EmergencySignal:
        return self._signal

    @property
    def prompts(self) -> PromptBroker:
        return self._prompts

    @property
    def persistence(self) -> FleetPersistence:
        return self._persistence

    @property
    def session(self) -> SessionIdentity | None:
        """The driver session running in this tracker, if any."""
        return self._session

    @property
    def restored_session(self) -> SessionIdentity | None:
        """Session identity found in the persisted blob at start-up."""
        return self._restored_session

    @property
    def user_fix(self) -> Fix | None:
        return self._user_fix

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load state, start the simulation tick and render the fleet."""
        if self._running:
            return
        entities = self._persistence.load_entities()
        if entities:
            self._registry.replace_all(entities)
            _logger.info("Restored %d entities from persisted state", len(entities))
        elif self._config.seed_demo_fleet:
            self.seed_demo_fleet()

        self._restored_session = self._persistence.load_session()
        if self._restored_session is not None:
            _logger.info(
                "Last session role=%s user=%s",
                self._restored_session.role,
                self._restored_session.user_id,
            )

        self._detach_signal = self._signal.attach(self._escalation)
        self._running = True
        self._tick_timer.start()
        self.sync()
        _logger.info("Fleet tracker started entities=%d", len(self._registry))

    async def stop(self) -> None:
        """Cancel every timer and persist the fleet."""
        if not self._running:
            return
        self._running = False
        self._tick_timer.cancel()
        self._location.stop()
        self._escalation.close()
        self._prompts.decline_all()
        if self._detach_signal is not None:
            self._detach_signal()
            self._detach_signal = None
        self._save_entities()
        self._reconciler.release(self._surface)
        if self._owns_provider and isinstance(self._provider, HttpPositionProvider):
            await self._provider.close()
        _logger.info("Fleet tracker stopped")

    def seed_demo_fleet(self) -> list[Entity]:
        created = [
            self._registry.create(
                item["label"],
                Position.model_validate(item["position"]),
                heading=item["heading"],
                speed=item["speed"],
                status=EntityStatus(item["status"]),
                occupancy=Occupancy.model_validate(item["occupancy"]),
                next_stop=item["next_stop"],
                eta=item["eta"],
            )
            for item in DEMO_FLEET
        ]
        _logger.debug("Seeded demo fleet count=%d", len(created))
        return created

    # ------------------------------------------------------------------
    # Periodic work
    # ------------------------------------------------------------------

    def tick(self) -> SyncReport:
        """One simulation step followed by one reconciliation pass."""
        self._simulator.tick(self._registry)
        return self.sync()

    def _ensure_controls(self) -> None:
        surface = self._surface
        if not surface.is_mounted or self._controls_generation == surface.mount_generation:
            return
        try:
            surface.add_control(ControlKind.NAVIGATION)
            surface.add_control(ControlKind.GEOLOCATE)
        except RenderSurfaceNotReadyError:
            return
        self._controls_generation = surface.mount_generation

    def sync(self) -> SyncReport:
        """Reconcile the map with the registry."""
        self._ensure_controls()
        return self._reconciler.sync(self._registry.list(), self._surface)

    def _save_entities(self) -> None:
        try:
            self._persistence.save_entities(self._registry.list())
        except PersistenceError:
            _logger.warning("Could not persist entities", exc_info=True)

    def _on_fix(self, fix: Fix) -> None:
        self._user_fix = fix
        session = self._session
        if session is None or session.entity_id is None:
            return
        stored = self._registry.record_fix(session.entity_id, fix, _FIX_SOURCES[fix.accuracy])
        if stored is not None:
            _logger.debug(
                "Fix applied id=%s accuracy=%s lat=%.5f lng=%.5f",
                stored.id,
                fix.accuracy,
                fix.position.lat,
                fix.position.lng,
            )
            self.sync()

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def add_to_fleet(
        self,
        label: str,
        position: Position | None = None,
        *,
        heading: float = 0.0,
        speed: float = 0.0,
        status: EntityStatus | str = EntityStatus.ON_TIME,
        occupancy: Occupancy | str | None = None,
        next_stop: str = "",
        eta: str = "",
    ) -> Entity:
        """Add a vehicle at *position* (the regional center by default)."""
        if isinstance(occupancy, str):
            occupancy = Occupancy.model_validate(occupancy)
        entity = self._registry.create(
            label,
            position or Position(lat=self._config.fallback_lat, lng=self._config.fallback_lng),
            heading=heading,
            speed=speed,
            status=EntityStatus(status),
            occupancy=occupancy,
            next_stop=next_stop,
            eta=eta,
        )
        _logger.info("Vehicle added to fleet id=%s label=%s", entity.id, entity.label)
        self._save_entities()
        self.sync()
        return entity

    def remove_from_fleet(self, entity_id: str) -> bool:
        removed = self._registry.remove(entity_id)
        if removed is None:
            return False
        session = self._session
        if session is not None and session.entity_id == entity_id:
            self._drop_session()
            _logger.info("Driver session ended with its bus driver=%s bus=%s", session.user_id, session.label)
        _logger.info("Vehicle removed from fleet id=%s label=%s", removed.id, removed.label)
        self._save_entities()
        self.sync()
        return True

    async def confirm_remove(self, entity_id: str, *, timeout: float | None = None) -> bool:
        """Ask the operator before removing *entity_id*."""
        if entity_id not in self._registry:
            return False
        response = await self._prompts.ask(PromptKind.CONFIRM, CONFIRM_REMOVE_MESSAGE, timeout)
        if not response.accepted:
            return False
        return self.remove_from_fleet(entity_id)

    def select(self, entity_id: str) -> bool:
        return self._selection.select(entity_id)

    async def locate_user(self) -> Fix:
        """Center the camera on the user's own position."""
        fix = await self._location.locate_once()
        self._user_fix = fix
        self._selection.center_on(fix.position)
        return fix

    def trigger_emergency(self, reason: str = "") -> bool:
        return self._signal.fire(reason)

    # ------------------------------------------------------------------
    # Driver sessions
    # ------------------------------------------------------------------

    async def start_driver_session(
        self,
        driver_id: str,
        bus_number: str,
        mode: LocationMode | str = LocationMode.GPS,
        *,
        zone: str | None = None,
        display_name: str = "",
    ) -> Entity:
        """Sign a driver in, put their bus on the map and start tracking it.

        Raises
        ------
        ValueError
            If *zone* is not a known approximation zone.
        """
        mode = LocationMode(mode)
        if mode == LocationMode.NETWORK and zone is not None and zone not in self._location.zones:
            raise ValueError(f"Unknown approximation zone: {zone!r}")
        if self._session is not None:
            await self.end_driver_session()

        start_at = self._user_fix.position if self._user_fix is not None else None
        entity = self._registry.create(
            bus_number,
            start_at or Position(lat=self._config.fallback_lat, lng=self._config.fallback_lng),
            kind=EntityKind.DRIVER,
            driver_id=driver_id,
        )
        self._session = SessionIdentity(
            role=SessionRole.DRIVER,
            user_id=driver_id,
            display_name=display_name,
            entity_id=entity.id,
            label=bus_number,
        )
        try:
            self._persistence.save_session(self._session)
        except PersistenceError:
            _logger.warning("Could not persist session", exc_info=True)
        self._save_entities()
        _logger.info("Driver session started driver=%s bus=%s mode=%s", driver_id, bus_number, mode)
        self.sync()
        self._location.start(mode, zone=zone)
        return entity

    def _drop_session(self) -> None:
        self._location.stop()
        self._session = None
        try:
            self._persistence.clear_session()
        except PersistenceError:
            _logger.warning("Could not clear persisted session", exc_info=True)

    async def end_driver_session(self) -> bool:
        session = self._session
        if session is None:
            return False
        self._drop_session()
        if session.entity_id is not None:
            self._registry.remove(session.entity_id)
        self._save_entities()
        _logger.info("Driver session ended driver=%s bus=%s", session.user_id, session.label)
        self.sync()
        return True

    def switch_mode(self, mode: LocationMode | str, *, zone: str | None = None) -> None:
        """Restart location acquisition in *mode*.

        The driver's bus is released from the previous source so the first
        fix in the new mode is accepted.
        """
        mode = LocationMode(mode)
        if self._session is not None and self._session.entity_id is not None:
            self._registry.release(self._session.entity_id)
        self._location.start(mode, zone=zone)
        _logger.info("Location mode switched to %s zone=%s", mode, zone)

    async def end_shift(self, *, timeout: float | None = None) -> bool:
        """Confirm with the driver, then end the session."""
        if self._session is None:
            return False
        response = await self._prompts.ask(PromptKind.CONFIRM, END_SHIFT_MESSAGE, timeout)
        if not response.accepted:
            return False
        return await self.end_driver_session()

    async def report_issue(self, *, timeout: float | None = None) -> str | None:
        """Collect a free-text issue report from the driver."""
        response = await self._prompts.ask(PromptKind.TEXT, REPORT_ISSUE_MESSAGE, timeout)
        text = response.text.strip()
        if not response.accepted or not text:
            return None
        session = self._session
        _logger.warning(
            "Issue reported driver=%s bus=%s: %s",
            session.user_id if session else None,
            session.label if session else None,
            text,
        )
        return text
