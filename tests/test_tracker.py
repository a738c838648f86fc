from __future__ import annotations

import asyncio
import json
import random
from pathlib import Path

import pytest

from fleetsync.config import FleetConfig
from fleetsync.escalation import EscalationPhase
from fleetsync.location.providers import UnavailablePositionProvider, WatchHandle
from fleetsync.models.entity import EntityKind
from fleetsync.models.fix import AccuracyClass, Fix
from fleetsync.models.geo import Position
from fleetsync.models.render import ControlKind
from fleetsync.models.session import SessionRole
from fleetsync.persistence import FleetPersistence, MemoryKeyValueStore
from fleetsync.prompts import PromptBroker, PromptRequest, PromptResponse
from fleetsync.render.headless import HeadlessSurface
from fleetsync.state.events import PositionSource
from fleetsync.tracker import DEMO_FLEET, FleetTracker, build_provider


class _PushProvider:
    def __init__(self) -> None:
        self.watchers: dict[int, tuple] = {}
        self._next = 0

    def watch(self, on_fix, on_error) -> WatchHandle:  # type: ignore[no-untyped-def]
        self._next += 1
        self.watchers[self._next] = (on_fix, on_error)
        return WatchHandle(self._next)

    def cancel(self, handle: WatchHandle) -> None:
        self.watchers.pop(handle.watch_id, None)

    async def get_current_fix(self) -> Fix:
        return Fix(position=Position(lat=30.9, lng=75.85), accuracy=AccuracyClass.HIGH)

    def push(self, lat: float, lng: float) -> None:
        for on_fix, _ in list(self.watchers.values()):
            on_fix(Fix(position=Position(lat=lat, lng=lng), accuracy=AccuracyClass.HIGH))


def _config(**overrides: object) -> FleetConfig:
    base: dict[str, object] = {"tick_interval": 60.0, "sos_tick_interval": 0.01}
    base.update(overrides)
    return FleetConfig(**base)  # type: ignore[arg-type]


def _tracker(**kwargs: object) -> FleetTracker:
    kwargs.setdefault("config", _config())
    kwargs.setdefault("surface", HeadlessSurface())
    kwargs.setdefault("provider", _PushProvider())
    kwargs.setdefault("persistence", FleetPersistence(MemoryKeyValueStore()))
    kwargs.setdefault("rng", random.Random(0))
    return FleetTracker(**kwargs)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_start_seeds_demo_fleet_and_renders_it() -> None:
    async with _tracker() as tracker:
        surface = tracker.surface
        assert isinstance(surface, HeadlessSurface)
        assert [e.label for e in tracker.registry.list()] == [item["label"] for item in DEMO_FLEET]
        assert len(surface.markers) == len(DEMO_FLEET)
        assert surface.controls == [ControlKind.NAVIGATION, ControlKind.GEOLOCATE]


@pytest.mark.asyncio
async def test_start_without_seeding_is_empty() -> None:
    async with _tracker(config=_config(seed_demo_fleet=False)) as tracker:
        assert len(tracker.registry) == 0


@pytest.mark.asyncio
async def test_tick_moves_fleet_then_updates_markers() -> None:
    async with _tracker() as tracker:
        surface = tracker.surface
        assert isinstance(surface, HeadlessSurface)
        before = {e.id: e.position for e in tracker.registry.list()}

        report = tracker.tick()

        assert sorted(report.updated) == sorted(before)
        for entity_id, marker_id in tracker.reconciler.markers.items():
            assert surface.markers[marker_id].position == tracker.registry.get(entity_id).position  # type: ignore[union-attr]
            assert surface.markers[marker_id].position != before[entity_id]


@pytest.mark.asyncio
async def test_periodic_tick_runs_on_its_own() -> None:
    async with _tracker(config=_config(tick_interval=0.01)) as tracker:
        await asyncio.sleep(0.05)
        assert tracker.simulator.ticks >= 2
    ticks = tracker.simulator.ticks
    await asyncio.sleep(0.03)
    assert tracker.simulator.ticks == ticks


@pytest.mark.asyncio
async def test_persisted_fleet_restored_instead_of_demo() -> None:
    store = MemoryKeyValueStore()
    async with _tracker(persistence=FleetPersistence(store)) as tracker:
        tracker.add_to_fleet("PB-300", Position(lat=30.5, lng=76.0), occupancy="5/40")
        expected = {e.label for e in tracker.registry.list()}

    async with _tracker(persistence=FleetPersistence(store)) as tracker:
        assert {e.label for e in tracker.registry.list()} == expected
        assert len(tracker.registry) == len(DEMO_FLEET) + 1


@pytest.mark.asyncio
async def test_malformed_blob_falls_back_to_demo_fleet() -> None:
    store = MemoryKeyValueStore({"fleet.entities": "{broken"})
    async with _tracker(persistence=FleetPersistence(store)) as tracker:
        assert len(tracker.registry) == len(DEMO_FLEET)


@pytest.mark.asyncio
async def test_non_finite_heading_blob_falls_back_to_demo_fleet() -> None:
    blob = json.dumps(
        [
            {"id": "bad", "label": "X", "position": {"lat": 31.0, "lng": 75.0}, "heading": float("nan")},
            {"id": "ok", "label": "Y", "position": {"lat": 31.0, "lng": 75.0}},
        ]
    )
    store = MemoryKeyValueStore({"fleet.entities": blob})
    async with _tracker(persistence=FleetPersistence(store)) as tracker:
        assert "bad" not in tracker.registry
        assert len(tracker.registry) == len(DEMO_FLEET)

        report = tracker.tick()
        assert len(report.updated) == len(DEMO_FLEET)


@pytest.mark.asyncio
async def test_state_file_with_invalid_utf8_starts_with_demo_fleet(tmp_path: Path) -> None:
    path = tmp_path / "fleet.json"
    path.write_bytes(b'{"fleet.entities": "\xff\xfe"}')
    config = _config(state_path=str(path))

    async with _tracker(config=config, persistence=None) as tracker:
        assert len(tracker.registry) == len(DEMO_FLEET)
        assert tracker.restored_session is None


@pytest.mark.asyncio
async def test_driver_session_tracks_gps_fixes() -> None:
    provider = _PushProvider()
    store = MemoryKeyValueStore()
    async with _tracker(provider=provider, persistence=FleetPersistence(store)) as tracker:
        entity = await tracker.start_driver_session("drv-7", "PB-210", "gps", display_name="Harpreet")

        assert entity.kind == EntityKind.DRIVER
        assert entity.driver_id == "drv-7"
        assert tracker.session is not None
        assert tracker.session.role == SessionRole.DRIVER
        assert json.loads(store.get("fleet.session") or "{}")["userId"] == "drv-7"

        provider.push(31.5, 75.6)

        stored = tracker.registry.get(entity.id)
        assert stored is not None
        assert stored.position == Position(lat=31.5, lng=75.6)
        assert tracker.registry.attribution(entity.id).source == PositionSource.GPS  # type: ignore[union-attr]
        marker_id = tracker.reconciler.markers[entity.id]
        assert tracker.surface.markers[marker_id].position == Position(lat=31.5, lng=75.6)  # type: ignore[attr-defined]

        moved = tracker.tick()
        assert entity.id not in moved.updated

        assert await tracker.end_driver_session()
        assert entity.id not in tracker.registry
        assert entity.id not in tracker.reconciler.markers
        assert provider.watchers == {}
        assert store.get("fleet.session") is None


@pytest.mark.asyncio
async def test_denied_location_places_driver_at_regional_center() -> None:
    async with _tracker(provider=UnavailablePositionProvider()) as tracker:
        entity = await tracker.start_driver_session("drv-1", "PB-11")
        await asyncio.sleep(0)

        assert tracker.location.degraded
        stored = tracker.registry.get(entity.id)
        assert stored is not None
        assert stored.position == Position(lat=31.1471, lng=75.3412)
        assert tracker.registry.attribution(entity.id).source == PositionSource.FALLBACK  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_switch_mode_to_network_replaces_gps_watch() -> None:
    provider = _PushProvider()
    config = _config(network_poll_interval=0.01)
    async with _tracker(provider=provider, config=config) as tracker:
        entity = await tracker.start_driver_session("drv-7", "PB-210", "gps")
        provider.push(31.5, 75.6)

        tracker.switch_mode("network", zone="patiala")
        await asyncio.sleep(0.02)

        assert provider.watchers == {}
        stored = tracker.registry.get(entity.id)
        assert stored is not None
        assert abs(stored.position.lat - 30.3398) <= 0.011
        assert tracker.registry.attribution(entity.id).source == PositionSource.NETWORK  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_removing_driver_bus_ends_session() -> None:
    provider = _PushProvider()
    store = MemoryKeyValueStore()
    async with _tracker(provider=provider, persistence=FleetPersistence(store)) as tracker:
        entity = await tracker.start_driver_session("drv-7", "PB-210")
        assert store.get("fleet.session") is not None

        assert tracker.remove_from_fleet(entity.id)

        assert tracker.session is None
        assert store.get("fleet.session") is None
        assert provider.watchers == {}
        assert not await tracker.end_driver_session()


@pytest.mark.asyncio
async def test_new_session_replaces_previous_one() -> None:
    async with _tracker() as tracker:
        first = await tracker.start_driver_session("drv-1", "PB-1")
        second = await tracker.start_driver_session("drv-2", "PB-2")

        assert first.id not in tracker.registry
        assert second.id in tracker.registry
        assert tracker.session.user_id == "drv-2"  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_unknown_zone_rejected_before_session_starts() -> None:
    async with _tracker() as tracker:
        count = len(tracker.registry)
        with pytest.raises(ValueError):
            await tracker.start_driver_session("drv-1", "PB-1", "network", zone="atlantis")
        assert len(tracker.registry) == count
        assert tracker.session is None


@pytest.mark.asyncio
async def test_confirm_remove_respects_answer() -> None:
    answers = iter([False, True])
    broker = PromptBroker()
    broker.set_listener(lambda request: broker.respond(PromptResponse(request.request_id, accepted=next(answers))))
    async with _tracker(prompts=broker) as tracker:
        victim = tracker.registry.list()[0]

        assert not await tracker.confirm_remove(victim.id)
        assert victim.id in tracker.registry

        assert await tracker.confirm_remove(victim.id)
        assert victim.id not in tracker.registry
        assert victim.id not in tracker.reconciler.markers
        assert not await tracker.confirm_remove("missing")


@pytest.mark.asyncio
async def test_end_shift_timeout_keeps_session() -> None:
    async with _tracker(prompts=PromptBroker(lambda request: None)) as tracker:
        await tracker.start_driver_session("drv-1", "PB-1")

        assert not await tracker.end_shift(timeout=0.01)
        assert tracker.session is not None


@pytest.mark.asyncio
async def test_end_shift_and_report_issue() -> None:
    requests: list[PromptRequest] = []
    broker = PromptBroker(requests.append)
    async with _tracker(prompts=broker) as tracker:
        await tracker.start_driver_session("drv-1", "PB-1")

        report = asyncio.create_task(tracker.report_issue())
        await asyncio.sleep(0)
        broker.respond(PromptResponse(requests[-1].request_id, accepted=True, text="  flat tyre "))
        assert await report == "flat tyre"

        end = asyncio.create_task(tracker.end_shift())
        await asyncio.sleep(0)
        broker.respond(PromptResponse(requests[-1].request_id, accepted=True))
        assert await end
        assert tracker.session is None


@pytest.mark.asyncio
async def test_emergency_signal_drives_escalation() -> None:
    dispatched: list[str] = []
    async with _tracker(dispatch=dispatched.append, config=_config(sos_countdown=2)) as tracker:
        assert tracker.trigger_emergency("bus fire")
        assert tracker.escalation.phase == EscalationPhase.CONFIRMING
        await asyncio.sleep(0.1)

        assert dispatched == ["bus fire"]
        assert tracker.escalation.phase == EscalationPhase.IDLE

    assert not tracker.trigger_emergency("after stop")


@pytest.mark.asyncio
async def test_locate_user_centers_camera() -> None:
    async with _tracker() as tracker:
        fix = await tracker.locate_user()

        assert fix.position == Position(lat=30.9, lng=75.85)
        assert tracker.surface.camera.center == fix.position  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_remount_rebuilds_markers_and_controls() -> None:
    surface = HeadlessSurface()
    async with _tracker(surface=surface) as tracker:
        surface.unmount()
        assert tracker.tick().deferred

        surface.mount()
        report = tracker.sync()

        assert len(report.created) == len(DEMO_FLEET)
        assert surface.controls == [ControlKind.NAVIGATION, ControlKind.GEOLOCATE]


@pytest.mark.asyncio
async def test_stop_releases_markers_and_persists() -> None:
    store = MemoryKeyValueStore()
    surface = HeadlessSurface()
    tracker = _tracker(surface=surface, persistence=FleetPersistence(store))
    await tracker.start()
    await tracker.stop()
    await tracker.stop()

    assert surface.markers == {}
    assert len(json.loads(store.get("fleet.entities") or "[]")) == len(DEMO_FLEET)
    assert not tracker.is_running


def test_build_provider_prefers_mqtt() -> None:
    from fleetsync.location.providers import HttpPositionProvider, MqttPositionProvider

    assert build_provider(FleetConfig()) is None
    assert isinstance(build_provider(FleetConfig(position_url="http://x/pos")), HttpPositionProvider)
    both = FleetConfig(position_url="http://x/pos", mqtt_host="broker")
    assert isinstance(build_provider(both), MqttPositionProvider)
