from __future__ import annotations

import json
from pathlib import Path

import pytest

from fleetsync.models.entity import Entity, EntityKind, EntityStatus, Occupancy
from fleetsync.models.geo import Position
from fleetsync.models.session import SessionIdentity, SessionRole
from fleetsync.persistence import FleetPersistence, JsonFileKeyValueStore, MemoryKeyValueStore
from fleetsync.state.registry import EntityRegistry


def _entities() -> list[Entity]:
    registry = EntityRegistry()
    registry.create(
        "PB-001",
        Position(lat=31.634, lng=75.8573),
        heading=45,
        speed=45,
        status=EntityStatus.ON_TIME,
        occupancy=Occupancy(current=24, capacity=45),
        next_stop="Civil Hospital",
        eta="8 min",
    )
    registry.create("PB-210", Position(lat=30.9, lng=75.85), kind=EntityKind.DRIVER, driver_id="drv-7")
    return registry.list()


def test_entities_round_trip_through_memory_store() -> None:
    persistence = FleetPersistence(MemoryKeyValueStore())
    entities = _entities()

    persistence.save_entities(entities)

    assert persistence.load_entities() == entities


def test_saved_blob_uses_camel_case_keys() -> None:
    store = MemoryKeyValueStore()
    FleetPersistence(store).save_entities(_entities())

    raw = json.loads(store.get("fleet.entities") or "[]")

    assert raw[0]["nextStop"] == "Civil Hospital"
    assert "lastUpdated" in raw[0]
    assert raw[1]["driverId"] == "drv-7"


@pytest.mark.parametrize(
    "blob",
    [
        "not json",
        '{"an": "object"}',
        '[{"id": "", "position": {"lat": 1, "lng": 2}}]',
        '[{"id": "x", "position": {"lat": 500, "lng": 2}}]',
        "42",
        '[{"id": "x", "position": {"lat": 1, "lng": 2}, "heading": NaN}]',
        '[{"id": "x", "position": {"lat": 1, "lng": 2}, "heading": Infinity}]',
        '[{"id": "x", "position": {"lat": 1, "lng": 2}, "speed": Infinity}]',
    ],
)
def test_malformed_entities_load_as_empty(blob: str) -> None:
    persistence = FleetPersistence(MemoryKeyValueStore({"fleet.entities": blob}))
    assert persistence.load_entities() == []


def test_missing_keys_load_as_defaults() -> None:
    persistence = FleetPersistence()
    assert persistence.load_entities() == []
    assert persistence.load_session() is None


def test_session_save_load_clear() -> None:
    persistence = FleetPersistence()
    session = SessionIdentity(role=SessionRole.DRIVER, user_id="drv-7", entity_id="abc", label="PB-210")

    persistence.save_session(session)
    assert persistence.load_session() == session

    persistence.clear_session()
    assert persistence.load_session() is None


def test_malformed_session_is_discarded() -> None:
    persistence = FleetPersistence(MemoryKeyValueStore({"fleet.session": '{"role": "pilot"}'}))
    assert persistence.load_session() is None


def test_json_file_store_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "state" / "fleet.json"
    persistence = FleetPersistence(JsonFileKeyValueStore(path))
    entities = _entities()

    persistence.save_entities(entities)
    persistence.save_session(SessionIdentity(role=SessionRole.OPERATOR, user_id="ops"))

    reloaded = FleetPersistence(JsonFileKeyValueStore(path))
    assert reloaded.load_entities() == entities
    assert reloaded.load_session().user_id == "ops"  # type: ignore[union-attr]
    assert sorted(json.loads(path.read_text())) == ["fleet.entities", "fleet.session"]
    assert list(path.parent.iterdir()) == [path]


def test_json_file_store_tolerates_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "fleet.json"
    path.write_text("{truncated", encoding="utf-8")
    store = JsonFileKeyValueStore(path)

    assert store.get("fleet.entities") is None

    store.set("fleet.session", "{}")
    assert json.loads(path.read_text()) == {"fleet.session": "{}"}


def test_json_file_store_tolerates_invalid_utf8(tmp_path: Path) -> None:
    path = tmp_path / "fleet.json"
    path.write_bytes(b'{"fleet.entities": "\xff\xfe"}')
    store = JsonFileKeyValueStore(path)
    persistence = FleetPersistence(store)

    assert persistence.load_entities() == []
    assert persistence.load_session() is None

    store.set("fleet.session", "{}")
    assert json.loads(path.read_text(encoding="utf-8")) == {"fleet.session": "{}"}


def test_json_file_store_delete(tmp_path: Path) -> None:
    store = JsonFileKeyValueStore(tmp_path / "fleet.json")
    store.set("a", "1")
    store.set("b", "2")

    store.delete("a")
    store.delete("missing")

    assert store.get("a") is None
    assert store.get("b") == "2"
