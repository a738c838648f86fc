"""Tests for pydantic model parsing with FleetBaseModel + FleetEnum."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from fleetsync._normalize import normalize_heading, parse_timestamp, safe_float
from fleetsync.models.entity import Entity, EntityStatus, Occupancy
from fleetsync.models.fix import AccuracyClass
from fleetsync.models.geo import Position
from fleetsync.models.gps import GpsReading
from fleetsync.models.render import MarkerMeta

# ------------------------------------------------------------------
# FleetEnum
# ------------------------------------------------------------------


class TestFleetEnum:
    def test_display_spelling_accepted(self) -> None:
        assert EntityStatus("On Time") == EntityStatus.ON_TIME
        assert EntityStatus("DELAYED") == EntityStatus.DELAYED

    def test_unknown_value_raises(self) -> None:
        with pytest.raises(ValueError):
            EntityStatus("cancelled")


# ------------------------------------------------------------------
# Entity
# ------------------------------------------------------------------


class TestEntity:
    def test_heading_wrapped_on_construction(self) -> None:
        entity = Entity(id="a", position=Position(lat=0, lng=0), heading=370)
        assert entity.heading == 10
        assert Entity(id="a", position=Position(lat=0, lng=0), heading=-90).heading == 270

    def test_negative_speed_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Entity(id="a", position=Position(lat=0, lng=0), speed=-1)

    def test_camel_case_aliases(self) -> None:
        entity = Entity.model_validate(
            {
                "id": "a",
                "position": {"lat": 31, "lng": 75},
                "nextStop": "Bus Stand",
                "lastUpdated": 1767225600000,
                "occupancy": "18/35",
            }
        )
        assert entity.next_stop == "Bus Stand"
        assert entity.last_updated == datetime(2026, 1, 1, tzinfo=UTC)
        assert entity.occupancy == Occupancy(current=18, capacity=35)

    def test_with_changes_validates(self) -> None:
        entity = Entity(id="a", position=Position(lat=0, lng=0))
        assert entity.with_changes(heading=725).heading == 5
        with pytest.raises(ValidationError):
            entity.with_changes(speed=-3)

    def test_frozen(self) -> None:
        entity = Entity(id="a", position=Position(lat=0, lng=0))
        with pytest.raises(ValidationError):
            entity.label = "x"  # type: ignore[misc]


class TestPosition:
    def test_out_of_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Position(lat=91, lng=0)

    def test_offset_wraps_longitude_and_clamps_latitude(self) -> None:
        moved = Position(lat=89.9995, lng=179.9995).offset(d_lat=0.001, d_lng=0.001)
        assert moved.lat == 90.0
        assert moved.lng == pytest.approx(-179.9995)


class TestMarkerMeta:
    def test_from_entity_renders_occupancy(self) -> None:
        entity = Entity(
            id="a",
            label="PB-001",
            position=Position(lat=0, lng=0),
            occupancy=Occupancy(current=24, capacity=45),
        )
        meta = MarkerMeta.from_entity(entity)
        assert meta.occupancy == "24/45"
        assert meta.label == "PB-001"


# ------------------------------------------------------------------
# GpsReading
# ------------------------------------------------------------------


class TestGpsReading:
    def test_aliases_and_nested_coords(self) -> None:
        reading = GpsReading.model_validate(
            {
                "busId": 7,
                "coords": {"latitude": "31.63", "longitude": "75.85", "heading": -10, "accuracy": 5},
                "timestamp": 1767225600,
            }
        )
        assert reading.entity_id == "7"
        fix = reading.to_fix()
        assert fix is not None
        assert fix.accuracy == AccuracyClass.HIGH
        assert fix.position == Position(lat=31.63, lng=75.85)
        assert fix.heading == 350
        assert fix.accuracy_m == 5
        assert fix.timestamp == datetime(2026, 1, 1, tzinfo=UTC)

    def test_missing_or_invalid_coordinate_has_no_fix(self) -> None:
        assert GpsReading.model_validate({"lat": "--", "lng": 75}).to_fix() is None
        assert GpsReading.model_validate({"lat": 123, "lng": 75}).to_fix() is None


# ------------------------------------------------------------------
# Normalization helpers
# ------------------------------------------------------------------


class TestNormalize:
    @pytest.mark.parametrize(("value", "expected"), [(0, 0), (360, 0), (-1e-14, 0.0), (725, 5)])
    def test_normalize_heading(self, value: float, expected: float) -> None:
        result = normalize_heading(value)
        assert 0 <= result < 360
        assert result == pytest.approx(expected, abs=1e-9)

    def test_safe_float(self) -> None:
        assert safe_float("1.5") == 1.5
        assert safe_float("nan") is None
        assert safe_float(True) is None
        assert safe_float("--") is None

    def test_parse_timestamp(self) -> None:
        expected = datetime(2026, 1, 1, tzinfo=UTC)
        assert parse_timestamp("2026-01-01T00:00:00Z") == expected
        assert parse_timestamp(1767225600) == expected
        assert parse_timestamp(1767225600000) == expected
        assert parse_timestamp("garbage") is None
