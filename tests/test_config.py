from __future__ import annotations

import pytest

from fleetsync.config import FleetConfig
from fleetsync.exceptions import FleetConfigError


def test_defaults() -> None:
    config = FleetConfig()
    assert (config.fallback_lat, config.fallback_lng) == (31.1471, 75.3412)
    assert config.tick_interval == 3.0
    assert config.speed_scale == 100_000
    assert config.jitter_degrees == 10
    assert config.network_poll_interval > config.gps_push_interval
    assert config.sos_countdown == 5


def test_from_env_reads_prefixed_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLEET_TICK_INTERVAL", "0.5")
    monkeypatch.setenv("FLEET_SOS_COUNTDOWN", "3")
    monkeypatch.setenv("FLEET_MQTT_HOST", "broker.local")
    monkeypatch.setenv("FLEET_REFRESH_ETA", "yes")
    monkeypatch.setenv("FLEET_SEED_DEMO_FLEET", "off")

    config = FleetConfig.from_env()

    assert config.tick_interval == 0.5
    assert config.sos_countdown == 3
    assert config.mqtt_host == "broker.local"
    assert config.refresh_eta is True
    assert config.seed_demo_fleet is False


def test_overrides_win_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLEET_JITTER_DEGREES", "not-a-number")
    monkeypatch.setenv("FLEET_STATE_PATH", "/tmp/env.json")

    config = FleetConfig.from_env(jitter_degrees=0, state_path="/tmp/override.json")

    assert config.jitter_degrees == 0
    assert config.state_path == "/tmp/override.json"


def test_invalid_number_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLEET_SPEED_SCALE", "fast")
    with pytest.raises(FleetConfigError, match="FLEET_SPEED_SCALE"):
        FleetConfig.from_env()


@pytest.mark.parametrize(
    "kwargs",
    [{"speed_scale": 0}, {"jitter_degrees": -1}, {"sos_countdown": 0}, {"tick_interval": 0}],
)
def test_invalid_values_rejected(kwargs: dict[str, float]) -> None:
    with pytest.raises(FleetConfigError):
        FleetConfig(**kwargs)  # type: ignore[arg-type]
