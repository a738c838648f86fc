"""Tracker configuration for fleetsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from fleetsync import _constants as c
from fleetsync.exceptions import FleetConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, kind: type) -> Any:
    try:
        return kind(value)
    except ValueError as exc:
        raise FleetConfigError(f"{env_key} must be a {kind.__name__}, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class FleetConfig:
    """Tracker configuration.

    Every value is an externally supplied constant; none of them is a hard
    rule of the tracking algorithms.

    Parameters
    ----------
    fallback_lat, fallback_lng : float
        Regional center used when no position fix can be acquired.
    tick_interval : float
        Seconds between simulation ticks.
    speed_scale : float
        Speed units per coordinate degree moved in one tick (``K``).
    jitter_degrees : float
        Half-width of the uniform heading jitter (``J``). ``0`` disables it.
    refresh_eta : bool
        Re-roll each simulated entity's advisory ETA string on every tick.
    gps_push_interval : float
        Typical seconds between GPS fixes (used by polling providers).
    gps_timeout : float
        Seconds a provider may take to produce a fix before timing out.
    network_poll_interval : float
        Seconds between network (cell-tower) approximated fixes.
    network_offset_degrees : float
        Bound of the random offset applied to a zone's seed coordinate.
    external_fix_ttl : float
        Seconds an external fix keeps ownership of an entity's position.
    sos_countdown : int
        Countdown length of the emergency escalation.
    sos_tick_interval : float
        Seconds between countdown ticks.
    mqtt_host : str or None
        Broker for the MQTT position feed. ``None`` disables the feed.
    mqtt_port, mqtt_keepalive : int
        MQTT connection settings.
    mqtt_topic : str
        Topic carrying JSON position payloads.
    position_url : str or None
        HTTP endpoint returning the current position as JSON.
    state_path : str or None
        JSON file backing the persisted key-value blob. ``None`` keeps the
        blob in memory.
    seed_demo_fleet : bool
        Populate the registry with the demo fleet when nothing is persisted.
    """

    fallback_lat: float = c.DEFAULT_FALLBACK_LAT
    fallback_lng: float = c.DEFAULT_FALLBACK_LNG
    tick_interval: float = c.DEFAULT_TICK_INTERVAL
    speed_scale: float = c.DEFAULT_SPEED_SCALE
    jitter_degrees: float = c.DEFAULT_JITTER_DEGREES
    refresh_eta: bool = False
    gps_push_interval: float = c.DEFAULT_GPS_PUSH_INTERVAL
    gps_timeout: float = c.DEFAULT_GPS_TIMEOUT
    network_poll_interval: float = c.DEFAULT_NETWORK_POLL_INTERVAL
    network_offset_degrees: float = c.DEFAULT_NETWORK_OFFSET_DEGREES
    external_fix_ttl: float = c.DEFAULT_EXTERNAL_FIX_TTL
    sos_countdown: int = c.DEFAULT_SOS_COUNTDOWN
    sos_tick_interval: float = c.DEFAULT_SOS_TICK_INTERVAL
    mqtt_host: str | None = None
    mqtt_port: int = c.DEFAULT_MQTT_PORT
    mqtt_keepalive: int = c.DEFAULT_MQTT_KEEPALIVE
    mqtt_topic: str = c.DEFAULT_MQTT_TOPIC
    position_url: str | None = None
    state_path: str | None = None
    seed_demo_fleet: bool = True

    def __post_init__(self) -> None:
        if self.speed_scale <= 0:
            raise FleetConfigError("speed_scale must be positive")
        if self.jitter_degrees < 0:
            raise FleetConfigError("jitter_degrees must not be negative")
        if self.sos_countdown < 1:
            raise FleetConfigError("sos_countdown must be at least 1")
        for name in ("tick_interval", "gps_push_interval", "network_poll_interval", "sos_tick_interval"):
            if getattr(self, name) <= 0:
                raise FleetConfigError(f"{name} must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetConfig:
        """Create configuration from ``FLEET_*`` environment variables.

        Explicit keyword arguments override environment values.

        Raises
        ------
        FleetConfigError
            If a numeric variable cannot be parsed.
        """
        env = os.environ

        _ENV_NUMBER_MAP: dict[str, tuple[str, type]] = {
            "FLEET_FALLBACK_LAT": ("fallback_lat", float),
            "FLEET_FALLBACK_LNG": ("fallback_lng", float),
            "FLEET_TICK_INTERVAL": ("tick_interval", float),
            "FLEET_SPEED_SCALE": ("speed_scale", float),
            "FLEET_JITTER_DEGREES": ("jitter_degrees", float),
            "FLEET_GPS_PUSH_INTERVAL": ("gps_push_interval", float),
            "FLEET_GPS_TIMEOUT": ("gps_timeout", float),
            "FLEET_NETWORK_POLL_INTERVAL": ("network_poll_interval", float),
            "FLEET_NETWORK_OFFSET_DEGREES": ("network_offset_degrees", float),
            "FLEET_EXTERNAL_FIX_TTL": ("external_fix_ttl", float),
            "FLEET_SOS_COUNTDOWN": ("sos_countdown", int),
            "FLEET_SOS_TICK_INTERVAL": ("sos_tick_interval", float),
            "FLEET_MQTT_PORT": ("mqtt_port", int),
            "FLEET_MQTT_KEEPALIVE": ("mqtt_keepalive", int),
        }
        _ENV_STR_MAP = {
            "FLEET_MQTT_HOST": "mqtt_host",
            "FLEET_MQTT_TOPIC": "mqtt_topic",
            "FLEET_POSITION_URL": "position_url",
            "FLEET_STATE_PATH": "state_path",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, (field_name, kind) in _ENV_NUMBER_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, kind)

        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val:
                config_kwargs[field_name] = val

        if "refresh_eta" not in overrides:
            config_kwargs["refresh_eta"] = _env_bool(env.get("FLEET_REFRESH_ETA"), False)
        if "seed_demo_fleet" not in overrides:
            config_kwargs["seed_demo_fleet"] = _env_bool(env.get("FLEET_SEED_DEMO_FLEET"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
