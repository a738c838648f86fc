"""Normalization helpers.

Centralizes defensive parsing of untrusted payloads (MQTT messages, HTTP
bodies, the persisted blob).
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--":
        return None
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def normalize_heading(value: float) -> float:
    """Wrap *value* into ``[0, 360)``."""
    heading = value % 360.0
    # Tiny negative inputs round up to exactly 360.0.
    if heading >= 360.0:
        return 0.0
    return heading


def normalize_timestamp_seconds(value: Any) -> float | None:
    """Normalize payload timestamps to epoch seconds.

    - Empty/missing -> None
    - <= 0 -> None
    - Milliseconds (> 1e11) -> seconds
    """

    ts = safe_float(value)
    if ts is None or ts <= 0:
        return None
    if ts > 1e11:
        ts /= 1000.0
    return ts


def parse_timestamp(value: Any) -> datetime | None:
    """Convert an epoch number (seconds or ms) or ISO string to a UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    seconds = normalize_timestamp_seconds(value)
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=UTC)
