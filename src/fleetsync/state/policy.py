"""Position ownership policy.

Decides which source is authoritative for an entity's position at a given
time. The registry applies the decision; this module holds no state.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from fleetsync.state.events import Attribution, PositionSource


def source_priority(source: PositionSource) -> int:
    """Higher wins while the current owner is still fresh."""
    priorities: dict[PositionSource, int] = {
        PositionSource.GPS: 50,
        PositionSource.OPERATOR: 40,
        PositionSource.NETWORK: 30,
        PositionSource.FALLBACK: 10,
        PositionSource.SIMULATION: 0,
    }
    return priorities.get(source, 0)


def is_fresh(attribution: Attribution | None, now: datetime, ttl: timedelta) -> bool:
    if attribution is None:
        return False
    return now - attribution.at < ttl


def should_accept_fix(
    *,
    current: Attribution | None,
    incoming: PositionSource,
    now: datetime,
    ttl: timedelta,
) -> bool:
    """Decide whether an external fix may overwrite an entity's position.

    Policy:
    - No owner, or the owner went stale: accept.
    - Otherwise accept only from an equal-or-higher priority source, so a
      coarse network approximation never drags a GPS-tracked entity away.
    """
    if current is None or not is_fresh(current, now, ttl):
        return True
    return source_priority(incoming) >= source_priority(current.source)
