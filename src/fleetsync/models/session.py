"""Signed-in session identity."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import Field

from fleetsync.models._base import FleetBaseModel, FleetEnum


class SessionRole(FleetEnum):
    DRIVER = "driver"
    OPERATOR = "operator"


class SessionIdentity(FleetBaseModel):
    """Who is signed in to the dashboard.

    Persisted so that a reloaded dashboard can restore the last session.
    """

    role: SessionRole
    user_id: str = Field(..., min_length=1)
    display_name: str = ""
    entity_id: str | None = None
    label: str | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
