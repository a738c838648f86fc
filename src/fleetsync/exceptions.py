"""Custom exception hierarchy for fleetsync."""

from __future__ import annotations

from enum import StrEnum


class FleetError(Exception):
    """Base exception for all fleetsync errors."""


class FleetConfigError(FleetError):
    """Invalid or missing configuration."""


class AcquisitionFailure(StrEnum):
    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"


class LocationAcquisitionError(FleetError):
    """A position provider could not produce a fix.

    ``reason`` distinguishes a permanent refusal (permission denied, no
    capability) from a transient timeout. Location sources recover from
    both by falling back to the configured regional center.
    """

    def __init__(self, message: str, *, reason: AcquisitionFailure = AcquisitionFailure.UNAVAILABLE) -> None:
        self.reason = reason
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        return self.reason == AcquisitionFailure.TIMEOUT


class RenderSurfaceNotReadyError(FleetError):
    """The rendering surface is not mounted (container absent)."""


class PersistenceError(FleetError):
    """The key-value store could not be read or written."""


class DispatchError(FleetError):
    """The emergency dispatch boundary call failed."""
