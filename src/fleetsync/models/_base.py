"""Base model and enum for fleetsync data.

Every model inherits from :class:`FleetBaseModel` which provides:

* ``alias_generator=to_camel`` so the persisted blob and UI payloads use
  camelCase keys (``lastUpdated``, ``nextStop``) while Python code uses
  snake_case fields.
* Frozen instances: a model is a snapshot, changes produce a new instance.

String enums inherit from :class:`FleetEnum` whose ``_missing_`` hook
accepts display spellings such as ``"On Time"`` for ``on_time``.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FleetEnum(enum.StrEnum):
    """Base for lower_snake string enums."""

    @classmethod
    def _missing_(cls, value: object) -> Any:
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower().replace(" ", "_").replace("-", "_")
        for member in cls:
            if member.value == normalized:
                return member
        return None


class FleetBaseModel(BaseModel):
    """Base for fleetsync models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )
