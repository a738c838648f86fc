"""State layer.

This package is the single source of truth for tracked entities. Every
position writer (simulation, GPS, network approximation, operator edits)
goes through :class:`EntityRegistry`.
"""

from fleetsync.state.events import Attribution, PositionSource
from fleetsync.state.registry import EntityRegistry

__all__ = ["Attribution", "EntityRegistry", "PositionSource"]
