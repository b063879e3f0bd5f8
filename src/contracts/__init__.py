# src/contracts/__init__.py

from __future__ import annotations

"""
Shared contracts for the pathing engine.

Re-exports value types used across packages and the narrow Protocols the
host environment implements (terrain sampling, agent sensing/controls,
region storage). Keeps the engine free of host types.
"""

from .types import (
    Classification,
    GoalStatus,
    MovementStatus,
    VoxelPos,
    pack_pos,
)
from .host import (
    AgentControls,
    AgentSensor,
    BlockChange,
    RegionStorage,
    TerrainSource,
    Vec3,
)

__all__ = [
    # Values
    "Classification",
    "GoalStatus",
    "MovementStatus",
    "VoxelPos",
    "pack_pos",
    # Host interfaces
    "AgentControls",
    "AgentSensor",
    "BlockChange",
    "RegionStorage",
    "TerrainSource",
    "Vec3",
]
