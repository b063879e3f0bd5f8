# core shared value types: VoxelPos, Classification, statuses
# src/contracts/types.py

from __future__ import annotations

import math
from enum import Enum, IntEnum
from typing import NamedTuple


# ---------------------------------------------------------------------------
# Voxel positions
# ---------------------------------------------------------------------------

_XZ_BITS = 26
_Y_BITS = 12
_XZ_MASK = (1 << _XZ_BITS) - 1
_Y_MASK = (1 << _Y_BITS) - 1
_Z_SHIFT = _Y_BITS
_X_SHIFT = _Y_BITS + _XZ_BITS


def _signed(value: int, bits: int) -> int:
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def pack_pos(x: int, y: int, z: int) -> int:
    """
    Pack an integer voxel coordinate into a single non-negative int key.

    Layout (most significant first): 26 bits x, 26 bits z, 12 bits y.
    Coordinates outside +-2^25 (xz) or +-2^11 (y) wrap.
    """
    return ((x & _XZ_MASK) << _X_SHIFT) | ((z & _XZ_MASK) << _Z_SHIFT) | (y & _Y_MASK)


class VoxelPos(NamedTuple):
    """Immutable integer voxel coordinate."""

    x: int
    y: int
    z: int

    @property
    def packed(self) -> int:
        return pack_pos(self.x, self.y, self.z)

    @classmethod
    def unpack(cls, key: int) -> "VoxelPos":
        x = _signed((key >> _X_SHIFT) & _XZ_MASK, _XZ_BITS)
        z = _signed((key >> _Z_SHIFT) & _XZ_MASK, _XZ_BITS)
        y = _signed(key & _Y_MASK, _Y_BITS)
        return cls(x, y, z)

    @classmethod
    def of(cls, x: float, y: float, z: float) -> "VoxelPos":
        """Voxel containing a continuous world position."""
        return cls(math.floor(x), math.floor(y), math.floor(z))

    def offset(self, dx: int = 0, dy: int = 0, dz: int = 0) -> "VoxelPos":
        return VoxelPos(self.x + dx, self.y + dy, self.z + dz)

    def center(self) -> tuple[float, float, float]:
        """Feet-level center of the voxel, where an agent stands."""
        return (self.x + 0.5, float(self.y), self.z + 0.5)

    def distance_sq(self, other: "VoxelPos") -> int:
        dx = self.x - other.x
        dy = self.y - other.y
        dz = self.z - other.z
        return dx * dx + dy * dy + dz * dz


# ---------------------------------------------------------------------------
# Pathing classification
# ---------------------------------------------------------------------------

class Classification(IntEnum):
    """
    Per-voxel pathing type.

    The four observed classes fit in 2 bits (their int values are the stored
    codes). UNKNOWN is never stored; it is what a lookup returns for a voxel
    that has not been observed.
    """

    AIR = 0
    WATER = 1
    AVOID = 2
    SOLID = 3
    UNKNOWN = 4

    @property
    def is_passable(self) -> bool:
        """Body/head may occupy this voxel."""
        return self is Classification.AIR or self is Classification.WATER

    @property
    def is_standable(self) -> bool:
        """Voxel can carry the agent's weight as a floor."""
        return self is Classification.SOLID

    @property
    def is_blocking(self) -> bool:
        return self is Classification.SOLID or self is Classification.AVOID


# ---------------------------------------------------------------------------
# Status enums
# ---------------------------------------------------------------------------

class MovementStatus(Enum):
    """Lifecycle of one executing movement."""

    PREPPING = "prepping"
    RUNNING = "running"
    SUCCESS = "success"
    CANCELED = "canceled"
    UNREACHABLE = "unreachable"
    COST_TOO_HIGH = "cost_too_high"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self not in (MovementStatus.PREPPING, MovementStatus.RUNNING)

    @property
    def is_failure(self) -> bool:
        return self in (
            MovementStatus.UNREACHABLE,
            MovementStatus.COST_TOO_HIGH,
            MovementStatus.FAILED,
        )


class GoalStatus(Enum):
    """User-visible outcome of one goal episode."""

    ACTIVE = "active"
    REACHED = "reached"
    GAVE_UP = "gave_up"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self is not GoalStatus.ACTIVE
