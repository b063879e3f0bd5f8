# host-facing interfaces the engine consumes
# src/contracts/host.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from .types import Classification, VoxelPos


Vec3 = Tuple[float, float, float]


class TerrainSource(Protocol):
    """Ground-truth terrain sampling provided by the host world.

    Only the cache's observation path calls this.
    """

    def classification_of(self, x: int, y: int, z: int) -> Classification:
        """Return the pathing class of a voxel, or UNKNOWN if not loaded."""
        ...


class AgentSensor(Protocol):
    """Read accessors for the agent body, sampled once per tick."""

    def agent_position(self) -> Vec3:
        ...

    def agent_velocity(self) -> Vec3:
        ...


class AgentControls(Protocol):
    """Primitive inputs the executor may issue on behalf of the agent."""

    def look_at(self, x: float, y: float, z: float) -> None:
        ...

    def move_toward(self, x: float, y: float, z: float, *, sprint: bool = False) -> None:
        ...

    def jump(self) -> None:
        ...

    def break_block(self, x: int, y: int, z: int) -> None:
        ...

    def release_all(self) -> None:
        """Stop every held input."""
        ...


class RegionStorage(Protocol):
    """Persistent byte store for serialized cache regions."""

    def load(self, dimension: str, region: Tuple[int, int, int]) -> Optional[bytes]:
        """Return stored bytes or None when nothing is stored."""
        ...

    def save(self, dimension: str, region: Tuple[int, int, int], data: bytes) -> None:
        ...


@dataclass(frozen=True)
class BlockChange:
    """Out-of-band world mutation reported by the host."""

    position: VoxelPos
    before: Classification
    after: Classification
