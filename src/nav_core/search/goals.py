# goal predicates with admissible heuristics
# src/nav_core/search/goals.py
"""
Goals for the path search.

A goal is a predicate over voxels plus a heuristic that never overestimates
the remaining tick cost to any voxel satisfying it. Heuristics are built on
nav_core.costs lower bounds, so they stay admissible for every move template.
"""

from __future__ import annotations

import math
from typing import Iterable, Tuple

from contracts.types import VoxelPos

from .. import costs


class Goal:
    """Base class for goal predicates."""

    def is_in_goal(self, pos: VoxelPos) -> bool:
        raise NotImplementedError

    def heuristic(self, pos: VoxelPos) -> float:
        raise NotImplementedError

    def describe(self) -> str:
        return repr(self)


class GoalBlock(Goal):
    """Stand with feet in exactly this voxel."""

    def __init__(self, x: int, y: int, z: int) -> None:
        self.pos = VoxelPos(x, y, z)

    def is_in_goal(self, pos: VoxelPos) -> bool:
        return pos == self.pos

    def heuristic(self, pos: VoxelPos) -> float:
        return costs.lower_bound(self.pos.x - pos.x, self.pos.y - pos.y, self.pos.z - pos.z)

    def __repr__(self) -> str:
        return f"GoalBlock({self.pos.x}, {self.pos.y}, {self.pos.z})"


class GoalNear(Goal):
    """Within `radius` blocks (Euclidean) of a voxel."""

    def __init__(self, x: int, y: int, z: int, radius: float) -> None:
        self.pos = VoxelPos(x, y, z)
        self.radius = float(radius)
        self._radius_sq = self.radius * self.radius

    def is_in_goal(self, pos: VoxelPos) -> bool:
        return pos.distance_sq(self.pos) <= self._radius_sq

    def heuristic(self, pos: VoxelPos) -> float:
        # Every voxel in the sphere is at least (d - radius) away on each axis group.
        horizontal = max(0.0, math.hypot(self.pos.x - pos.x, self.pos.z - pos.z) - self.radius)
        dy = self.pos.y - pos.y
        vertical = math.copysign(max(0.0, abs(dy) - self.radius), dy)
        return costs.horizontal_lower_bound(horizontal) + costs.vertical_lower_bound(vertical)

    def __repr__(self) -> str:
        return f"GoalNear({self.pos.x}, {self.pos.y}, {self.pos.z}, r={self.radius:g})"


class GoalXZ(Goal):
    """Any height at this column."""

    def __init__(self, x: int, z: int) -> None:
        self.x = x
        self.z = z

    def is_in_goal(self, pos: VoxelPos) -> bool:
        return pos.x == self.x and pos.z == self.z

    def heuristic(self, pos: VoxelPos) -> float:
        return costs.horizontal_lower_bound(math.hypot(self.x - pos.x, self.z - pos.z))

    def __repr__(self) -> str:
        return f"GoalXZ({self.x}, {self.z})"


class GoalYLevel(Goal):
    """Any voxel at this height."""

    def __init__(self, y: int) -> None:
        self.y = y

    def is_in_goal(self, pos: VoxelPos) -> bool:
        return pos.y == self.y

    def heuristic(self, pos: VoxelPos) -> float:
        return costs.vertical_lower_bound(self.y - pos.y)

    def __repr__(self) -> str:
        return f"GoalYLevel({self.y})"


class GoalRunAway(Goal):
    """At least `distance` blocks (horizontal) from every origin."""

    def __init__(self, origins: Iterable[Tuple[int, int, int]], distance: float) -> None:
        self.origins = tuple(VoxelPos(*o) for o in origins)
        if not self.origins:
            raise ValueError("GoalRunAway needs at least one origin")
        self.distance = float(distance)

    def _min_dist(self, pos: VoxelPos) -> float:
        return min(math.hypot(pos.x - o.x, pos.z - o.z) for o in self.origins)

    def is_in_goal(self, pos: VoxelPos) -> bool:
        return self._min_dist(pos) >= self.distance

    def heuristic(self, pos: VoxelPos) -> float:
        # Moving away from the nearest origin is at best straight-line.
        return costs.horizontal_lower_bound(max(0.0, self.distance - self._min_dist(pos)))

    def __repr__(self) -> str:
        return f"GoalRunAway({len(self.origins)} origins, d={self.distance:g})"


class GoalComposite(Goal):
    """Satisfied by any member; heuristic is the minimum member bound."""

    def __init__(self, *goals: Goal) -> None:
        if not goals:
            raise ValueError("GoalComposite needs at least one goal")
        self.goals = tuple(goals)

    def is_in_goal(self, pos: VoxelPos) -> bool:
        return any(g.is_in_goal(pos) for g in self.goals)

    def heuristic(self, pos: VoxelPos) -> float:
        return min(g.heuristic(pos) for g in self.goals)

    def __repr__(self) -> str:
        return "GoalComposite(" + ", ".join(repr(g) for g in self.goals) + ")"
