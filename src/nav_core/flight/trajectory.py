# any-angle flight search over the octree
# src/nav_core/flight/trajectory.py
"""
Long-range flight trajectories.

TrajectorySearch runs a Theta*-style search on a coarse lattice anchored at
the start point: nodes are `step` blocks apart in 26 directions, edges are
straight segments sampled every `sample_spacing` blocks against the octree,
and a node may take its grandparent as parent whenever the direct segment
is clear. The result is a finite, indexable waypoint list.

trajectory_to_path turns waypoints into FLY movements so the regular
executor can consume them.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from contracts.host import Vec3
from contracts.types import VoxelPos
from env.schema import FlightSettings

from ..movement.moves import MoveKind, Movement
from ..search.cancel import CancelToken
from ..search.goals import Goal, GoalNear
from ..search.path import Path
from .octree import OctreeIndex


log = logging.getLogger(__name__)

_Cell = Tuple[int, int, int]

_DIRECTIONS: Tuple[_Cell, ...] = tuple(
    (dx, dy, dz)
    for dx in (-1, 0, 1)
    for dy in (-1, 0, 1)
    for dz in (-1, 0, 1)
    if (dx, dy, dz) != (0, 0, 0)
)


def _dist(a: Vec3, b: Vec3) -> float:
    return math.sqrt((a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 + (a[2] - b[2]) ** 2)


@dataclass(frozen=True)
class Trajectory:
    """Ordered waypoints from the start point. `finished` means the last one is the goal."""

    waypoints: Tuple[Vec3, ...]
    finished: bool
    nodes_explored: int = 0
    reason: Optional[str] = None

    def __len__(self) -> int:
        return len(self.waypoints)

    def __getitem__(self, index: int) -> Vec3:
        return self.waypoints[index]

    def __iter__(self) -> Iterator[Vec3]:
        return iter(self.waypoints)

    @property
    def length(self) -> float:
        return sum(_dist(a, b) for a, b in zip(self.waypoints, self.waypoints[1:]))


class _Node:
    __slots__ = ("cell", "pos", "g", "h", "parent", "closed")

    def __init__(self, cell: _Cell, pos: Vec3, g: float, h: float, parent: Optional["_Node"]) -> None:
        self.cell = cell
        self.pos = pos
        self.g = g
        self.h = h
        self.parent = parent
        self.closed = False


class TrajectorySearch:
    def __init__(
        self,
        index: OctreeIndex,
        start: Vec3,
        goal: Vec3,
        settings: Optional[FlightSettings] = None,
        *,
        cancel: Optional[CancelToken] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.index = index
        self.start = tuple(float(v) for v in start)
        self.goal = tuple(float(v) for v in goal)
        self.settings = settings or FlightSettings()
        self._cancel = cancel
        self._clock = clock
        self.nodes_explored = 0
        self.segment_checks = 0

    # ------------------------------------------------------------------
    # Collision
    # ------------------------------------------------------------------

    def point_clear(self, p: Vec3) -> bool:
        s = self.settings
        x, y, z = p
        if y < s.min_y or y + 1 >= s.max_y:
            return False
        bx, by, bz = math.floor(x), math.floor(y), math.floor(z)
        return not (self.index.is_solid(bx, by, bz) or self.index.is_solid(bx, by + 1, bz))

    def segment_clear(self, a: Vec3, b: Vec3) -> bool:
        self.segment_checks += 1
        length = _dist(a, b)
        samples = max(1, math.ceil(length / self.settings.sample_spacing))
        ax, ay, az = a
        dx, dy, dz = b[0] - ax, b[1] - ay, b[2] - az
        for i in range(samples + 1):
            t = i / samples
            if not self.point_clear((ax + dx * t, ay + dy * t, az + dz * t)):
                return False
        return True

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def run(self) -> Trajectory:
        s = self.settings
        t0 = self._clock()
        start, goal = self.start, self.goal
        if not self.point_clear(start):
            return Trajectory((start,), False, 0, "start obstructed")
        if not self.point_clear(goal):
            return Trajectory((start,), False, 0, "goal obstructed")
        if self.segment_clear(start, goal):
            return Trajectory((start, goal), True, 0)

        step = s.step
        sx, sy, sz = start

        def pos_of(cell: _Cell) -> Vec3:
            return sx + cell[0] * step, sy + cell[1] * step, sz + cell[2] * step

        root = _Node((0, 0, 0), start, 0.0, _dist(start, goal), None)
        nodes: Dict[_Cell, _Node] = {root.cell: root}
        open_heap: List[Tuple[float, int, _Node]] = []
        seq = itertools.count()
        heapq.heappush(open_heap, (root.h, next(seq), root))
        best = root
        reason = "frontier exhausted"

        while open_heap:
            f, _, node = heapq.heappop(open_heap)
            if node.closed or f > node.g + node.h + 1e-9:
                continue
            node.closed = True
            self.nodes_explored += 1

            if node.h <= step and self.segment_clear(node.pos, goal):
                waypoints = self._waypoints(node) + [goal]
                return self._finish(waypoints, True, t0, None)

            if self.nodes_explored >= s.max_nodes:
                reason = "node_limit"
                break
            if self.nodes_explored % 64 == 0:
                if self._cancel is not None and self._cancel.cancelled:
                    return Trajectory((start,), False, self.nodes_explored, "canceled")
                if self._clock() - t0 >= s.timeout_s:
                    reason = "timeout"
                    break

            cx, cy, cz = node.cell
            for dx, dy, dz in _DIRECTIONS:
                cell = (cx + dx, cy + dy, cz + dz)
                child = nodes.get(cell)
                if child is not None and child.closed:
                    continue
                pos = pos_of(cell) if child is None else child.pos
                if not self.point_clear(pos):
                    continue

                parent = node.parent
                if parent is not None and self.segment_clear(parent.pos, pos):
                    g = parent.g + _dist(parent.pos, pos)
                elif self.segment_clear(node.pos, pos):
                    parent = node
                    g = node.g + _dist(node.pos, pos)
                else:
                    continue

                if child is None:
                    child = _Node(cell, pos, g, _dist(pos, goal), parent)
                    nodes[cell] = child
                elif g < child.g - 1e-9:
                    child.g = g
                    child.parent = parent
                else:
                    continue
                heapq.heappush(open_heap, (g + child.h, next(seq), child))
                if child.h < best.h:
                    best = child

        return self._finish(self._waypoints(best), False, t0, reason)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _waypoints(self, node: _Node) -> List[Vec3]:
        out: List[Vec3] = []
        while node is not None:
            out.append(node.pos)
            node = node.parent
        out.reverse()
        return out

    def _finish(self, waypoints: List[Vec3], finished: bool, t0: float, reason: Optional[str]) -> Trajectory:
        cleaned = remove_backtracks(waypoints)
        log.debug(
            "trajectory finished=%s waypoints=%d nodes=%d checks=%d in %.3fs (%s)",
            finished, len(cleaned), self.nodes_explored, self.segment_checks, self._clock() - t0, reason,
        )
        return Trajectory(tuple(cleaned), finished, self.nodes_explored, reason)


def _cell_of(wp: Vec3, cell_size: float) -> _Cell:
    return (
        math.floor(wp[0] / cell_size),
        math.floor(wp[1] / cell_size),
        math.floor(wp[2] / cell_size),
    )


def remove_backtracks(waypoints: Sequence[Vec3], cell_size: float = 1.0) -> List[Vec3]:
    """
    Drop loops: when a waypoint falls in the same cell as an earlier one,
    everything between them is cut. Consecutive duplicates collapse too.
    The first and last waypoints are always kept exactly.
    """
    out: List[Vec3] = []
    seen: Dict[_Cell, int] = {}
    for wp in waypoints:
        cell = _cell_of(wp, cell_size)
        earlier = seen.get(cell)
        if earlier is not None:
            for dropped in out[earlier + 1:]:
                seen.pop(_cell_of(dropped, cell_size), None)
            del out[earlier + 1:]
            continue
        seen[cell] = len(out)
        out.append(wp)
    if out and out[-1] != waypoints[-1]:
        # the goal shares a cell with an earlier waypoint
        if len(out) > 1:
            out[-1] = waypoints[-1]
        else:
            out.append(waypoints[-1])
    return out


def trajectory_to_path(
    trajectory: Trajectory,
    goal: Optional[Goal] = None,
    *,
    speed: float = 1.5,
    tolerance: float = 1.5,
) -> Path:
    """
    One FLY movement per consecutive waypoint pair; cost is distance / speed
    in ticks. The path is provisional unless the trajectory finished.
    """
    if speed <= 0:
        raise ValueError("flight speed must be positive")
    waypoints = trajectory.waypoints
    start = VoxelPos.of(*waypoints[0])
    if goal is None:
        gx, gy, gz = VoxelPos.of(*waypoints[-1])
        goal = GoalNear(gx, gy, gz, tolerance)
    moves: List[Movement] = []
    for a, b in zip(waypoints, waypoints[1:]):
        moves.append(
            Movement(
                MoveKind.FLY,
                VoxelPos.of(*a),
                VoxelPos.of(*b),
                _dist(a, b) / speed,
                target=b,
            )
        )
    return Path.build(start, moves, goal, provisional=not trajectory.finished,
                      nodes_explored=trajectory.nodes_explored)
