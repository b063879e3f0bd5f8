# A* over the movement graph
# src/nav_core/search/astar.py
"""
A* path search over the movement graph.

- Open set ordered by (cost-so-far + heuristic, move priority, insertion).
- Goal is a predicate; the heuristic comes from the goal and is admissible.
- Runs under a node-count and wall-clock ceiling. On the ceiling it returns
  the path to the node with the lowest heuristic seen so far, flagged
  PARTIAL (provisional).
- UNREACHABLE only when the frontier is exhausted and no move was rejected
  for crossing UNKNOWN voxels; otherwise the answer is PARTIAL.
- Cooperative cancellation and the clock are checked every
  `cancel_check_interval` expanded nodes.

This module does not mutate the cache and never blocks on I/O.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from contracts.types import VoxelPos, pack_pos
from env.schema import SearchSettings

from ..errors import PathingError
from ..movement.moves import ClassificationView, MoveContext, Movement, PenaltyFn, successors
from .cancel import CancelToken
from .goals import Goal
from .path import Path


log = logging.getLogger(__name__)


class SearchOutcome(Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    UNREACHABLE = "unreachable"
    CANCELED = "canceled"
    ERROR = "error"


@dataclass
class SearchResult:
    """Structured result for a search attempt."""

    outcome: SearchOutcome
    path: Optional[Path]
    nodes_explored: int
    duration_s: float
    reason: str | None = None
    request_id: int = 0

    @property
    def success(self) -> bool:
        return self.outcome is SearchOutcome.SUCCESS

    @property
    def provisional(self) -> bool:
        return self.outcome is SearchOutcome.PARTIAL


@dataclass(frozen=True)
class FrontierEntry:
    """One open node, for visualization only."""

    pos: VoxelPos
    g: float
    f: float


class _Node:
    __slots__ = ("pos", "g", "h", "parent", "move", "closed")

    def __init__(self, pos: VoxelPos, g: float, h: float, parent: Optional["_Node"], move: Optional[Movement]) -> None:
        self.pos = pos
        self.g = g
        self.h = h
        self.parent = parent
        self.move = move
        self.closed = False


_HeapEntry = Tuple[float, int, int, _Node]


class AStarPathFinder:
    """One-shot A* search from `start` toward `goal`."""

    def __init__(
        self,
        ctx: MoveContext,
        start: VoxelPos,
        goal: Goal,
        *,
        max_nodes: Optional[int] = None,
        timeout_s: Optional[float] = None,
        cancel: Optional[CancelToken] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = ctx.settings
        self._ctx = ctx
        self._start = VoxelPos(*start)
        self._goal = goal
        self._max_nodes = max_nodes if max_nodes is not None else settings.max_nodes
        self._timeout_s = timeout_s if timeout_s is not None else settings.timeout_s
        self._check_every = max(1, settings.cancel_check_interval)
        self._cancel = cancel
        self._clock = clock
        self._open: List[_HeapEntry] = []
        self._used = False
        self.nodes_explored = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def calculate(self) -> SearchResult:
        if self._used:
            raise PathingError("search_reused", {"start": tuple(self._start)})
        self._used = True

        t0 = self._clock()
        goal = self._goal
        start_node = _Node(self._start, 0.0, goal.heuristic(self._start), None, None)
        if goal.is_in_goal(self._start):
            return self._result(SearchOutcome.SUCCESS, start_node, t0)

        nodes: Dict[int, _Node] = {pack_pos(*self._start): start_node}
        open_heap = self._open
        seq = itertools.count()
        heapq.heappush(open_heap, (start_node.h, 0, next(seq), start_node))
        best = start_node
        ctx = self._ctx
        heuristic = goal.heuristic
        ceiling_reason: Optional[str] = None

        while open_heap:
            f, _, _, node = heapq.heappop(open_heap)
            if node.closed or f > node.g + node.h + 1e-9:
                continue
            node.closed = True
            self.nodes_explored += 1

            if goal.is_in_goal(node.pos):
                return self._result(SearchOutcome.SUCCESS, node, t0)

            if self.nodes_explored % self._check_every == 0:
                if self._cancel is not None and self._cancel.cancelled:
                    return SearchResult(
                        outcome=SearchOutcome.CANCELED,
                        path=None,
                        nodes_explored=self.nodes_explored,
                        duration_s=self._clock() - t0,
                        reason=self._cancel.reason,
                    )
                if self._clock() - t0 >= self._timeout_s:
                    ceiling_reason = "timeout"
                    break
            if self.nodes_explored >= self._max_nodes:
                ceiling_reason = "node_limit"
                break

            for move in successors(ctx, node.pos):
                dest = move.dest
                key = pack_pos(dest.x, dest.y, dest.z)
                g = node.g + move.cost
                child = nodes.get(key)
                if child is None:
                    child = _Node(dest, g, heuristic(dest), node, move)
                    nodes[key] = child
                elif g < child.g - 1e-9:
                    child.g = g
                    child.parent = node
                    child.move = move
                    child.closed = False
                else:
                    continue
                heapq.heappush(open_heap, (g + child.h, move.kind.priority, next(seq), child))
                if child.h < best.h or (child.h == best.h and child.g < best.g):
                    best = child

        if ceiling_reason is None and ctx.unknown_rejections == 0:
            return SearchResult(
                outcome=SearchOutcome.UNREACHABLE,
                path=None,
                nodes_explored=self.nodes_explored,
                duration_s=self._clock() - t0,
                reason="frontier exhausted",
            )

        reason = ceiling_reason or "unknown terrain"
        if best is start_node:
            return SearchResult(
                outcome=SearchOutcome.PARTIAL,
                path=Path.build(self._start, (), goal, provisional=True, nodes_explored=self.nodes_explored),
                nodes_explored=self.nodes_explored,
                duration_s=self._clock() - t0,
                reason=f"{reason}; no progress",
            )
        return self._result(SearchOutcome.PARTIAL, best, t0, reason=reason)

    def frontier_snapshot(self, limit: int = 64) -> List[FrontierEntry]:
        """Best open nodes right now. Safe to call from another thread."""
        entries = sorted(list(self._open), key=lambda e: (e[0], e[1], e[2]))
        out: List[FrontierEntry] = []
        seen = set()
        for f, _, _, node in entries:
            if node.closed or node.pos in seen:
                continue
            seen.add(node.pos)
            out.append(FrontierEntry(node.pos, node.g, f))
            if len(out) >= limit:
                break
        return out

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _result(self, outcome: SearchOutcome, node: _Node, t0: float, *, reason: str | None = None) -> SearchResult:
        path = Path.build(
            self._start,
            _reconstruct_moves(node),
            self._goal,
            provisional=outcome is SearchOutcome.PARTIAL,
            nodes_explored=self.nodes_explored,
        )
        duration = self._clock() - t0
        log.debug(
            "search %s start=%s end=%s moves=%d cost=%.2f nodes=%d in %.3fs",
            outcome.value, tuple(self._start), tuple(path.end), len(path), path.cost,
            self.nodes_explored, duration,
        )
        return SearchResult(
            outcome=outcome,
            path=path,
            nodes_explored=self.nodes_explored,
            duration_s=duration,
            reason=reason,
        )


def _reconstruct_moves(node: _Node) -> List[Movement]:
    """Walk parent links back to the start."""
    moves: List[Movement] = []
    while node.move is not None:
        moves.append(node.move)
        node = node.parent
    moves.reverse()
    return moves


def find_path(
    view: ClassificationView,
    start: VoxelPos,
    goal: Goal,
    *,
    settings: Optional[SearchSettings] = None,
    penalty: Optional[PenaltyFn] = None,
    cancel: Optional[CancelToken] = None,
) -> SearchResult:
    """
    Convenience wrapper: one search over `view` with the given settings.

    Re-entrant: each call builds its own context and node table, and only
    reads from `view`.
    """
    ctx = MoveContext(view=view, settings=settings or SearchSettings(), penalty=penalty)
    return AStarPathFinder(ctx, start, goal, cancel=cancel).calculate()
