# immutable path emitted by a search
# src/nav_core/search/path.py

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from contracts.types import VoxelPos

from ..movement.moves import Movement
from .goals import Goal


@dataclass(frozen=True, eq=False)
class Path:
    """
    Ordered movements from `start`. Never mutated once emitted; the executor
    keeps its own cursor and a failed path is replaced wholesale.

    `cost` is the sum of the movement costs at emission time.
    """

    start: VoxelPos
    movements: Tuple[Movement, ...]
    goal: Goal
    cost: float
    provisional: bool = False
    nodes_explored: int = 0

    @classmethod
    def build(
        cls,
        start: VoxelPos,
        movements: Sequence[Movement],
        goal: Goal,
        *,
        provisional: bool = False,
        nodes_explored: int = 0,
    ) -> "Path":
        moves = tuple(movements)
        return cls(
            start=start,
            movements=moves,
            goal=goal,
            cost=sum(m.cost for m in moves),
            provisional=provisional,
            nodes_explored=nodes_explored,
        )

    def __len__(self) -> int:
        return len(self.movements)

    @property
    def end(self) -> VoxelPos:
        return self.movements[-1].dest if self.movements else self.start

    @property
    def reaches_goal(self) -> bool:
        return self.goal.is_in_goal(self.end)

    def positions(self) -> List[VoxelPos]:
        return [self.start] + [m.dest for m in self.movements]

    def remaining_cost(self, index: int) -> float:
        """Cost of movements[index:]."""
        return sum(m.cost for m in self.movements[index:])
