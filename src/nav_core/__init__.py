# src/nav_core/__init__.py
"""
Voxel pathfinding engine.

Most callers only need PathingBehavior plus a Goal; the subpackages
(cache, movement, search, execution, flight) are importable on their own
for tools and tests.
"""

from __future__ import annotations

from .behavior import GoalResult, PathingBehavior
from .errors import PathingError
from .search.goals import (
    Goal,
    GoalBlock,
    GoalComposite,
    GoalNear,
    GoalRunAway,
    GoalXZ,
    GoalYLevel,
)
from .search.path import Path
from .tracing import MovementTraceRecord, MovementTracer

__all__ = [
    "Goal",
    "GoalBlock",
    "GoalComposite",
    "GoalNear",
    "GoalResult",
    "GoalRunAway",
    "GoalXZ",
    "GoalYLevel",
    "MovementTraceRecord",
    "MovementTracer",
    "Path",
    "PathingBehavior",
    "PathingError",
]
