# src/nav_core/search/__init__.py

from .astar import AStarPathFinder, FrontierEntry, SearchOutcome, SearchResult, find_path
from .cancel import CancelToken
from .goals import (
    Goal,
    GoalBlock,
    GoalComposite,
    GoalNear,
    GoalRunAway,
    GoalXZ,
    GoalYLevel,
)
from .path import Path
from .worker import ResultMailbox, SearchRequest, SearchWorker

__all__ = [
    "AStarPathFinder",
    "CancelToken",
    "FrontierEntry",
    "Goal",
    "GoalBlock",
    "GoalComposite",
    "GoalNear",
    "GoalRunAway",
    "GoalXZ",
    "GoalYLevel",
    "Path",
    "ResultMailbox",
    "SearchOutcome",
    "SearchRequest",
    "SearchResult",
    "SearchWorker",
    "find_path",
]
