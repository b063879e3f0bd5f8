# src/nav_core/execution/__init__.py

from .executor import ExecutorState, ExecutorStep, PathExecutor
from .retry import FailureMemory, RetryBudget

__all__ = [
    "ExecutorState",
    "ExecutorStep",
    "FailureMemory",
    "PathExecutor",
    "RetryBudget",
]
