# src/nav_core/errors.py
"""
Domain errors for nav_core.

Only programming and configuration faults raise. Search and execution
outcomes are returned as values (SearchResult, MovementStatus, GoalResult).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class PathingError(RuntimeError):
    """
    Raised for misuse of the engine.

    Examples:
        - reusing a one-shot path finder
        - cancelling an unknown goal handle
        - invalid configuration values
    """

    code: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"PathingError(code={self.code!r}, details={self.details!r})"
