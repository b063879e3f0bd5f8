# src/nav_core/movement/__init__.py
"""
Movement graph and per-movement execution.

Provides:
- MoveKind / Movement / MoveContext: the edge model
- successors / rebuild: legality and cost of move templates
- ActiveMovement: the per-tick state machine for one movement
"""

from __future__ import annotations

from .active import ActiveMovement
from .moves import MoveContext, MoveKind, Movement, rebuild, successors

__all__ = [
    "ActiveMovement",
    "MoveContext",
    "MoveKind",
    "Movement",
    "rebuild",
    "successors",
]
