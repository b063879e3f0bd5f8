# path: src/monitoring/events.py
"""
Event schema for navigation monitoring.

This module defines:
- EventType enum
- MonitoringEvent (structured engine events)

All events are JSON-serializable via `.to_dict()` and are intended
for use with monitoring.bus.EventBus and monitoring.logger.JsonFileLogger.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum, auto
from typing import Any, Dict, Optional


# ============================================================
# Event Types
# ============================================================

class EventType(Enum):
    """Typed monitoring events emitted by the pathing engine."""

    # Goal episode lifecycle
    GOAL_SUBMITTED = auto()
    GOAL_FINISHED = auto()

    # Search
    SEARCH_STARTED = auto()
    SEARCH_FINISHED = auto()

    # Execution
    PATH_INSTALLED = auto()
    MOVEMENT_FAILED = auto()

    # Generic log messages
    LOG = auto()


# ============================================================
# Monitoring Event Structure
# ============================================================

@dataclass
class MonitoringEvent:
    """
    Runtime event emitted by the behavior, search worker or cache.

    All fields must be JSON-safe.
    """

    ts: float                   # UNIX timestamp (seconds)
    module: str                 # Source module string ("nav_core.behavior", ...)
    event_type: EventType       # Enum describing the event class
    message: str                # Short human-readable description
    payload: Dict[str, Any]     # Structured data (outcome, cost, positions)
    correlation_id: Optional[str] = None  # Goal handle id of the episode

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dict for loggers."""
        data = asdict(self)
        data["event_type"] = self.event_type.name  # store name, not enum
        return data
