# src/nav_core/tracing.py
"""
Movement tracing for nav_core.

A thin, structured logging layer around movement execution so that
monitoring and offline analysis see one consistent record per movement.

It does NOT:
- Decide retries or re-planning
- Publish bus events (the behavior does that)
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Tuple

from .movement.active import ActiveMovement


@dataclass
class MovementTraceRecord:
    """
    Structured record of one movement that reached a terminal status.
    """

    timestamp: float           # wall-clock time (time.time())
    kind: str
    src: Tuple[int, int, int]
    dest: Tuple[int, int, int]
    status: str
    reason: Optional[str]
    ticks: int
    planned_cost: float
    goal_id: Optional[str]


class MovementTracer:
    """
    In-memory movement tracer with optional logging.

    Keeps a rolling buffer of recent MovementTraceRecord entries and emits
    a single log line per movement (info for failures, debug otherwise).
    """

    def __init__(
        self,
        *,
        logger: Optional[logging.Logger] = None,
        max_records: int = 10_000,
    ) -> None:
        self._logger = logger or logging.getLogger("nav_core.movement")
        self._records: Deque[MovementTraceRecord] = deque(maxlen=max_records)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def record(self, active: ActiveMovement, *, goal_id: Optional[str] = None) -> None:
        """
        Record a movement after it terminated, successful or not.
        """
        try:
            record = self._build_record(active, goal_id)
        except Exception:
            # Tracing must never crash the tick loop.
            self._logger.exception("Failed to build MovementTraceRecord")
            return

        self._records.append(record)

        level = logging.DEBUG if record.status == "success" else logging.INFO
        self._logger.log(
            level,
            "movement kind=%s status=%s src=%s dest=%s ticks=%d cost=%.2f goal=%s reason=%s",
            record.kind,
            record.status,
            record.src,
            record.dest,
            record.ticks,
            record.planned_cost,
            record.goal_id,
            record.reason,
        )

    def get_records(self) -> List[MovementTraceRecord]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_record(self, active: ActiveMovement, goal_id: Optional[str]) -> MovementTraceRecord:
        m = active.movement
        return MovementTraceRecord(
            timestamp=time.time(),
            kind=m.kind.name,
            src=tuple(m.src),
            dest=tuple(m.dest),
            status=active.status.value,
            reason=active.reason,
            ticks=active.ticks,
            planned_cost=float(m.cost),
            goal_id=goal_id,
        )
