# walks a Path one movement at a time
# src/nav_core/execution/executor.py
"""
PathExecutor: the execution state machine for one Path.

Per tick():
- drives the active movement (ActiveMovement.update)
- on SUCCESS advances the cursor; the last success completes the path
- on any failure status stops and reports the failed movement so the
  caller can consult the retry budget and re-search
- rechecks the next few queued movements against the cache; a stale one
  ends the path as soon as the active movement is safe to abandon

It never re-plans and never touches the retry budget; that is the
behavior's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from contracts.host import AgentControls, AgentSensor
from contracts.types import MovementStatus
from env.schema import ExecutionSettings

from ..movement.active import ActiveMovement
from ..movement.moves import MoveContext, Movement, rebuild
from ..search.path import Path


log = logging.getLogger(__name__)


class ExecutorState(Enum):
    IN_PROGRESS = "in_progress"
    PATH_COMPLETE = "path_complete"
    MOVEMENT_FAILED = "movement_failed"
    STALE = "stale"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutorState.IN_PROGRESS


@dataclass
class ExecutorStep:
    """What happened during one executor tick."""

    state: ExecutorState
    movement: Optional[Movement] = None
    status: Optional[MovementStatus] = None
    reason: Optional[str] = None
    # Movement that reached a terminal status this tick, for tracing.
    finished: Optional[ActiveMovement] = None


class PathExecutor:
    def __init__(
        self,
        path: Path,
        sensor: AgentSensor,
        controls: AgentControls,
        settings: Optional[ExecutionSettings] = None,
        *,
        flight_tolerance: float = 1.5,
    ) -> None:
        self.path = path
        self.sensor = sensor
        self.controls = controls
        self.settings = settings or ExecutionSettings()
        self.flight_tolerance = flight_tolerance
        self.cursor = 0
        self.active: Optional[ActiveMovement] = None
        self.state = ExecutorState.IN_PROGRESS
        self._cancel_requested = False
        self._stale: Optional[Movement] = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def done(self) -> bool:
        return self.state.is_terminal

    @property
    def movements_left(self) -> int:
        return len(self.path) - self.cursor

    def remaining_cost(self) -> float:
        """Planned cost of the active movement and everything after it."""
        return self.path.remaining_cost(self.cursor)

    def safe_to_cancel(self) -> bool:
        return self.active is None or self.active.safe_to_cancel()

    def request_cancel(self) -> None:
        self._cancel_requested = True
        if self.active is not None:
            self.active.request_cancel()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, ctx: MoveContext) -> ExecutorStep:
        if self.state.is_terminal:
            return ExecutorStep(self.state)

        if self.cursor >= len(self.path):
            return self._end(ExecutorState.PATH_COMPLETE)

        if self._cancel_requested and self.active is None:
            return self._end(ExecutorState.CANCELED, reason="cancel requested")

        if self.active is None:
            self.active = ActiveMovement(
                self.path.movements[self.cursor],
                self.settings,
                flight_tolerance=self.flight_tolerance,
            )
            if self._cancel_requested:
                self.active.request_cancel()

        active = self.active
        status = active.update(self.sensor, self.controls, ctx)

        if status is MovementStatus.SUCCESS:
            self.cursor += 1
            self.active = None
            if self.cursor >= len(self.path):
                return self._end(ExecutorState.PATH_COMPLETE, finished=active)
            return ExecutorStep(ExecutorState.IN_PROGRESS, finished=active)

        if status is MovementStatus.CANCELED:
            self.active = None
            return self._end(ExecutorState.CANCELED, movement=active.movement, status=status,
                             reason=active.reason, finished=active)

        if status.is_failure:
            self.active = None
            log.info(
                "movement %s %s -> %s ended %s: %s",
                active.movement.kind.name, tuple(active.movement.src), tuple(active.movement.dest),
                status.value, active.reason,
            )
            return self._end(ExecutorState.MOVEMENT_FAILED, movement=active.movement, status=status,
                             reason=active.reason, finished=active)

        if self._stale is None:
            self._stale = self._find_stale(ctx)
        if self._stale is not None and active.safe_to_cancel():
            self.controls.release_all()
            self.active = None
            stale = self._stale
            return self._end(ExecutorState.STALE, movement=stale,
                             reason=f"queued {stale.kind.name} to {tuple(stale.dest)} invalidated")

        return ExecutorStep(ExecutorState.IN_PROGRESS)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _find_stale(self, ctx: MoveContext) -> Optional[Movement]:
        lookahead = self.settings.stale_lookahead
        if lookahead <= 0:
            return None
        queued = self.path.movements[self.cursor + 1:self.cursor + 1 + lookahead]
        tolerance = self.settings.cost_increase_tolerance
        for planned in queued:
            current = rebuild(ctx, planned)
            if current is None or current.cost > planned.cost * tolerance:
                return planned
        return None

    def _end(self, state: ExecutorState, **kwargs) -> ExecutorStep:
        self.state = state
        return ExecutorStep(state, **kwargs)
