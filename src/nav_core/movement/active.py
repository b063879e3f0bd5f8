# per-tick state machine for the movement being executed
# src/nav_core/movement/active.py
"""
ActiveMovement: runtime wrapper around one planned Movement.

States: PREPPING -> RUNNING -> {SUCCESS, CANCELED, UNREACHABLE,
COST_TOO_HIGH, FAILED}.

Per update():
- re-derive the movement against the cache (UNREACHABLE when the
  destination itself became SOLID/AVOID, FAILED when illegal for any other
  reason, COST_TOO_HIGH when much more expensive than planned)
- PREPPING: orient toward the destination, then RUNNING
- wait for required block breaks, bounded by the tick budget
- issue movement input, then compare the observed position against the
  destination and the src->dest segment

This class never re-plans; the executor and behavior decide what happens
after a terminal status.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

from contracts.host import AgentControls, AgentSensor, Vec3
from contracts.types import Classification, MovementStatus, VoxelPos
from env.schema import ExecutionSettings

from .moves import MoveContext, MoveKind, Movement, rebuild


_S = MovementStatus

# Vertical speed (blocks/tick) under which the agent counts as settled.
_SETTLED_VY = 1e-3


def _segment_distance(p: Vec3, a: Vec3, b: Vec3) -> float:
    ax, ay, az = a
    bx, by, bz = b
    px, py, pz = p
    dx, dy, dz = bx - ax, by - ay, bz - az
    length_sq = dx * dx + dy * dy + dz * dz
    t = 0.0
    if length_sq > 0:
        t = ((px - ax) * dx + (py - ay) * dy + (pz - az) * dz) / length_sq
        t = max(0.0, min(1.0, t))
    cx, cy, cz = ax + t * dx, ay + t * dy, az + t * dz
    return math.sqrt((px - cx) ** 2 + (py - cy) ** 2 + (pz - cz) ** 2)


class ActiveMovement:
    """State machine for the single movement currently being executed."""

    def __init__(
        self,
        movement: Movement,
        settings: Optional[ExecutionSettings] = None,
        *,
        flight_tolerance: float = 1.5,
    ) -> None:
        self.movement = movement
        self.settings = settings or ExecutionSettings()
        self.flight_tolerance = flight_tolerance
        self.status: MovementStatus = _S.PREPPING
        self.reason: Optional[str] = None
        self.ticks = 0
        self._cancel_requested = False
        self._last_pos: Optional[Vec3] = None
        self._last_vel: Vec3 = (0.0, 0.0, 0.0)

    @property
    def tick_budget(self) -> int:
        return math.ceil(self.movement.cost) + self.settings.movement_timeout_ticks

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def request_cancel(self) -> None:
        self._cancel_requested = True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def safe_to_cancel(self) -> bool:
        """False while the agent is committed to an airborne move."""
        if self.status is not _S.RUNNING or not self.movement.kind.airborne:
            return True
        if self._last_pos is None:
            return True
        here = VoxelPos.of(*self._last_pos)
        settled = abs(self._last_vel[1]) < _SETTLED_VY
        return settled and here in (self.movement.src, self.movement.dest)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def update(self, sensor: AgentSensor, controls: AgentControls, ctx: MoveContext) -> MovementStatus:
        if self.status.is_terminal:
            return self.status
        self.ticks += 1
        self._observe(sensor)

        if self._cancel_requested and self.safe_to_cancel():
            controls.release_all()
            return self._finish(_S.CANCELED, "cancel requested")

        changed = self._recheck(ctx)
        if changed is not None:
            controls.release_all()
            return self._finish(*changed)

        m = self.movement
        if self.status is _S.PREPPING:
            controls.look_at(*self._aim_point())
            self.status = _S.RUNNING

        pending = [p for p in m.to_break if ctx.classify(p.x, p.y, p.z) is Classification.SOLID]
        if pending:
            if self.ticks > self.tick_budget:
                controls.release_all()
                return self._finish(_S.FAILED, f"block at {tuple(pending[0])} not broken in time")
            controls.break_block(pending[0].x, pending[0].y, pending[0].z)
            return self.status

        self._drive(controls)
        self._observe(sensor)
        pos = self._last_pos

        if self._arrived(pos):
            return self._finish(_S.SUCCESS, None)
        if self._off_course(pos):
            controls.release_all()
            return self._finish(_S.FAILED, "off course")
        if self.ticks > self.tick_budget:
            controls.release_all()
            return self._finish(_S.FAILED, "movement timed out")
        return self.status

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _observe(self, sensor: AgentSensor) -> None:
        self._last_pos = tuple(sensor.agent_position())
        self._last_vel = tuple(sensor.agent_velocity())

    def _finish(self, status: MovementStatus, reason: Optional[str]) -> MovementStatus:
        self.status = status
        self.reason = reason
        return status

    def _recheck(self, ctx: MoveContext) -> Optional[Tuple[MovementStatus, str]]:
        m = self.movement
        if m.kind is MoveKind.FLY:
            return None
        dest = m.dest
        c = ctx.classify(dest.x, dest.y, dest.z)
        if c.is_blocking and dest not in m.to_break:
            return _S.UNREACHABLE, f"destination became {c.name}"
        current = rebuild(ctx, m)
        if current is None:
            return _S.FAILED, "movement no longer legal"
        if current.cost > m.cost * self.settings.cost_increase_tolerance:
            return _S.COST_TOO_HIGH, f"cost rose from {m.cost:.2f} to {current.cost:.2f}"
        return None

    def _target(self) -> Vec3:
        m = self.movement
        if m.target is not None:
            return m.target
        return m.dest.center()

    def _aim_point(self) -> Vec3:
        x, y, z = self._target()
        if self.movement.kind is MoveKind.FLY:
            return x, y, z
        return x, y + 1.0, z

    def _drive(self, controls: AgentControls) -> None:
        m = self.movement
        kind = m.kind
        if kind in (MoveKind.ASCEND, MoveKind.PARKOUR, MoveKind.SWIM_UP):
            controls.jump()
        x, y, z = self._target()
        controls.move_toward(x, y, z, sprint=m.sprint)

    def _arrived(self, pos: Vec3) -> bool:
        m = self.movement
        if m.kind is MoveKind.FLY:
            tx, ty, tz = self._target()
            px, py, pz = pos
            return math.sqrt((px - tx) ** 2 + (py - ty) ** 2 + (pz - tz) ** 2) <= self.flight_tolerance
        return VoxelPos.of(pos[0], pos[1] + 1e-3, pos[2]) == m.dest

    def _off_course(self, pos: Vec3) -> bool:
        m = self.movement
        start = m.src.center()
        tolerance = self.settings.off_course_tolerance
        if m.kind is MoveKind.FLY:
            tolerance += self.flight_tolerance
        return _segment_distance(pos, start, self._target()) > tolerance
