# tick-cost model for movement edges
# src/nav_core/costs.py
"""
Cost model for the movement graph, in game ticks.

Provides:
- Closed-form per-block constants for walking, sprinting and swimming.
- FallIntegrator: integrates per-tick fall velocity and converts between
  fall distance and elapsed ticks (with fractional-tick interpolation).
- FALL_N_BLOCKS_COST: immutable table of ticks to fall n blocks, n in [0, 4096].
- Admissible lower bounds used by goal heuristics.

Everything here is pure. Tables are built once at import time.
"""

from __future__ import annotations

import math
from bisect import bisect_left
from dataclasses import dataclass
from threading import Lock
from typing import List, Tuple


# ---------------------------------------------------------------------------
# Per-block constants (ticks per block at the given movement speed)
# ---------------------------------------------------------------------------

WALK_ONE_BLOCK_COST = 20 / 4.317
WALK_ONE_IN_WATER_COST = 20 / 2.2
SPRINT_ONE_BLOCK_COST = 20 / 5.612
SWIM_VERTICAL_COST = WALK_ONE_IN_WATER_COST

# Walking off a ledge only covers part of a block before the fall begins;
# the rest is spent re-centering on landing.
WALK_OFF_BLOCK_COST = WALK_ONE_BLOCK_COST * 0.8
CENTER_AFTER_FALL_COST = WALK_ONE_BLOCK_COST - WALK_OFF_BLOCK_COST

SQRT_2 = math.sqrt(2.0)

MAX_FALL_TABLE_BLOCKS = 4096


# ---------------------------------------------------------------------------
# Fall kinematics
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FallPhysics:
    """
    Per-tick fall parameters.

    Velocity recurrence: v(t+1) = min((v(t) + gravity) * drag, terminal).
    With drag == 1.0 this is the plain clamped recurrence; the default drag
    matches the game's air resistance.
    """

    gravity: float = 0.08
    drag: float = 0.98
    terminal_velocity: float = 3.92

    def next_velocity(self, v: float) -> float:
        return min((v + self.gravity) * self.drag, self.terminal_velocity)


class FallIntegrator:
    """
    Numeric fall integrator.

    v[t] is the distance fallen during tick t (v[0] == 0, the agent starts
    at rest); cum[t] is the distance fallen after t whole ticks.
    """

    def __init__(self, physics: FallPhysics | None = None) -> None:
        self.physics = physics or FallPhysics()
        if self.physics.gravity <= 0 or self.physics.terminal_velocity <= 0:
            raise ValueError("gravity and terminal velocity must be positive")
        self._v: List[float] = [0.0]
        self._cum: List[float] = [0.0]
        self._lock = Lock()
        self._extend_to_distance(float(MAX_FALL_TABLE_BLOCKS))

    def _extend_to_distance(self, distance: float) -> None:
        if self._cum[-1] >= distance:
            return
        with self._lock:
            v_list, cum = self._v, self._cum
            while cum[-1] < distance:
                v = self.physics.next_velocity(v_list[-1])
                v_list.append(v)
                cum.append(cum[-1] + v)

    def _extend_to_tick(self, tick: int) -> None:
        if len(self._v) > tick:
            return
        with self._lock:
            v_list, cum = self._v, self._cum
            while len(v_list) <= tick:
                v = self.physics.next_velocity(v_list[-1])
                v_list.append(v)
                cum.append(cum[-1] + v)

    def velocity(self, tick: int) -> float:
        """Distance covered during tick `tick`."""
        self._extend_to_tick(tick)
        return self._v[tick]

    def distance_to_ticks(self, distance: float) -> float:
        """Ticks for a fall from rest to first cover `distance` blocks."""
        if distance <= 0:
            return 0.0
        self._extend_to_distance(distance)
        tick = bisect_left(self._cum, distance)
        remaining = distance - self._cum[tick - 1]
        return (tick - 1) + remaining / self._v[tick]

    def ticks_to_distance(self, ticks: float) -> float:
        """Inverse of distance_to_ticks: blocks fallen after `ticks` ticks."""
        if ticks <= 0:
            return 0.0
        whole = math.floor(ticks)
        frac = ticks - whole
        self._extend_to_tick(whole + 1)
        return self._cum[whole] + frac * self._v[whole + 1]


DEFAULT_FALL = FallIntegrator()


def distance_to_ticks(distance: float) -> float:
    return DEFAULT_FALL.distance_to_ticks(distance)


def ticks_to_distance(ticks: float) -> float:
    return DEFAULT_FALL.ticks_to_distance(ticks)


def _generate_fall_table(integrator: FallIntegrator) -> Tuple[float, ...]:
    return tuple(
        integrator.distance_to_ticks(float(n))
        for n in range(MAX_FALL_TABLE_BLOCKS + 1)
    )


FALL_N_BLOCKS_COST: Tuple[float, ...] = _generate_fall_table(DEFAULT_FALL)

# Airtime of a one-block jump: rise and fall back through the extra quarter.
JUMP_ONE_BLOCK_COST = distance_to_ticks(1.25) - distance_to_ticks(0.25)

# Cheapest way up one block (jumping or swimming).
_UP_ONE_BLOCK_BOUND = min(JUMP_ONE_BLOCK_COST, SWIM_VERTICAL_COST)


# ---------------------------------------------------------------------------
# Edge costs
# ---------------------------------------------------------------------------

def fall_n_blocks_cost(n: int) -> float:
    if 0 <= n <= MAX_FALL_TABLE_BLOCKS:
        return FALL_N_BLOCKS_COST[n]
    return distance_to_ticks(float(n))


def walk_cost(*, sprint: bool = False, in_water: bool = False) -> float:
    if in_water:
        return WALK_ONE_IN_WATER_COST
    return SPRINT_ONE_BLOCK_COST if sprint else WALK_ONE_BLOCK_COST


def diagonal_cost(*, sprint: bool = False, in_water: bool = False) -> float:
    return SQRT_2 * walk_cost(sprint=sprint, in_water=in_water)


def ascend_cost() -> float:
    return WALK_ONE_BLOCK_COST + JUMP_ONE_BLOCK_COST


def descend_cost() -> float:
    return WALK_OFF_BLOCK_COST + max(FALL_N_BLOCKS_COST[1], CENTER_AFTER_FALL_COST)


def fall_cost(n: int) -> float:
    """Walk off a ledge and drop n >= 2 blocks."""
    return WALK_OFF_BLOCK_COST + fall_n_blocks_cost(n) + CENTER_AFTER_FALL_COST


def parkour_cost(distance: int) -> float:
    """Running jump across a gap landing `distance` blocks away."""
    if distance >= 4:
        return SPRINT_ONE_BLOCK_COST * distance
    return WALK_ONE_BLOCK_COST * distance


# ---------------------------------------------------------------------------
# Admissible lower bounds
# ---------------------------------------------------------------------------

def horizontal_lower_bound(distance: float) -> float:
    """No horizontal move covers ground faster than sprinting."""
    return distance * SPRINT_ONE_BLOCK_COST


def vertical_lower_bound(dy: float) -> float:
    """
    Lower bound on ticks to change height by dy (positive = up).

    Going down is bounded by one uninterrupted fall: fall time is concave in
    distance, so split falls never beat it.
    """
    if dy > 0:
        return dy * _UP_ONE_BLOCK_BOUND
    if dy < 0:
        return distance_to_ticks(-dy)
    return 0.0


def lower_bound(dx: float, dy: float, dz: float) -> float:
    return horizontal_lower_bound(math.sqrt(dx * dx + dz * dz)) + vertical_lower_bound(dy)
