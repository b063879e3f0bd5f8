# movement templates and successor generation
# src/nav_core/movement/moves.py
"""
Movement graph.

Provides:
- MoveKind: the closed set of move templates, valued by tie-break priority
  (walk before diagonal before falls before jumps).
- Movement: one immutable edge (kind, src, dest, cost, voxels to break).
- MoveContext: everything a template needs to judge legality (cache view,
  search settings, unknown-voxel tolerance, failure penalties).
- successors(ctx, src): all legal moves out of a standing voxel.
- rebuild(ctx, movement): re-derive a planned movement against the current
  cache; None when it is no longer legal.

Read-only with respect to the cache. Illegal moves are omitted, never
given an infinite cost.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol, Tuple

from contracts.types import Classification, VoxelPos
from env.schema import SearchSettings

from .. import costs


_AIR = Classification.AIR
_WATER = Classification.WATER
_SOLID = Classification.SOLID
_UNKNOWN = Classification.UNKNOWN

CARDINALS: Tuple[Tuple[int, int], ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))
DIAGONALS: Tuple[Tuple[int, int], ...] = ((1, 1), (1, -1), (-1, 1), (-1, -1))


class MoveKind(Enum):
    """Move templates. The value is the deterministic tie-break priority."""

    TRAVERSE = 0
    DIAGONAL = 1
    DESCEND = 2
    FALL = 3
    SWIM_DOWN = 4
    ASCEND = 5
    SWIM_UP = 6
    PARKOUR = 7
    FLY = 8

    @property
    def priority(self) -> int:
        return self.value

    @property
    def airborne(self) -> bool:
        """Moves that leave the ground and cannot be abandoned mid-way."""
        return self in (MoveKind.ASCEND, MoveKind.DESCEND, MoveKind.FALL, MoveKind.PARKOUR)


@dataclass(frozen=True)
class Movement:
    """One primitive transition between two voxels."""

    kind: MoveKind
    src: VoxelPos
    dest: VoxelPos
    cost: float
    to_break: Tuple[VoxelPos, ...] = ()
    sprint: bool = False
    # Exact waypoint for FLY moves; dest is the voxel containing it.
    target: Optional[Tuple[float, float, float]] = None


class ClassificationView(Protocol):
    def classify(self, x: int, y: int, z: int) -> Classification:
        ...


PenaltyFn = Callable[[MoveKind, VoxelPos, VoxelPos], float]


@dataclass
class MoveContext:
    """Per-search state shared by all move templates."""

    view: ClassificationView
    settings: SearchSettings = field(default_factory=SearchSettings)
    unknown_tolerance: Optional[int] = None
    penalty: Optional[PenaltyFn] = None
    # Moves rejected only because they crossed too many UNKNOWN voxels.
    unknown_rejections: int = 0

    def __post_init__(self) -> None:
        self.classify = self.view.classify
        if self.unknown_tolerance is None:
            self.unknown_tolerance = self.settings.unknown_tolerance

    def lenient(self) -> "MoveContext":
        """Copy that never rejects for UNKNOWN voxels (execution-time rechecks)."""
        return MoveContext(
            view=self.view,
            settings=self.settings,
            unknown_tolerance=1 << 30,
            penalty=self.penalty,
        )


class _Footprint:
    """Accumulates what one candidate move touches."""

    __slots__ = ("ctx", "unknown", "breaks", "water", "over_unknown")

    def __init__(self, ctx: MoveContext) -> None:
        self.ctx = ctx
        self.unknown = 0
        self.breaks: List[VoxelPos] = []
        self.water = False
        self.over_unknown = False

    def _unknown(self) -> bool:
        self.unknown += 1
        if self.unknown > self.ctx.unknown_tolerance:
            self.over_unknown = True
            return False
        return True

    def clear(self, x: int, y: int, z: int, *, breakable: bool = False) -> bool:
        """Body or head may pass through (x, y, z)."""
        c = self.ctx.classify(x, y, z)
        if c is _AIR:
            return True
        if c is _WATER:
            self.water = True
            return True
        if c is _UNKNOWN:
            return self._unknown()
        if c is _SOLID and breakable and self.ctx.settings.allow_break:
            self.breaks.append(VoxelPos(x, y, z))
            return True
        return False

    def floor(self, x: int, y: int, z: int) -> bool:
        """(x, y, z) can be stood on."""
        c = self.ctx.classify(x, y, z)
        if c is _SOLID:
            return True
        if c is _UNKNOWN:
            return self._unknown()
        return False

    def reject(self) -> None:
        if self.over_unknown:
            self.ctx.unknown_rejections += 1

    def finish(
        self,
        kind: MoveKind,
        src: VoxelPos,
        dest: VoxelPos,
        base_cost: float,
        *,
        sprint: bool = False,
    ) -> Movement:
        cost = base_cost + len(self.breaks) * self.ctx.settings.break_cost
        if self.ctx.penalty is not None:
            cost *= self.ctx.penalty(kind, src, dest)
        return Movement(kind, src, dest, cost, tuple(self.breaks), sprint=sprint)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def _traverse(ctx: MoveContext, src: VoxelPos, dest: VoxelPos) -> Optional[Movement]:
    fp = _Footprint(ctx)
    x, y, z = dest
    swimming = ctx.classify(x, y, z) is _WATER
    if not (
        fp.clear(x, y, z, breakable=True)
        and fp.clear(x, y + 1, z, breakable=True)
        and (swimming or fp.floor(x, y - 1, z))
    ):
        fp.reject()
        return None
    in_water = fp.water or ctx.classify(src.x, src.y, src.z) is _WATER
    sprint = ctx.settings.allow_sprint and not in_water
    base = costs.walk_cost(sprint=sprint, in_water=in_water)
    return fp.finish(MoveKind.TRAVERSE, src, dest, base, sprint=sprint)


def _diagonal(ctx: MoveContext, src: VoxelPos, dest: VoxelPos) -> Optional[Movement]:
    fp = _Footprint(ctx)
    x, y, z = dest
    swimming = ctx.classify(x, y, z) is _WATER
    if not (
        fp.clear(x, y, z)
        and fp.clear(x, y + 1, z)
        and (swimming or fp.floor(x, y - 1, z))
        and fp.clear(dest.x, y, src.z)
        and fp.clear(dest.x, y + 1, src.z)
        and fp.clear(src.x, y, dest.z)
        and fp.clear(src.x, y + 1, dest.z)
    ):
        fp.reject()
        return None
    in_water = fp.water or ctx.classify(src.x, src.y, src.z) is _WATER
    sprint = ctx.settings.allow_sprint and not in_water
    base = costs.diagonal_cost(sprint=sprint, in_water=in_water)
    return fp.finish(MoveKind.DIAGONAL, src, dest, base, sprint=sprint)


def _ascend(ctx: MoveContext, src: VoxelPos, dest: VoxelPos) -> Optional[Movement]:
    fp = _Footprint(ctx)
    x, y, z = dest
    if not (
        fp.clear(src.x, src.y + 2, src.z, breakable=True)
        and fp.clear(x, y, z, breakable=True)
        and fp.clear(x, y + 1, z, breakable=True)
        and fp.floor(x, y - 1, z)
    ):
        fp.reject()
        return None
    return fp.finish(MoveKind.ASCEND, src, dest, costs.ascend_cost())


def _drop(ctx: MoveContext, src: VoxelPos, dx: int, dz: int) -> Optional[Movement]:
    """Walk off the edge in direction (dx, dz) and land on the first floor below."""
    s = ctx.settings
    fp = _Footprint(ctx)
    nx, nz = src.x + dx, src.z + dz
    if ctx.classify(nx, src.y, nz) is _WATER:
        return None
    if not (fp.clear(nx, src.y, nz) and fp.clear(nx, src.y + 1, nz)):
        fp.reject()
        return None
    limit = max(s.max_fall_height, s.max_fall_height_water if s.allow_swim else 0)
    for k in range(1, limit + 1):
        fy = src.y - k
        c = ctx.classify(nx, fy, nz)
        if c is _WATER:
            if not s.allow_swim:
                return None
            dest = VoxelPos(nx, fy, nz)
            kind = MoveKind.DESCEND if k == 1 else MoveKind.FALL
            base = costs.descend_cost() if k == 1 else costs.fall_cost(k)
            return fp.finish(kind, src, dest, base)
        if c is _UNKNOWN:
            if not fp._unknown():
                fp.reject()
                return None
        elif c is not _AIR:
            # Solid floor one block down is a traverse, not a drop.
            return None
        below = ctx.classify(nx, fy - 1, nz)
        if below is _SOLID:
            if k > s.max_fall_height:
                return None
            dest = VoxelPos(nx, fy, nz)
            if k == 1:
                return fp.finish(MoveKind.DESCEND, src, dest, costs.descend_cost())
            return fp.finish(MoveKind.FALL, src, dest, costs.fall_cost(k))
        if below is Classification.AVOID:
            return None
    return None


def _parkour(ctx: MoveContext, src: VoxelPos, dx: int, dz: int, distance: int) -> Optional[Movement]:
    """Running jump over a gap, landing `distance` blocks away at the same height."""
    s = ctx.settings
    if distance >= 4 and not s.allow_sprint:
        return None
    if ctx.classify(src.x, src.y, src.z) is _WATER:
        return None
    fp = _Footprint(ctx)
    y = src.y
    if not fp.clear(src.x, y + 2, src.z):
        fp.reject()
        return None
    gap = ctx.classify(src.x + dx, y - 1, src.z + dz)
    if gap is _SOLID or gap is _WATER:
        return None
    for k in range(1, distance + 1):
        cx, cz = src.x + k * dx, src.z + k * dz
        if not (fp.clear(cx, y, cz) and fp.clear(cx, y + 1, cz) and fp.clear(cx, y + 2, cz)):
            fp.reject()
            return None
        if k < distance and ctx.classify(cx, y - 1, cz) is _SOLID:
            # Would land on this floor first.
            return None
    dest = VoxelPos(src.x + distance * dx, y, src.z + distance * dz)
    if not fp.floor(dest.x, y - 1, dest.z):
        fp.reject()
        return None
    return fp.finish(MoveKind.PARKOUR, src, dest, costs.parkour_cost(distance), sprint=distance >= 4)


def _swim_vertical(ctx: MoveContext, src: VoxelPos, dest: VoxelPos) -> Optional[Movement]:
    if ctx.classify(src.x, src.y, src.z) is not _WATER:
        return None
    if ctx.classify(dest.x, dest.y, dest.z) is not _WATER:
        return None
    fp = _Footprint(ctx)
    if not fp.clear(dest.x, dest.y + 1, dest.z):
        fp.reject()
        return None
    kind = MoveKind.SWIM_UP if dest.y > src.y else MoveKind.SWIM_DOWN
    return fp.finish(kind, src, dest, costs.SWIM_VERTICAL_COST)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def in_bounds(ctx: MoveContext, pos: VoxelPos) -> bool:
    min_y = getattr(ctx.view, "min_y", None)
    max_y = getattr(ctx.view, "max_y", None)
    if min_y is not None and pos.y < min_y:
        return False
    if max_y is not None and pos.y + 1 >= max_y:
        return False
    return True


def successors(ctx: MoveContext, src: VoxelPos) -> List[Movement]:
    """Legal moves out of `src`, in template priority order."""
    s = ctx.settings
    out: List[Movement] = []
    add = out.append

    for dx, dz in CARDINALS:
        m = _traverse(ctx, src, VoxelPos(src.x + dx, src.y, src.z + dz))
        if m is not None:
            add(m)

    if s.allow_diagonal:
        for dx, dz in DIAGONALS:
            m = _diagonal(ctx, src, VoxelPos(src.x + dx, src.y, src.z + dz))
            if m is not None:
                add(m)

    for dx, dz in CARDINALS:
        m = _drop(ctx, src, dx, dz)
        if m is not None:
            add(m)

    if s.allow_swim:
        m = _swim_vertical(ctx, src, VoxelPos(src.x, src.y - 1, src.z))
        if m is not None:
            add(m)

    for dx, dz in CARDINALS:
        m = _ascend(ctx, src, VoxelPos(src.x + dx, src.y + 1, src.z + dz))
        if m is not None:
            add(m)

    if s.allow_swim:
        m = _swim_vertical(ctx, src, VoxelPos(src.x, src.y + 1, src.z))
        if m is not None:
            add(m)

    if s.allow_parkour:
        for dx, dz in CARDINALS:
            for distance in range(2, s.max_parkour_distance + 1):
                m = _parkour(ctx, src, dx, dz, distance)
                if m is not None:
                    add(m)
                    break

    out.sort(key=lambda m: m.kind.priority)
    return [m for m in out if in_bounds(ctx, m.dest)]


def rebuild(ctx: MoveContext, movement: Movement) -> Optional[Movement]:
    """Re-derive `movement` from the current cache, or None if now illegal."""
    kind, src, dest = movement.kind, movement.src, movement.dest
    if kind is MoveKind.FLY:
        return movement
    if kind is MoveKind.TRAVERSE:
        return _traverse(ctx, src, dest)
    if kind is MoveKind.DIAGONAL:
        return _diagonal(ctx, src, dest)
    if kind is MoveKind.ASCEND:
        return _ascend(ctx, src, dest)
    if kind in (MoveKind.DESCEND, MoveKind.FALL):
        dx, dz = dest.x - src.x, dest.z - src.z
        m = _drop(ctx, src, dx, dz)
        if m is None or m.dest != dest:
            return None
        return m
    if kind is MoveKind.PARKOUR:
        dx = (dest.x > src.x) - (dest.x < src.x)
        dz = (dest.z > src.z) - (dest.z < src.z)
        distance = abs(dest.x - src.x) + abs(dest.z - src.z)
        return _parkour(ctx, src, dx, dz, distance)
    if kind in (MoveKind.SWIM_UP, MoveKind.SWIM_DOWN):
        return _swim_vertical(ctx, src, dest)
    raise ValueError(f"unhandled move kind {kind}")
