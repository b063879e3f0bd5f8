# tests/test_moves.py
"""
Move templates: legality, costs, unknown-voxel handling and rebuild().
"""

from __future__ import annotations

import pytest

from contracts.types import Classification, VoxelPos
from env.schema import SearchSettings
from nav_core import costs
from nav_core.movement import MoveContext, MoveKind, Movement, rebuild, successors
from nav_core.testing import FakeTerrain, observed_cache

ORIGIN = VoxelPos(0, 64, 0)


def ctx_for(terrain: FakeTerrain, radius: int = 6, **search) -> MoveContext:
    cache = observed_cache(terrain, (-radius, 50, -radius), (radius, 72, radius))
    return MoveContext(view=cache.view(), settings=SearchSettings(**search))


def by_dest(moves):
    return {m.dest: m for m in moves}


def test_flat_ground_offers_cardinals_then_diagonals():
    ctx = ctx_for(FakeTerrain())
    moves = successors(ctx, ORIGIN)

    kinds = [m.kind for m in moves]
    assert kinds == [MoveKind.TRAVERSE] * 4 + [MoveKind.DIAGONAL] * 4

    dests = by_dest(moves)
    assert dests[VoxelPos(1, 64, 0)].cost == pytest.approx(costs.SPRINT_ONE_BLOCK_COST)
    assert dests[VoxelPos(1, 64, 0)].sprint
    assert dests[VoxelPos(1, 64, 1)].cost == pytest.approx(costs.diagonal_cost(sprint=True))


def test_sprint_disabled_uses_walking_cost():
    ctx = ctx_for(FakeTerrain(), allow_sprint=False, allow_diagonal=False)
    moves = successors(ctx, ORIGIN)
    assert {m.kind for m in moves} == {MoveKind.TRAVERSE}
    assert all(m.cost == pytest.approx(costs.WALK_ONE_BLOCK_COST) and not m.sprint for m in moves)


def test_step_up_is_ascend_and_needs_headroom():
    terrain = FakeTerrain()
    terrain.set(1, 64, 0, Classification.SOLID)
    moves = by_dest(successors(ctx_for(terrain), ORIGIN))
    ascend = moves[VoxelPos(1, 65, 0)]
    assert ascend.kind is MoveKind.ASCEND
    assert ascend.cost == pytest.approx(costs.ascend_cost())

    terrain.set(0, 66, 0, Classification.SOLID)
    moves = by_dest(successors(ctx_for(terrain), ORIGIN))
    assert VoxelPos(1, 65, 0) not in moves


def test_diagonal_blocked_by_corner():
    terrain = FakeTerrain()
    terrain.set(1, 65, 0, Classification.SOLID)
    moves = by_dest(successors(ctx_for(terrain), ORIGIN))
    assert VoxelPos(1, 64, 1) not in moves
    assert VoxelPos(1, 64, 0) not in moves
    assert VoxelPos(-1, 64, 1) in moves


def test_ledge_gives_descend_and_fall():
    terrain = FakeTerrain()
    terrain.fill((1, 61, -3), (6, 63, 3), Classification.AIR)
    terrain.fill((1, 62, 0), (1, 62, 0), Classification.SOLID)    # one-block drop at x=1
    terrain.fill((-1, 61, 0), (-1, 63, 0), Classification.AIR)    # three-deep hole at x=-1
    moves = by_dest(successors(ctx_for(terrain), ORIGIN))

    descend = moves[VoxelPos(1, 63, 0)]
    assert descend.kind is MoveKind.DESCEND
    assert descend.cost == pytest.approx(costs.descend_cost())

    fall = moves[VoxelPos(-1, 61, 0)]
    assert fall.kind is MoveKind.FALL
    assert fall.cost == pytest.approx(costs.fall_cost(3))


def test_fall_longer_than_limit_is_omitted():
    terrain = FakeTerrain()
    terrain.fill((1, 55, 0), (1, 63, 0), Classification.AIR)
    terrain.set(1, 54, 0, Classification.SOLID)
    moves = by_dest(successors(ctx_for(terrain), ORIGIN, max_fall_height=3))
    assert not any(m.dest.x == 1 and m.dest.z == 0 for m in moves.values())


def test_parkour_jumps_smallest_gap():
    terrain = FakeTerrain()
    terrain.fill((1, 50, -6), (2, 63, 6), Classification.AIR)
    moves = successors(ctx_for(terrain), ORIGIN)
    parkour = [m for m in moves if m.kind is MoveKind.PARKOUR]
    assert [m.dest for m in parkour] == [VoxelPos(3, 64, 0)]
    assert parkour[0].cost == pytest.approx(costs.parkour_cost(3))


def test_unknown_voxels_rejected_without_tolerance():
    terrain = FakeTerrain()
    cache = observed_cache(terrain, (-1, 60, -1), (0, 70, 1))
    ctx = MoveContext(view=cache.view(), settings=SearchSettings())
    moves = by_dest(successors(ctx, ORIGIN))

    assert VoxelPos(1, 64, 0) not in moves
    assert VoxelPos(-1, 64, 0) in moves
    assert ctx.unknown_rejections > 0

    lenient = ctx.lenient()
    assert VoxelPos(1, 64, 0) in by_dest(successors(lenient, ORIGIN))


def test_water_traverse_costs_swimming_and_no_sprint():
    terrain = FakeTerrain()
    terrain.fill((1, 64, 0), (1, 64, 0), Classification.WATER)
    moves = by_dest(successors(ctx_for(terrain), ORIGIN))
    swim = moves[VoxelPos(1, 64, 0)]
    assert swim.kind is MoveKind.TRAVERSE
    assert swim.cost == pytest.approx(costs.WALK_ONE_IN_WATER_COST)
    assert not swim.sprint


def test_penalty_multiplies_cost():
    terrain = FakeTerrain()
    cache = observed_cache(terrain, (-3, 60, -3), (3, 70, 3))

    def penalty(kind, src, dest):
        return 4.0 if dest == VoxelPos(1, 64, 0) else 1.0

    ctx = MoveContext(view=cache.view(), settings=SearchSettings(), penalty=penalty)
    moves = by_dest(successors(ctx, ORIGIN))
    assert moves[VoxelPos(1, 64, 0)].cost == pytest.approx(4 * costs.SPRINT_ONE_BLOCK_COST)
    assert moves[VoxelPos(0, 64, 1)].cost == pytest.approx(costs.SPRINT_ONE_BLOCK_COST)


def test_break_enabled_plans_through_solid_at_extra_cost():
    terrain = FakeTerrain()
    terrain.set(1, 65, 0, Classification.SOLID)
    moves = by_dest(successors(ctx_for(terrain, allow_break=True, break_cost=20.0), ORIGIN))
    move = moves[VoxelPos(1, 64, 0)]
    assert move.to_break == (VoxelPos(1, 65, 0),)
    assert move.cost == pytest.approx(costs.SPRINT_ONE_BLOCK_COST + 20.0)


def test_rebuild_detects_new_obstacle():
    terrain = FakeTerrain()
    cache = observed_cache(terrain, (-3, 60, -3), (3, 70, 3))
    ctx = MoveContext(view=cache.view(), settings=SearchSettings())
    planned = by_dest(successors(ctx, ORIGIN))[VoxelPos(1, 64, 0)]
    assert rebuild(ctx, planned) == planned

    cache.observe(1, 65, 0, Classification.SOLID)
    assert rebuild(ctx, planned) is None


def test_rebuild_keeps_fly_moves():
    fly = Movement(MoveKind.FLY, ORIGIN, VoxelPos(8, 70, 0), 5.0, target=(8.5, 70.0, 0.5))
    ctx = ctx_for(FakeTerrain())
    assert rebuild(ctx, fly) is fly


def test_moves_leaving_world_height_are_dropped():
    terrain = FakeTerrain(floor_y=318)
    cache = observed_cache(terrain, (-2, 315, -2), (2, 319, 2))
    ctx = MoveContext(view=cache.view(), settings=SearchSettings())
    # Standing at y=319 the head would be at the ceiling.
    assert successors(ctx, VoxelPos(0, 319, 0)) == []
