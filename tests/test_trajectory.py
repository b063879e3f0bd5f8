# tests/test_trajectory.py
"""
Any-angle flight search over the octree and conversion to FLY paths.
"""

from __future__ import annotations

import pytest

from contracts.types import VoxelPos
from env.schema import FlightSettings
from nav_core.flight import ChunkOctree, OctreeIndex, Trajectory, TrajectorySearch, remove_backtracks, trajectory_to_path
from nav_core.movement import MoveKind
from nav_core.search import CancelToken

START = (0.5, 70.0, 0.5)
GOAL = (40.5, 70.0, 0.5)


def index_with(solid, chunks) -> OctreeIndex:
    index = OctreeIndex(0, 128)
    for cx, cz in chunks:
        index.put_chunk(ChunkOctree.build(cx, cz, 0, 128, solid))
    return index


def wall(x: int, y: int, z: int) -> bool:
    return 20 <= x <= 21 and y < 80 and -12 <= z <= 12


def shell(x: int, y: int, z: int) -> bool:
    inside = 36 <= x <= 45 and 66 <= y <= 75 and -4 <= z <= 5
    interior = 37 <= x <= 44 and 67 <= y <= 74 and -3 <= z <= 4
    return inside and not interior


WALL_CHUNKS = [(1, -1), (1, 0)]
SHELL_CHUNKS = [(2, -1), (2, 0)]


def test_clear_line_of_sight_is_a_single_segment():
    trajectory = TrajectorySearch(OctreeIndex(0, 128), START, GOAL).run()
    assert trajectory.finished
    assert list(trajectory) == [START, GOAL]
    assert trajectory.length == pytest.approx(40.0)
    assert trajectory.nodes_explored == 0


def test_wall_forces_a_detour_of_clear_segments():
    index = index_with(wall, WALL_CHUNKS)
    search = TrajectorySearch(index, START, GOAL)
    trajectory = search.run()

    assert trajectory.finished
    assert len(trajectory) > 2
    assert trajectory[0] == START
    assert trajectory[-1] == GOAL
    assert trajectory.length > 40.0

    checker = TrajectorySearch(index, START, GOAL)
    for a, b in zip(trajectory.waypoints, trajectory.waypoints[1:]):
        assert checker.segment_clear(a, b)


def test_obstructed_endpoints_fail_fast():
    index = index_with(wall, WALL_CHUNKS)

    blocked_start = TrajectorySearch(index, (20.5, 70.0, 0.5), GOAL).run()
    assert not blocked_start.finished
    assert blocked_start.reason == "start obstructed"

    blocked_goal = TrajectorySearch(index, START, (21.5, 70.0, 0.5)).run()
    assert blocked_goal.reason == "goal obstructed"

    above_band = TrajectorySearch(index, (0.5, 127.5, 0.5), GOAL).run()
    assert above_band.reason == "start obstructed"


def test_node_limit_returns_partial_from_start():
    index = index_with(wall, WALL_CHUNKS)
    trajectory = TrajectorySearch(index, START, GOAL, FlightSettings(max_nodes=3)).run()

    assert not trajectory.finished
    assert trajectory.reason == "node_limit"
    assert trajectory[0] == START
    assert trajectory.nodes_explored == 3


def test_cancel_is_observed_during_search():
    index = index_with(shell, SHELL_CHUNKS)
    token = CancelToken()
    token.cancel("superseded")

    trajectory = TrajectorySearch(index, START, GOAL, FlightSettings(max_nodes=10_000), cancel=token).run()

    assert not trajectory.finished
    assert trajectory.reason == "canceled"
    assert trajectory.nodes_explored == 64


def test_remove_backtracks_cuts_loops_and_duplicates():
    waypoints = [
        (0.5, 0.5, 0.5),
        (0.7, 0.2, 0.9),
        (1.5, 0.5, 0.5),
        (2.5, 0.5, 0.5),
        (1.2, 0.3, 0.1),
        (3.5, 0.5, 0.5),
    ]
    assert remove_backtracks(waypoints) == [(0.5, 0.5, 0.5), (1.5, 0.5, 0.5), (3.5, 0.5, 0.5)]
    assert remove_backtracks([]) == []


def test_remove_backtracks_keeps_goal_sharing_a_cell():
    start, mid, lattice, goal = (0.5, 70.5, 0.5), (4.5, 70.5, 0.5), (8.5, 70.5, 0.5), (8.9, 70.2, 0.7)
    assert remove_backtracks([start, mid, lattice, goal]) == [start, mid, goal]

    near_start = (0.9, 70.5, 0.5)
    assert remove_backtracks([start, mid, near_start]) == [start, near_start]


def test_trajectory_to_path_emits_fly_moves():
    trajectory = Trajectory(((0.5, 70.0, 0.5), (8.5, 70.0, 0.5), (8.5, 76.0, 0.5)), True)
    path = trajectory_to_path(trajectory, speed=2.0)

    assert [m.kind for m in path.movements] == [MoveKind.FLY, MoveKind.FLY]
    assert [m.cost for m in path.movements] == pytest.approx([4.0, 3.0])
    assert path.movements[1].target == (8.5, 76.0, 0.5)
    assert path.movements[1].dest == VoxelPos(8, 76, 0)
    assert path.start == VoxelPos(0, 70, 0)
    assert not path.provisional
    assert path.reaches_goal


def test_unfinished_trajectory_gives_provisional_path():
    trajectory = Trajectory(((0.5, 70.0, 0.5), (4.5, 70.0, 0.5)), False, 12, "node_limit")
    path = trajectory_to_path(trajectory)
    assert path.provisional
    assert path.nodes_explored == 12

    with pytest.raises(ValueError):
        trajectory_to_path(trajectory, speed=0)
