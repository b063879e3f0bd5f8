# tests/test_behavior_end_to_end.py
"""
PathingBehavior driven tick by tick against FakeTerrain + FakeAgent.

Searches run inline (search.background = False), so a submitted goal's
path is installed and its first movement executed on the first tick.
"""

from __future__ import annotations

import math

import pytest

from contracts.host import BlockChange
from contracts.types import Classification, GoalStatus, VoxelPos
from env.schema import CacheSettings, ExecutionSettings, NavConfig, RetrySettings, SearchSettings
from monitoring.bus import EventBus
from monitoring.events import EventType
from nav_core import GoalResult, PathingBehavior, PathingError
from nav_core import costs
from nav_core.flight import ChunkOctree, OctreeIndex
from nav_core.search import GoalBlock
from nav_core.testing import FakeAgent, FakeTerrain


def make_config(**sections) -> NavConfig:
    sections.setdefault("cache", CacheSettings(autosave_interval_ticks=0))
    sections.setdefault("search", SearchSettings(background=False))
    return NavConfig(name="test", **sections)


class Harness:
    def __init__(self, terrain: FakeTerrain = None, config: NavConfig = None, **kwargs) -> None:
        self.terrain = terrain or FakeTerrain()
        self.agent = FakeAgent(self.terrain)
        self.bus = EventBus()
        self.events = []
        self.bus.subscribe(self.events.append)
        self.behavior = PathingBehavior(
            self.terrain, self.agent, self.agent, config or make_config(), bus=self.bus, **kwargs
        )
        self.behavior.observer.observe_box(VoxelPos(-10, 55, -10), VoxelPos(16, 72, 16))

    def run(self, handle: str, limit: int = 200) -> GoalResult:
        for _ in range(limit):
            self.behavior.tick()
            result = self.behavior.goal_result(handle)
            if result.status is not GoalStatus.ACTIVE:
                return result
        raise AssertionError(f"{handle} still active after {limit} ticks")

    def ticks(self, n: int) -> None:
        for _ in range(n):
            self.behavior.tick()

    def of_type(self, event_type: EventType):
        return [e for e in self.events if e.event_type is event_type]


@pytest.fixture
def harness():
    h = Harness()
    yield h
    h.behavior.close()


def test_flat_world_diagonal_walk(harness):
    handle = harness.behavior.submit_goal(GoalBlock(10, 64, 10))
    assert math.isnan(harness.behavior.estimated_ticks_to_goal())

    harness.ticks(1)
    path = harness.behavior.current_path()
    assert len(path) == 10
    assert path.cost == pytest.approx(10 * costs.diagonal_cost(sprint=True))
    assert harness.behavior.estimated_ticks_to_goal() == pytest.approx(9 * costs.diagonal_cost(sprint=True))

    result = harness.run(handle)

    assert result.status is GoalStatus.REACHED
    assert result.ticks == 10
    assert result.replans == 0
    assert harness.agent.voxel == VoxelPos(10, 64, 10)
    assert harness.behavior.active_handle is None
    assert harness.behavior.current_path() is None
    assert math.isnan(harness.behavior.estimated_ticks_to_goal())


def test_episode_event_sequence(harness):
    handle = harness.behavior.submit_goal(GoalBlock(3, 64, 0))
    harness.run(handle)

    kinds = [e.event_type for e in harness.events]
    assert kinds == [
        EventType.GOAL_SUBMITTED,
        EventType.SEARCH_STARTED,
        EventType.SEARCH_FINISHED,
        EventType.PATH_INSTALLED,
        EventType.GOAL_FINISHED,
    ]
    assert all(e.correlation_id == handle for e in harness.events)
    finished = harness.events[-1].payload
    assert finished["status"] == "reached"
    assert finished["ticks"] == 3
    assert harness.events[2].payload["outcome"] == "success"
    assert harness.events[3].payload["length"] == 3


def test_goal_already_satisfied(harness):
    handle = harness.behavior.submit_goal(GoalBlock(0, 64, 0))
    result = harness.run(handle)
    assert result.status is GoalStatus.REACHED
    assert result.ticks == 1
    assert harness.agent.count("move_toward") == 0


def test_new_head_obstacle_triggers_failure_and_reroute(harness):
    handle = harness.behavior.submit_goal(GoalBlock(6, 64, 0))
    harness.ticks(2)
    assert harness.agent.voxel == VoxelPos(2, 64, 0)

    harness.terrain.set(3, 65, 0, Classification.SOLID)
    harness.behavior.on_block_change(BlockChange(VoxelPos(3, 65, 0), Classification.AIR, Classification.SOLID))
    result = harness.run(handle)

    assert result.status is GoalStatus.REACHED
    assert result.replans == 1
    assert harness.agent.voxel == VoxelPos(6, 64, 0)
    assert harness.behavior.retry.get_retry_count(VoxelPos(3, 64, 0)) == 1

    [failed] = harness.of_type(EventType.MOVEMENT_FAILED)
    assert failed.payload["kind"] == "TRAVERSE"
    assert failed.payload["dest"] == [3, 64, 0]
    assert failed.payload["status"] == "failed"
    assert failed.payload["retries"] == 1

    # The detour never stands under the new block.
    visited = {r.dest for r in harness.behavior.tracer.get_records() if r.status == "success"}
    assert (3, 64, 0) not in visited


def test_new_feet_obstacle_is_reported_unreachable(harness):
    handle = harness.behavior.submit_goal(GoalBlock(6, 64, 0))
    harness.ticks(2)

    harness.terrain.set(3, 64, 0, Classification.SOLID)
    harness.behavior.on_block_change(BlockChange(VoxelPos(3, 64, 0), Classification.AIR, Classification.SOLID))
    result = harness.run(handle)

    assert result.status is GoalStatus.REACHED
    statuses = [(r.dest, r.status) for r in harness.behavior.tracer.get_records()]
    assert ((3, 64, 0), "unreachable") in statuses


def test_cancel_mid_path(harness):
    handle = harness.behavior.submit_goal(GoalBlock(10, 64, 10))
    harness.ticks(2)

    harness.behavior.cancel(handle)

    result = harness.behavior.goal_result(handle)
    assert result.status is GoalStatus.CANCELED
    assert harness.agent.voxel == VoxelPos(2, 64, 2)
    assert harness.agent.count("release_all") >= 1
    harness.ticks(3)
    assert harness.agent.voxel == VoxelPos(2, 64, 2)

    # Cancelling a finished episode is a no-op.
    harness.behavior.cancel(handle)


def test_unknown_handle_is_an_error(harness):
    with pytest.raises(PathingError) as exc:
        harness.behavior.cancel("goal-99")
    assert exc.value.code == "unknown_goal_handle"
    with pytest.raises(PathingError):
        harness.behavior.goal_result("goal-99")


def test_new_goal_supersedes_old_one(harness):
    first = harness.behavior.submit_goal(GoalBlock(10, 64, 0))
    harness.ticks(1)
    second = harness.behavior.submit_goal(GoalBlock(0, 64, 5))

    old = harness.behavior.goal_result(first)
    assert old.status is GoalStatus.CANCELED
    assert old.reason == "superseded by a new goal"
    assert harness.behavior.active_handle == second

    result = harness.run(second)
    assert result.status is GoalStatus.REACHED
    assert harness.agent.voxel == VoxelPos(0, 64, 5)


def test_walled_in_agent_gives_up():
    terrain = FakeTerrain()
    for dx in (-1, 0, 1):
        for dz in (-1, 0, 1):
            if (dx, dz) != (0, 0):
                terrain.fill((dx, 64, dz), (dx, 67, dz), Classification.SOLID)
    h = Harness(terrain)
    handle = h.behavior.submit_goal(GoalBlock(5, 64, 5))

    result = h.run(handle)

    assert result.status is GoalStatus.GAVE_UP
    assert result.reason.startswith("unreachable")
    assert result.ticks == 1
    h.behavior.close()


def test_stuck_agent_hits_replan_limit():
    config = make_config(
        execution=ExecutionSettings(movement_timeout_ticks=1),
        retry=RetrySettings(max_replans_per_goal=2),
    )
    h = Harness(config=config)
    h.agent.frozen = True
    handle = h.behavior.submit_goal(GoalBlock(5, 64, 0))

    result = h.run(handle)

    assert result.status is GoalStatus.GAVE_UP
    assert result.reason == "re-plan limit reached"
    assert result.replans == 2
    assert len(h.of_type(EventType.MOVEMENT_FAILED)) == 3
    h.behavior.close()


def test_flight_to_open_point():
    h = Harness()
    handle = h.behavior.submit_flight((16.5, 64.0, 0.5))

    result = h.run(handle)

    assert result.status is GoalStatus.REACHED
    assert result.ticks == 1
    assert h.agent.voxel == VoxelPos(16, 64, 0)
    installed = h.of_type(EventType.PATH_INSTALLED)[0].payload
    assert installed["length"] == 1
    assert installed["cost"] == pytest.approx(16.0 / 1.5)
    h.behavior.close()


def test_flight_to_obstructed_point_gives_up():
    octree = OctreeIndex(0, 128)
    octree.put_chunk(ChunkOctree.uniform(1, 0, 0, 128, solid=True))
    h = Harness(octree=octree)
    handle = h.behavior.submit_flight((20.5, 64.0, 0.5))

    result = h.run(handle)

    assert result.status is GoalStatus.GAVE_UP
    assert "goal obstructed" in result.reason
    h.behavior.close()


def test_closed_behavior_rejects_goals():
    h = Harness()
    h.behavior.close()
    with pytest.raises(PathingError) as exc:
        h.behavior.submit_goal(GoalBlock(1, 64, 0))
    assert exc.value.code == "behavior_closed"


def banded_config() -> NavConfig:
    return make_config(cache=CacheSettings(autosave_interval_ticks=0, min_y=0, max_y=128))


def test_loaded_chunk_feeds_flight_octree():
    terrain = FakeTerrain()
    terrain.fill((16, 0, 0), (31, 127, 15), Classification.SOLID)
    h = Harness(terrain, config=banded_config())
    assert not h.behavior.octree.has_chunk(1, 0)

    h.behavior.on_chunk_loaded(1, 0)

    assert h.behavior.octree.has_chunk(1, 0)
    assert h.behavior.octree.is_solid(20, 64, 0)
    assert h.behavior.cache.classify(20, 100, 5) is Classification.SOLID

    handle = h.behavior.submit_flight((20.5, 64.0, 0.5))
    result = h.run(handle)
    assert result.status is GoalStatus.GAVE_UP
    assert "goal obstructed" in result.reason

    h.behavior.on_chunk_unloaded(1, 0)
    assert not h.behavior.octree.has_chunk(1, 0)
    h.behavior.close()


def test_block_change_rebuilds_fed_chunk_after_refresh():
    h = Harness(config=banded_config())
    h.behavior.on_chunk_loaded(1, 0)
    assert not h.behavior.octree.is_solid(20, 70, 0)

    h.terrain.set(20, 70, 0, Classification.SOLID)
    h.behavior.on_block_change(BlockChange(VoxelPos(20, 70, 0), Classification.AIR, Classification.SOLID))
    assert not h.behavior.octree.is_solid(20, 70, 0)

    h.ticks(1)
    assert h.behavior.octree.is_solid(20, 70, 0)
    h.behavior.close()
