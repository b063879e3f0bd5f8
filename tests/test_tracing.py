#tests/test_tracing.py
"""
Tests for nav_core.tracing.MovementTracer.

We drive real ActiveMovements against FakeAgent and check that:
- one record is kept per terminated movement
- failures log at INFO, successes at DEBUG
- the rolling buffer honours max_records
- a broken record never escapes record()
"""

from __future__ import annotations

import logging

from contracts.types import Classification, MovementStatus, VoxelPos
from env.schema import SearchSettings
from nav_core.movement import ActiveMovement, MoveContext, successors
from nav_core.testing import FakeAgent, FakeTerrain, observed_cache
from nav_core.tracing import MovementTracer

ORIGIN = VoxelPos(0, 64, 0)


def finished_movement(*, blocked: bool = False) -> ActiveMovement:
    terrain = FakeTerrain()
    cache = observed_cache(terrain, (-3, 60, -3), (3, 70, 3))
    ctx = MoveContext(view=cache.view(), settings=SearchSettings())
    planned = next(m for m in successors(ctx, ORIGIN) if m.dest == VoxelPos(1, 64, 0))
    if blocked:
        cache.observe(1, 65, 0, Classification.SOLID)
    agent = FakeAgent(terrain)
    active = ActiveMovement(planned)
    active.update(agent, agent, ctx.lenient())
    return active


def test_success_is_recorded_at_debug(caplog):
    tracer = MovementTracer()
    active = finished_movement()
    assert active.status is MovementStatus.SUCCESS

    with caplog.at_level(logging.DEBUG, logger="nav_core.movement"):
        tracer.record(active, goal_id="goal-1")

    [record] = tracer.get_records()
    assert record.kind == "TRAVERSE"
    assert record.src == (0, 64, 0)
    assert record.dest == (1, 64, 0)
    assert record.status == "success"
    assert record.ticks == 1
    assert record.goal_id == "goal-1"
    assert caplog.records[-1].levelno == logging.DEBUG


def test_failure_is_recorded_at_info(caplog):
    tracer = MovementTracer()
    active = finished_movement(blocked=True)
    assert active.status is MovementStatus.FAILED

    with caplog.at_level(logging.INFO, logger="nav_core.movement"):
        tracer.record(active)

    record = tracer.get_records()[0]
    assert record.status == "failed"
    assert record.reason == "movement no longer legal"
    assert any("status=failed" in r.getMessage() for r in caplog.records)


def test_buffer_keeps_most_recent_records():
    tracer = MovementTracer(max_records=2)
    tracer.record(finished_movement(), goal_id="a")
    tracer.record(finished_movement(), goal_id="b")
    tracer.record(finished_movement(), goal_id="c")

    assert [r.goal_id for r in tracer.get_records()] == ["b", "c"]
    tracer.clear()
    assert tracer.get_records() == []


def test_broken_movement_is_logged_not_raised(caplog):
    tracer = MovementTracer()
    with caplog.at_level(logging.ERROR, logger="nav_core.movement"):
        tracer.record(object())
    assert tracer.get_records() == []
    assert "Failed to build MovementTraceRecord" in caplog.text
