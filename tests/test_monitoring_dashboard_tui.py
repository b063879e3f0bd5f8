#tests/test_monitoring_dashboard_tui.py
"""
Smoke tests for monitoring.dashboard_tui.TuiDashboard.

Covers:
- Event updates patch internal state
- Layout and panels render with and without an attached behavior
"""

from __future__ import annotations

import math

from monitoring.bus import EventBus
from monitoring.dashboard_tui import TuiDashboard
from monitoring.events import EventType, MonitoringEvent


def make_event(event_type: EventType, payload: dict, correlation_id: str = "goal-1") -> MonitoringEvent:
    return MonitoringEvent(
        ts=0.0,
        module="test",
        event_type=event_type,
        message="",
        payload=payload,
        correlation_id=correlation_id,
    )


class StubBehavior:
    def __init__(self, eta: float, cursor: int) -> None:
        self.eta = eta
        self.cursor = cursor

    def estimated_ticks_to_goal(self) -> float:
        return self.eta

    def path_cursor(self) -> int:
        return self.cursor


def test_dashboard_tracks_goal_lifecycle():
    bus = EventBus()
    dashboard = TuiDashboard(bus)

    bus.publish(make_event(EventType.GOAL_SUBMITTED, {"goal": "GoalBlock(10, 64, 10)"}))
    bus.publish(make_event(EventType.SEARCH_STARTED, {"purpose": "initial"}))
    bus.publish(
        make_event(
            EventType.SEARCH_FINISHED,
            {"outcome": "success", "nodes_explored": 57, "duration_s": 0.004, "reason": None},
        )
    )
    bus.publish(
        make_event(
            EventType.PATH_INSTALLED,
            {"length": 10, "cost": 35.6, "provisional": False, "end": [10, 64, 10]},
        )
    )
    bus.publish(
        make_event(
            EventType.MOVEMENT_FAILED,
            {"kind": "TRAVERSE", "src": [2, 64, 0], "dest": [3, 64, 0], "status": "failed", "reason": "blocked"},
        )
    )

    state = dashboard.state
    assert state["goal"] == "GoalBlock(10, 64, 10)"
    assert state["goal_id"] == "goal-1"
    assert state["goal_status"] == "ACTIVE"
    assert state["searches"] == 1
    assert state["search"]["nodes_explored"] == 57
    assert state["path"]["length"] == 10
    assert state["failures"] == 1
    assert state["last_failure"]["dest"] == [3, 64, 0]

    bus.publish(make_event(EventType.GOAL_FINISHED, {"status": "reached", "reason": None}))
    assert dashboard.state["goal_status"] == "REACHED"

    assert dashboard._build_layout() is not None  # type: ignore[attr-defined]


def test_new_goal_resets_path_and_failures():
    bus = EventBus()
    dashboard = TuiDashboard(bus)

    bus.publish(make_event(EventType.PATH_INSTALLED, {"length": 3, "cost": 9.0}))
    bus.publish(make_event(EventType.MOVEMENT_FAILED, {"kind": "ASCEND", "status": "unreachable"}))
    bus.publish(make_event(EventType.GOAL_SUBMITTED, {"goal": "GoalXZ(5, 5)"}, correlation_id="goal-2"))

    assert dashboard.state["goal_id"] == "goal-2"
    assert dashboard.state["path"] is None
    assert dashboard.state["failures"] == 0


def test_panels_render_with_behavior_progress():
    bus = EventBus()
    dashboard = TuiDashboard(bus, behavior=StubBehavior(eta=12.0, cursor=4))
    bus.publish(make_event(EventType.PATH_INSTALLED, {"length": 10, "cost": 30.0, "provisional": True}))

    assert dashboard._render_path_panel() is not None  # type: ignore[attr-defined]
    assert dashboard._render_search_panel() is not None  # type: ignore[attr-defined]
    assert dashboard._render_failure_panel() is not None  # type: ignore[attr-defined]

    dashboard._behavior = StubBehavior(eta=math.nan, cursor=0)  # type: ignore[attr-defined]
    assert dashboard._render_path_panel() is not None  # type: ignore[attr-defined]


def test_close_unsubscribes():
    bus = EventBus()
    dashboard = TuiDashboard(bus)
    dashboard.close()
    assert bus.subscriber_count() == 0
