#tests/test_monitoring_event_bus.py
"""
Tests for monitoring.bus.EventBus

Covers:
- Publish/subscribe and unsubscribe
- Delivery order
- Filtering by event type and goal handle
- A failing subscriber does not starve the others
- Publishing from several threads
"""

from __future__ import annotations

import threading
from typing import List

from monitoring.bus import EventBus
from monitoring.events import EventType, MonitoringEvent


def make_event(ts: float, event_type: EventType = EventType.LOG, msg: str = "msg") -> MonitoringEvent:
    return MonitoringEvent(
        ts=ts,
        module="nav_core.test",
        event_type=event_type,
        message=msg,
        payload={},
        correlation_id="goal-1",
    )


def test_subscribers_receive_events_in_publish_order():
    bus = EventBus()
    seen: List[str] = []
    bus.subscribe(lambda e: seen.append(e.message))

    bus.publish(make_event(1.0, EventType.GOAL_SUBMITTED, "submitted"))
    bus.publish(make_event(2.0, EventType.SEARCH_FINISHED, "searched"))
    bus.publish(make_event(3.0, EventType.GOAL_FINISHED, "finished"))

    assert seen == ["submitted", "searched", "finished"]


def test_unsubscribe_stops_delivery_and_is_idempotent():
    bus = EventBus()
    received: List[MonitoringEvent] = []

    def subscriber(evt: MonitoringEvent) -> None:
        received.append(evt)

    bus.subscribe(subscriber)
    assert bus.subscriber_count() == 1
    bus.unsubscribe(subscriber)
    bus.unsubscribe(subscriber)

    bus.publish(make_event(1.0))

    assert received == []
    assert bus.subscriber_count() == 0


def test_failing_subscriber_does_not_block_others():
    bus = EventBus()
    received: List[MonitoringEvent] = []

    def broken(evt: MonitoringEvent) -> None:
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    bus.publish(make_event(1.0, EventType.MOVEMENT_FAILED))

    assert len(received) == 1
    assert received[0].event_type is EventType.MOVEMENT_FAILED


def test_publish_from_two_threads():
    bus = EventBus()
    count = 100
    received: List[MonitoringEvent] = []
    lock = threading.Lock()

    def subscriber(evt: MonitoringEvent) -> None:
        with lock:
            received.append(evt)

    bus.subscribe(subscriber)

    def publisher(start: int) -> None:
        for i in range(start, start + count):
            bus.publish(make_event(float(i)))

    threads = [threading.Thread(target=publisher, args=(s,)) for s in (0, 1000)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(received) == 2 * count


def test_event_to_dict_stores_type_name():
    data = make_event(5.0, EventType.PATH_INSTALLED).to_dict()
    assert data["event_type"] == "PATH_INSTALLED"
    assert data["correlation_id"] == "goal-1"


def test_subscription_filters_by_type_and_goal():
    bus = EventBus()
    failures: List[MonitoringEvent] = []
    other_goal: List[MonitoringEvent] = []
    bus.subscribe(failures.append, event_types=[EventType.MOVEMENT_FAILED])
    bus.subscribe(other_goal.append, correlation_id="goal-2")

    bus.publish(make_event(1.0, EventType.GOAL_SUBMITTED))
    bus.publish(make_event(2.0, EventType.MOVEMENT_FAILED))

    assert [e.ts for e in failures] == [2.0]
    assert other_goal == []
    assert bus.published == 2
