# src/monitoring/bus.py
"""
In-process pub/sub for pathing monitoring events.

PathingBehavior publishes from the tick thread; search outcomes may be
published from the search worker thread. Subscribers (JsonFileLogger,
TuiDashboard, tests) may narrow what they receive by event type or by
goal handle (correlation_id).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Callable, FrozenSet, Iterable, List, Optional

from .events import EventType, MonitoringEvent


log = logging.getLogger(__name__)


SubscriberFn = Callable[[MonitoringEvent], None]


@dataclass(frozen=True)
class _Subscription:
    fn: SubscriberFn
    event_types: Optional[FrozenSet[EventType]] = None
    correlation_id: Optional[str] = None

    def wants(self, event: MonitoringEvent) -> bool:
        if self.event_types is not None and event.event_type not in self.event_types:
            return False
        if self.correlation_id is not None and event.correlation_id != self.correlation_id:
            return False
        return True


# ============================================================
# Event Bus
# ============================================================

class EventBus:
    """
    Thread-safe fan-out of MonitoringEvents.

    Delivery happens outside the lock on a snapshot of subscriptions, so a
    subscriber may subscribe or unsubscribe from inside its callback.
    """

    def __init__(self) -> None:
        self._subs: List[_Subscription] = []
        self._lock = Lock()
        self.published = 0

    # --------------------------------------------------------
    # Subscription API
    # --------------------------------------------------------

    def subscribe(
        self,
        fn: SubscriberFn,
        *,
        event_types: Optional[Iterable[EventType]] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        """
        Register `fn`. With `event_types` and/or `correlation_id` it only
        sees matching events.
        """
        types = frozenset(event_types) if event_types is not None else None
        with self._lock:
            self._subs.append(_Subscription(fn, types, correlation_id))

    def unsubscribe(self, fn: SubscriberFn) -> None:
        """Remove every subscription of `fn`; unknown callbacks are ignored."""
        with self._lock:
            self._subs = [s for s in self._subs if s.fn != fn]

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    # --------------------------------------------------------
    # Publish API
    # --------------------------------------------------------

    def publish(self, event: MonitoringEvent) -> None:
        with self._lock:
            subs = list(self._subs)
            self.published += 1

        for sub in subs:
            if not sub.wants(event):
                continue
            try:
                sub.fn(event)
            except Exception:
                # a failing subscriber never blocks the rest
                log.exception("monitoring subscriber %r failed on %s", sub.fn, event.event_type.name)

    def clear(self) -> None:
        with self._lock:
            self._subs.clear()


# Process-wide bus for callers that do not manage their own.
default_bus = EventBus()
