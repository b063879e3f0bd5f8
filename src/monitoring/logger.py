# JSON logger subscribing to EventBus
"""
Structured event logging for navigation monitoring.

Provides:
- JsonFileLogger: subscribes to an EventBus and writes MonitoringEvents as JSONL.
- log_event: convenience helper for publishing MonitoringEvents via the EventBus.

Usage:

    bus = EventBus()
    sink = JsonFileLogger(Path("logs/nav/events.log"), bus)

    log_event(
        bus=bus,
        module="nav_core.behavior",
        event_type=EventType.GOAL_SUBMITTED,
        message="goal submitted",
        payload={"goal": "GoalBlock(10, 64, 10)"},
        correlation_id="goal-1",
    )
"""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .bus import EventBus
from .events import EventType, MonitoringEvent


log = logging.getLogger(__name__)


# ============================================================
# JSONL File Logger
# ============================================================

class JsonFileLogger:
    """
    JSON-lines logger for MonitoringEvent instances.

    - Subscribes to an EventBus and writes one JSON object per line.
    - UTF-8, parent directory created on demand.
    - Writes are serialized; events can arrive from the search thread.
    """

    def __init__(self, path: Path, bus: EventBus) -> None:
        self._path = Path(path)
        self._bus = bus
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self._path.open("a", encoding="utf-8")
        self._lock = threading.Lock()
        self.dropped = 0
        bus.subscribe(self._on_event)

    @property
    def path(self) -> Path:
        return self._path

    def _on_event(self, event: MonitoringEvent) -> None:
        line = json.dumps(event.to_dict(), ensure_ascii=False, default=str)
        with self._lock:
            if self._file.closed:
                self.dropped += 1
                return
            try:
                self._file.write(line + "\n")
                self._file.flush()
            except OSError:
                # Disk trouble drops the event; the engine keeps running.
                self.dropped += 1
                log.warning("could not write monitoring event to %s", self._path, exc_info=True)

    def close(self) -> None:
        """Unsubscribe and close the file. Idempotent."""
        self._bus.unsubscribe(self._on_event)
        with self._lock:
            if not self._file.closed:
                self._file.close()


# ============================================================
# Convenience helper for emitting events
# ============================================================

def log_event(
    bus: EventBus,
    module: str,
    event_type: EventType,
    message: str,
    payload: Optional[Dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
) -> MonitoringEvent:
    """
    Create and publish a MonitoringEvent; returns it for callers that
    also want to keep it.
    """
    event = MonitoringEvent(
        ts=time.time(),
        module=module,
        event_type=event_type,
        message=message,
        payload=payload or {},
        correlation_id=correlation_id,
    )
    bus.publish(event)
    return event
