# src/monitoring/__init__.py

from .bus import EventBus, default_bus
from .events import EventType, MonitoringEvent
from .logger import JsonFileLogger, log_event
from .logging_config import configure_logging

__all__ = [
    "EventBus",
    "EventType",
    "JsonFileLogger",
    "MonitoringEvent",
    "configure_logging",
    "default_bus",
    "log_event",
]
