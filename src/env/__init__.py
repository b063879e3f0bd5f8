# src/env/__init__.py

from .loader import load_nav_config
from .schema import (
    CacheSettings,
    ExecutionSettings,
    FlightSettings,
    NavConfig,
    RetrySettings,
    SearchSettings,
)

__all__ = [
    "CacheSettings",
    "ExecutionSettings",
    "FlightSettings",
    "NavConfig",
    "RetrySettings",
    "SearchSettings",
    "load_nav_config",
]
