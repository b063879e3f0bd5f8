# src/nav_core/testing/__init__.py

from .fakes import (
    ControlCall,
    FailingRegionStorage,
    FakeAgent,
    FakeTerrain,
    InMemoryRegionStorage,
    observed_cache,
)

__all__ = [
    "ControlCall",
    "FailingRegionStorage",
    "FakeAgent",
    "FakeTerrain",
    "InMemoryRegionStorage",
    "observed_cache",
]
