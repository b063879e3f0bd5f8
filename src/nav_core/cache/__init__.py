# src/nav_core/cache/__init__.py
"""
Voxel classification cache.

Provides:
- WorldCache / CacheView: pageable per-dimension cache and its read-only view
- TerrainObserver: the observation path from the host world
- Region + codec: dense 2-bit storage and its versioned serialization
- FileRegionStorage: gzip files on disk
- Generation rules for unobserved voxels
"""

from __future__ import annotations

from .codec import FORMAT_VERSION, RegionFormatError, decode_region, encode_region
from .generation import BedrockBounds, GenerationRules, rules_for_dimension
from .observer import TerrainObserver
from .region import REGION_SIZE, Region, region_key
from .storage import FileRegionStorage
from .world_cache import CacheStats, CacheView, WorldCache

__all__ = [
    "FORMAT_VERSION",
    "RegionFormatError",
    "decode_region",
    "encode_region",
    "BedrockBounds",
    "GenerationRules",
    "rules_for_dimension",
    "TerrainObserver",
    "REGION_SIZE",
    "Region",
    "region_key",
    "FileRegionStorage",
    "CacheStats",
    "CacheView",
    "WorldCache",
]
