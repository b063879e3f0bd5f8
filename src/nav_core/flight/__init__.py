# src/nav_core/flight/__init__.py
"""
Long-range flight variant: octree occupancy plus any-angle trajectory search.
"""

from .octree import ChunkOctree, OctreeIndex, chunk_key, feed_chunk_from_cache
from .trajectory import Trajectory, TrajectorySearch, remove_backtracks, trajectory_to_path

__all__ = [
    "ChunkOctree",
    "OctreeIndex",
    "Trajectory",
    "TrajectorySearch",
    "chunk_key",
    "feed_chunk_from_cache",
    "remove_backtracks",
    "trajectory_to_path",
]
