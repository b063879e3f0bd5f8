# observation path: host terrain -> world cache
# src/nav_core/cache/observer.py
"""
Terrain observer.

The only writer of live classifications into a WorldCache. Samples the host
TerrainSource around the agent each tick, re-samples voxels invalidated by
block-change notifications, and supports bulk observation when the host
reports a chunk as loaded.

Rules:
- Never called from search threads.
- UNKNOWN answers from the host (chunk not loaded) are not recorded.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from contracts.host import BlockChange, TerrainSource
from contracts.types import Classification, VoxelPos

from .world_cache import WorldCache


log = logging.getLogger(__name__)


class TerrainObserver:
    """Feeds a WorldCache from a TerrainSource."""

    def __init__(
        self,
        cache: WorldCache,
        terrain: TerrainSource,
        *,
        max_refresh_per_tick: int = 512,
    ) -> None:
        self._cache = cache
        self._terrain = terrain
        self._max_refresh = max_refresh_per_tick
        self.samples = 0

    @property
    def cache(self) -> WorldCache:
        return self._cache

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def _sample(self, x: int, y: int, z: int) -> Classification:
        self.samples += 1
        raw = self._terrain.classification_of(x, y, z)
        if isinstance(raw, Classification):
            return raw
        try:
            return Classification(int(raw))
        except (TypeError, ValueError):
            log.debug("ignoring unrecognized classification %r at (%d,%d,%d)", raw, x, y, z)
            return Classification.UNKNOWN

    def observe(self, x: int, y: int, z: int) -> Classification:
        c = self._sample(x, y, z)
        self._cache.observe(x, y, z, c)
        return c

    def observe_box(self, lo: VoxelPos, hi: VoxelPos) -> int:
        """Observe every voxel in the inclusive box lo..hi. Returns changes."""
        changed = 0
        for y in range(lo.y, hi.y + 1):
            for z in range(lo.z, hi.z + 1):
                for x in range(lo.x, hi.x + 1):
                    if self._cache.observe(x, y, z, self._sample(x, y, z)):
                        changed += 1
        return changed

    def observe_around(self, center: VoxelPos, radius: int) -> int:
        if radius < 0:
            return 0
        return self.observe_box(
            center.offset(-radius, -radius, -radius),
            center.offset(radius, radius, radius),
        )

    def observe_chunk(self, chunk_x: int, chunk_z: int, *, min_y: Optional[int] = None, max_y: Optional[int] = None) -> int:
        """Observe a whole 16x16 chunk column when the host reports it loaded."""
        settings = self._cache.settings
        lo_y = settings.min_y if min_y is None else min_y
        hi_y = settings.max_y - 1 if max_y is None else max_y
        return self.observe_box(
            VoxelPos(chunk_x << 4, lo_y, chunk_z << 4),
            VoxelPos((chunk_x << 4) + 15, hi_y, (chunk_z << 4) + 15),
        )

    def refresh(self, positions: Iterable[VoxelPos]) -> int:
        changed = 0
        for pos in positions:
            if self._cache.observe(pos.x, pos.y, pos.z, self._sample(pos.x, pos.y, pos.z)):
                changed += 1
        return changed

    def refresh_stale(self) -> int:
        """Re-observe invalidated voxels, bounded per call."""
        stale = self._cache.drain_stale(self._max_refresh)
        if not stale:
            return 0
        changed = self.refresh(stale)
        log.debug("refreshed %d stale voxels (%d changed)", len(stale), changed)
        return changed

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def on_block_change(self, change: BlockChange) -> None:
        pos = change.position
        log.debug(
            "block change at (%d,%d,%d): %s -> %s",
            pos.x, pos.y, pos.z, change.before.name, change.after.name,
        )
        self._cache.invalidate(pos.x, pos.y, pos.z)
