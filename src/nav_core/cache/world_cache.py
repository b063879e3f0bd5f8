# per-dimension voxel classification cache with background paging
# src/nav_core/cache/world_cache.py
"""
World cache: the set of known Regions for one dimension.

Provides:
- classify(x, y, z): never blocks, never raises; UNKNOWN for anything not
  resident, with generation rules as a fallback for unobserved voxels.
- observe / invalidate / mark_avoid: the single-writer observation path.
- pump(agent_pos): once per tick, installs finished loads, prefetches
  nearby regions, evicts the farthest regions and autosaves.
- view(): read-only facade for search workers on other threads.

Does NOT:
- Sample the host world itself (TerrainObserver does that).
- Perform disk I/O on the calling thread. Loads and saves run on a
  single background worker; their results are installed by pump().

Lifecycle is tied to one world session: create on join, close() on leave.
"""

from __future__ import annotations

import logging
import queue
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from threading import Lock
from typing import Dict, List, Optional, Set, Tuple

from contracts.host import RegionStorage
from contracts.types import Classification, VoxelPos, pack_pos
from env.schema import CacheSettings

from .codec import RegionFormatError, decode_region, encode_region
from .generation import GenerationRules
from .region import REGION_SHIFT, REGION_SIZE, Region, RegionKey


log = logging.getLogger(__name__)

_UNKNOWN = Classification.UNKNOWN


@dataclass
class CacheStats:
    loads: int = 0
    load_misses: int = 0
    load_errors: int = 0
    saves: int = 0
    save_errors: int = 0
    evictions: int = 0


class CacheView:
    """Read-only view of a WorldCache, safe to use from search threads."""

    __slots__ = ("_cache",)

    def __init__(self, cache: "WorldCache") -> None:
        self._cache = cache

    def classify(self, x: int, y: int, z: int) -> Classification:
        return self._cache.classify(x, y, z)

    @property
    def min_y(self) -> int:
        return self._cache.settings.min_y

    @property
    def max_y(self) -> int:
        return self._cache.settings.max_y


class WorldCache:
    """Pageable classification cache for one dimension."""

    def __init__(
        self,
        settings: Optional[CacheSettings] = None,
        *,
        storage: Optional[RegionStorage] = None,
        generator: Optional[GenerationRules] = None,
        io_executor: Optional[Executor] = None,
    ) -> None:
        self.settings = settings or CacheSettings()
        self.dimension = self.settings.dimension
        self._storage = storage
        self._generator = generator

        self._regions: Dict[RegionKey, Region] = {}
        self._stale: Dict[VoxelPos, None] = {}
        self._forced_avoid: Set[int] = set()

        self._pending_loads: Set[RegionKey] = set()
        self._evict_after_load: Set[RegionKey] = set()
        self._missing: Set[RegionKey] = set()
        self._completed: "queue.SimpleQueue[Tuple[RegionKey, Optional[Region]]]" = queue.SimpleQueue()
        self._futures: Set[Future] = set()
        self._io = io_executor
        self._owns_io = io_executor is None

        self._ticks_since_save = 0
        self._closed = False
        self.stats = CacheStats()
        self._stats_lock = Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def classify(self, x: int, y: int, z: int) -> Classification:
        """Classification of a voxel; pure lookup with no side effects."""
        if y < self.settings.min_y or y >= self.settings.max_y:
            return Classification.AVOID
        if self._forced_avoid and pack_pos(x, y, z) in self._forced_avoid:
            return Classification.AVOID
        region = self._regions.get((x >> REGION_SHIFT, y >> REGION_SHIFT, z >> REGION_SHIFT))
        if region is not None:
            c = region.get(x, y, z)
            if c is not _UNKNOWN:
                return c
        if self._generator is not None:
            return self._generator.classify(x, y, z)
        return _UNKNOWN

    def classify_pos(self, pos: VoxelPos) -> Classification:
        return self.classify(pos.x, pos.y, pos.z)

    def view(self) -> CacheView:
        return CacheView(self)

    @property
    def region_count(self) -> int:
        return len(self._regions)

    def is_resident(self, key: RegionKey) -> bool:
        return key in self._regions

    def resident_keys(self) -> List[RegionKey]:
        return list(self._regions)

    @property
    def pending_loads(self) -> int:
        return len(self._pending_loads)

    # ------------------------------------------------------------------
    # Writes (observation path only)
    # ------------------------------------------------------------------

    def observe(self, x: int, y: int, z: int, classification: Classification) -> bool:
        """Record ground truth for a voxel. Returns True if the cache changed."""
        if classification is _UNKNOWN:
            return False
        if y < self.settings.min_y or y >= self.settings.max_y:
            return False
        key = (x >> REGION_SHIFT, y >> REGION_SHIFT, z >> REGION_SHIFT)
        region = self._regions.get(key)
        if region is None:
            # page in the stored copy; it merges under these observations
            self.request_load(key)
            region = Region(key)
            self._regions[key] = region
        self._stale.pop(VoxelPos(x, y, z), None)
        return region.set(x, y, z, classification)

    def invalidate(self, x: int, y: int, z: int) -> None:
        """Forget a voxel and queue it for re-observation."""
        region = self._regions.get((x >> REGION_SHIFT, y >> REGION_SHIFT, z >> REGION_SHIFT))
        if region is not None:
            region.clear(x, y, z)
        self._stale[VoxelPos(x, y, z)] = None

    def drain_stale(self, limit: Optional[int] = None) -> List[VoxelPos]:
        """Pop positions waiting for re-observation, oldest first."""
        out: List[VoxelPos] = []
        for pos in list(self._stale):
            if limit is not None and len(out) >= limit:
                break
            del self._stale[pos]
            out.append(pos)
        return out

    @property
    def stale_count(self) -> int:
        return len(self._stale)

    def mark_avoid(self, x: int, y: int, z: int) -> None:
        """Treat a voxel as AVOID until clear_avoid_marks(), whatever is observed."""
        self._forced_avoid.add(pack_pos(x, y, z))

    def clear_avoid_marks(self) -> None:
        self._forced_avoid.clear()

    @property
    def avoid_marks(self) -> int:
        return len(self._forced_avoid)

    # ------------------------------------------------------------------
    # Paging
    # ------------------------------------------------------------------

    def pump(self, agent_pos: Optional[VoxelPos] = None) -> None:
        """Per-tick housekeeping. Cheap when nothing is pending."""
        if self._closed:
            return
        self._install_completed()
        if agent_pos is not None and self._storage is not None:
            self._prefetch_around(agent_pos)
        self._evict_over_capacity(agent_pos)

        interval = self.settings.autosave_interval_ticks
        if interval > 0:
            self._ticks_since_save += 1
            if self._ticks_since_save >= interval:
                self._ticks_since_save = 0
                self.save_dirty()

    def request_load(self, key: RegionKey) -> bool:
        """Queue a background load unless resident, pending or known missing."""
        if self._storage is None or self._closed:
            return False
        if key in self._regions or key in self._pending_loads or key in self._missing:
            return False
        self._pending_loads.add(key)
        self._submit(self._load_task, key)
        return True

    def evict(self, key: RegionKey) -> bool:
        """
        Drop a resident region, saving it if dirty.

        A region whose stored copy is still loading is evicted once the load
        has been merged, so the save never clobbers the stored voxels.
        """
        if key in self._pending_loads:
            if key in self._regions:
                self._evict_after_load.add(key)
            return False
        region = self._regions.pop(key, None)
        if region is None:
            return False
        if region.dirty:
            self._queue_save(region)
        with self._stats_lock:
            self.stats.evictions += 1
        log.debug("evicted region dim=%s region=%s known=%d", self.dimension, key, region.known_count)
        return True

    def save_dirty(self) -> int:
        """Queue saves for every modified region. Returns how many were queued."""
        if self._storage is None:
            return 0
        queued = 0
        for key, region in list(self._regions.items()):
            if region.dirty and key not in self._pending_loads:
                self._queue_save(region)
                queued += 1
        return queued

    def wait_for_io(self, timeout: Optional[float] = None) -> None:
        pending = list(self._futures)
        if pending:
            wait(pending, timeout=timeout)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Finish pending loads, save dirty regions and wait for the writes."""
        self.wait_for_io(timeout)
        self._install_completed()
        self.save_dirty()
        self.wait_for_io(timeout)

    def close(self) -> None:
        if self._closed:
            return
        self.flush()
        self._closed = True
        if self._io is not None and self._owns_io:
            self._io.shutdown(wait=True)
        self._regions.clear()
        self._evict_after_load.clear()
        self._stale.clear()
        self._forced_avoid.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _install_completed(self) -> None:
        while True:
            try:
                key, loaded = self._completed.get_nowait()
            except queue.Empty:
                return
            self._pending_loads.discard(key)
            if loaded is None:
                self._missing.add(key)
            else:
                existing = self._regions.get(key)
                if existing is None:
                    self._regions[key] = loaded
                else:
                    # Live observations made while the load was in flight win.
                    existing.merge_missing_from(loaded)
            if key in self._evict_after_load:
                self._evict_after_load.discard(key)
                self.evict(key)

    def _prefetch_around(self, agent_pos: VoxelPos) -> None:
        r = self.settings.prefetch_radius
        cx, cy, cz = agent_pos.x >> REGION_SHIFT, agent_pos.y >> REGION_SHIFT, agent_pos.z >> REGION_SHIFT
        for dx in range(-r, r + 1):
            for dy in range(-r, r + 1):
                for dz in range(-r, r + 1):
                    self.request_load((cx + dx, cy + dy, cz + dz))

    def _evict_over_capacity(self, agent_pos: Optional[VoxelPos]) -> None:
        excess = len(self._regions) - self.settings.region_capacity
        if excess <= 0:
            return
        keys = [k for k in self._regions if k not in self._pending_loads]
        if agent_pos is not None:
            half = REGION_SIZE // 2

            def dist_sq(key: RegionKey) -> int:
                dx = (key[0] << REGION_SHIFT) + half - agent_pos.x
                dy = (key[1] << REGION_SHIFT) + half - agent_pos.y
                dz = (key[2] << REGION_SHIFT) + half - agent_pos.z
                return dx * dx + dy * dy + dz * dz

            keys.sort(key=dist_sq, reverse=True)
        for key in keys[:excess]:
            self.evict(key)

    def _queue_save(self, region: Region) -> None:
        if self._storage is None:
            return
        try:
            blob = encode_region(self.dimension, region)
        except Exception:
            log.exception("failed to encode region dim=%s region=%s", self.dimension, region.key)
            return
        region.dirty = False
        self._missing.discard(region.key)
        self._submit(self._save_task, region.key, blob)

    def _submit(self, fn, *args) -> None:
        if self._io is None:
            self._io = ThreadPoolExecutor(max_workers=1, thread_name_prefix="region-io")
        future = self._io.submit(fn, *args)
        self._futures.add(future)
        future.add_done_callback(self._futures.discard)

    def _load_task(self, key: RegionKey) -> None:
        region: Optional[Region] = None
        try:
            data = self._storage.load(self.dimension, key)
        except Exception:
            log.warning("region load failed dim=%s region=%s", self.dimension, key, exc_info=True)
            with self._stats_lock:
                self.stats.load_errors += 1
            self._completed.put((key, None))
            return
        if data is None:
            with self._stats_lock:
                self.stats.load_misses += 1
        else:
            try:
                region = decode_region(data, dimension=self.dimension, key=key)
            except RegionFormatError as exc:
                log.warning("discarding unreadable region dim=%s region=%s: %s", self.dimension, key, exc)
                with self._stats_lock:
                    self.stats.load_errors += 1
            else:
                with self._stats_lock:
                    self.stats.loads += 1
        self._completed.put((key, region))

    def _save_task(self, key: RegionKey, blob: bytes) -> None:
        try:
            self._storage.save(self.dimension, key, blob)
        except Exception:
            log.warning("region save failed dim=%s region=%s", self.dimension, key, exc_info=True)
            with self._stats_lock:
                self.stats.save_errors += 1
            return
        with self._stats_lock:
            self.stats.saves += 1
