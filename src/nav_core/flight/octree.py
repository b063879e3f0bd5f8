# binary occupancy index for long-range flight
# src/nav_core/flight/octree.py
"""
Chunk-keyed octree occupancy for the flight search.

Provides:
- ChunkOctree: solid/air for one 16-wide chunk column over a fixed y band,
  stored as a stack of 16^3 octrees that collapse uniform cells to a
  single bool leaf.
- OctreeIndex: map (chunk_x, chunk_z) -> ChunkOctree with a one-entry
  last-chunk cache in front of the map lookup. Out-of-band y is never
  solid. Chunks that were never fed fall back to generation rules.
- feed_chunk_from_cache: materialize one chunk from the world cache.

Chunks are replaced whole; there are no partial edits once materialized.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple, Union

from contracts.types import Classification

from ..cache.generation import GenerationRules


log = logging.getLogger(__name__)

CHUNK_SHIFT = 4
CHUNK_SIZE = 1 << CHUNK_SHIFT

ChunkKey = Tuple[int, int]
# A node is either a uniform leaf or eight children indexed by (x, y, z) octant bits.
_Node = Union[bool, Tuple["_Node", ...]]

SolidFn = Callable[[int, int, int], bool]


def chunk_key(x: int, z: int) -> ChunkKey:
    return x >> CHUNK_SHIFT, z >> CHUNK_SHIFT


def _build(dense: bytearray, x0: int, y0: int, z0: int, size: int) -> _Node:
    if size == 1:
        return bool(dense[(y0 * CHUNK_SIZE + z0) * CHUNK_SIZE + x0])
    half = size >> 1
    children = tuple(
        _build(dense, x0 + (i >> 2 & 1) * half, y0 + (i >> 1 & 1) * half, z0 + (i & 1) * half, half)
        for i in range(8)
    )
    first = children[0]
    if isinstance(first, bool) and all(c is first for c in children):
        return first
    return children


def _count(node: _Node) -> int:
    if isinstance(node, bool):
        return 1
    return 1 + sum(_count(c) for c in node)


class ChunkOctree:
    """Occupancy for chunk (cx, cz) between min_y (inclusive) and max_y (exclusive)."""

    def __init__(self, cx: int, cz: int, min_y: int, roots: List[_Node]) -> None:
        self.cx = cx
        self.cz = cz
        self.min_y = min_y
        self.max_y = min_y + len(roots) * CHUNK_SIZE
        self._roots = roots

    @property
    def key(self) -> ChunkKey:
        return self.cx, self.cz

    @classmethod
    def build(cls, cx: int, cz: int, min_y: int, max_y: int, is_solid: SolidFn) -> "ChunkOctree":
        """Sample `is_solid(world_x, y, world_z)` over the whole chunk column."""
        height = max_y - min_y
        if height <= 0 or height % CHUNK_SIZE:
            raise ValueError(f"y band must be a positive multiple of {CHUNK_SIZE}, got {min_y}..{max_y}")
        bx, bz = cx << CHUNK_SHIFT, cz << CHUNK_SHIFT
        dense = bytearray(CHUNK_SIZE * height * CHUNK_SIZE)
        i = 0
        for ly in range(height):
            y = min_y + ly
            for lz in range(CHUNK_SIZE):
                for lx in range(CHUNK_SIZE):
                    if is_solid(bx + lx, y, bz + lz):
                        dense[i] = 1
                    i += 1
        roots = [
            _build(dense, 0, cube * CHUNK_SIZE, 0, CHUNK_SIZE)
            for cube in range(height // CHUNK_SIZE)
        ]
        return cls(cx, cz, min_y, roots)

    @classmethod
    def uniform(cls, cx: int, cz: int, min_y: int, max_y: int, solid: bool) -> "ChunkOctree":
        return cls(cx, cz, min_y, [solid] * ((max_y - min_y) // CHUNK_SIZE))

    def is_solid_local(self, lx: int, y: int, lz: int) -> bool:
        """lx/lz in 0..15, y in world coordinates."""
        ly = y - self.min_y
        if ly < 0 or y >= self.max_y:
            return False
        node = self._roots[ly >> CHUNK_SHIFT]
        ly &= CHUNK_SIZE - 1
        half = CHUNK_SIZE >> 1
        while not isinstance(node, bool):
            octant = ((lx >= half) << 2) | ((ly >= half) << 1) | (lz >= half)
            node = node[octant]
            if lx >= half:
                lx -= half
            if ly >= half:
                ly -= half
            if lz >= half:
                lz -= half
            half >>= 1
        return node

    def node_count(self) -> int:
        return sum(_count(r) for r in self._roots)


class OctreeIndex:
    """
    All materialized chunks for one dimension.

    One writer (the tick thread feeding chunks), any number of readers.
    """

    def __init__(
        self,
        min_y: int = 0,
        max_y: int = 128,
        *,
        fallback: Optional[GenerationRules] = None,
    ) -> None:
        if (max_y - min_y) <= 0 or (max_y - min_y) % CHUNK_SIZE:
            raise ValueError(f"y band must be a positive multiple of {CHUNK_SIZE}, got {min_y}..{max_y}")
        self.min_y = min_y
        self.max_y = max_y
        self.fallback = fallback
        self._chunks: Dict[ChunkKey, ChunkOctree] = {}
        self._write_lock = threading.Lock()
        self._last: Optional[Tuple[ChunkKey, Optional[ChunkOctree]]] = None
        # Map lookups that missed the last-chunk cache.
        self.index_lookups = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_solid(self, x: int, y: int, z: int) -> bool:
        if y < self.min_y or y >= self.max_y:
            return False
        key = (x >> CHUNK_SHIFT, z >> CHUNK_SHIFT)
        last = self._last
        if last is not None and last[0] == key:
            chunk = last[1]
        else:
            self.index_lookups += 1
            chunk = self._chunks.get(key)
            self._last = (key, chunk)
            # a put_chunk that raced this read must not leave its old chunk cached
            if self._chunks.get(key) is not chunk:
                self._last = None
        if chunk is None:
            if self.fallback is None:
                return False
            return self.fallback.classify(x, y, z) is Classification.SOLID
        return chunk.is_solid_local(x & (CHUNK_SIZE - 1), y, z & (CHUNK_SIZE - 1))

    def has_chunk(self, cx: int, cz: int) -> bool:
        return (cx, cz) in self._chunks

    def chunk_count(self) -> int:
        return len(self._chunks)

    # ------------------------------------------------------------------
    # Feeding
    # ------------------------------------------------------------------

    def put_chunk(self, chunk: ChunkOctree) -> None:
        if chunk.min_y != self.min_y or chunk.max_y != self.max_y:
            raise ValueError(
                f"chunk band {chunk.min_y}..{chunk.max_y} does not match index {self.min_y}..{self.max_y}"
            )
        with self._write_lock:
            self._chunks[chunk.key] = chunk
            last = self._last
            if last is not None and last[0] == chunk.key:
                self._last = None

    def remove_chunk(self, cx: int, cz: int) -> bool:
        with self._write_lock:
            removed = self._chunks.pop((cx, cz), None) is not None
            last = self._last
            if last is not None and last[0] == (cx, cz):
                self._last = None
        return removed


def feed_chunk_from_cache(index: OctreeIndex, cache, cx: int, cz: int) -> ChunkOctree:
    """
    Materialize chunk (cx, cz) from `cache.classify` and install it.

    SOLID and AVOID voxels are solid for flight. UNKNOWN voxels count as air,
    so callers should only feed chunks the agent has actually observed.
    """

    def solid(x: int, y: int, z: int) -> bool:
        return cache.classify(x, y, z).is_blocking

    chunk = ChunkOctree.build(cx, cz, index.min_y, index.max_y, solid)
    index.put_chunk(chunk)
    log.debug("octree chunk (%d, %d) fed: %d nodes", cx, cz, chunk.node_count())
    return chunk
