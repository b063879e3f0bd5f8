# dense 2-bit classification storage for one cache region
# src/nav_core/cache/region.py
"""
Region storage for the voxel classification cache.

A Region is a REGION_SIZE^3 cube aligned to multiples of REGION_SIZE. It owns
two flat bit planes:

- class plane: 2 bits per voxel (AIR/WATER/AVOID/SOLID codes)
- known plane: 1 bit per voxel (0 means UNKNOWN, class bits ignored)

Writes store the class bits before setting the known bit, and invalidation
only clears the known bit, so a concurrent reader sees either the previous
or the new value of a voxel, never a mix.
"""

from __future__ import annotations

from typing import Iterator, Tuple

from contracts.types import Classification


REGION_SHIFT = 5
REGION_SIZE = 1 << REGION_SHIFT
REGION_MASK = REGION_SIZE - 1
REGION_VOLUME = REGION_SIZE ** 3

RegionKey = Tuple[int, int, int]

_UNKNOWN = Classification.UNKNOWN
_BY_CODE = (
    Classification.AIR,
    Classification.WATER,
    Classification.AVOID,
    Classification.SOLID,
)


def region_key(x: int, y: int, z: int) -> RegionKey:
    return (x >> REGION_SHIFT, y >> REGION_SHIFT, z >> REGION_SHIFT)


def region_origin(key: RegionKey) -> Tuple[int, int, int]:
    return (key[0] << REGION_SHIFT, key[1] << REGION_SHIFT, key[2] << REGION_SHIFT)


def _index(x: int, y: int, z: int) -> int:
    return ((y & REGION_MASK) << (2 * REGION_SHIFT)) | ((z & REGION_MASK) << REGION_SHIFT) | (x & REGION_MASK)


class Region:
    """Dense classification array for one aligned cube of voxels."""

    __slots__ = ("key", "_classes", "_known", "dirty", "_known_count")

    def __init__(self, key: RegionKey) -> None:
        self.key = key
        self._classes = bytearray(REGION_VOLUME // 4)
        self._known = bytearray(REGION_VOLUME // 8)
        self.dirty = False
        self._known_count = 0

    # ------------------------------------------------------------------
    # Point access (world coordinates; only the low bits are used)
    # ------------------------------------------------------------------

    def get(self, x: int, y: int, z: int) -> Classification:
        i = _index(x, y, z)
        if not (self._known[i >> 3] >> (i & 7)) & 1:
            return _UNKNOWN
        return _BY_CODE[(self._classes[i >> 2] >> ((i & 3) << 1)) & 3]

    def set(self, x: int, y: int, z: int, classification: Classification) -> bool:
        """Store a classification. Returns True when the stored value changed."""
        if classification is _UNKNOWN:
            return self.clear(x, y, z)
        i = _index(x, y, z)
        code = int(classification)
        shift = (i & 3) << 1
        byte = self._classes[i >> 2]
        was_known = (self._known[i >> 3] >> (i & 7)) & 1
        if was_known and (byte >> shift) & 3 == code:
            return False
        self._classes[i >> 2] = (byte & ~(3 << shift)) | (code << shift)
        if not was_known:
            self._known[i >> 3] |= 1 << (i & 7)
            self._known_count += 1
        self.dirty = True
        return True

    def clear(self, x: int, y: int, z: int) -> bool:
        i = _index(x, y, z)
        bit = 1 << (i & 7)
        if not self._known[i >> 3] & bit:
            return False
        self._known[i >> 3] &= ~bit
        self._known_count -= 1
        self.dirty = True
        return True

    @property
    def known_count(self) -> int:
        return self._known_count

    # ------------------------------------------------------------------
    # Bulk codes (0 = unknown, 1 + class value otherwise), used by the codec
    # ------------------------------------------------------------------

    def iter_codes(self) -> Iterator[int]:
        classes, known = self._classes, self._known
        for i in range(REGION_VOLUME):
            if (known[i >> 3] >> (i & 7)) & 1:
                yield 1 + ((classes[i >> 2] >> ((i & 3) << 1)) & 3)
            else:
                yield 0

    def planes(self) -> Tuple[bytes, bytes]:
        """Copies of (known plane, class plane) with unknown class bits zeroed."""
        classes = bytearray(self._classes)
        known = bytes(self._known)
        for i in range(REGION_VOLUME):
            if not (known[i >> 3] >> (i & 7)) & 1:
                classes[i >> 2] &= ~(3 << ((i & 3) << 1))
        return known, bytes(classes)

    @classmethod
    def from_planes(cls, key: RegionKey, known: bytes, classes: bytes) -> "Region":
        if len(known) != REGION_VOLUME // 8 or len(classes) != REGION_VOLUME // 4:
            raise ValueError("plane sizes do not match region volume")
        region = cls(key)
        region._known[:] = known
        region._classes[:] = classes
        region._known_count = sum(bin(b).count("1") for b in known)
        return region

    @classmethod
    def from_codes(cls, key: RegionKey, codes: Iterator[int]) -> "Region":
        region = cls(key)
        classes, known = region._classes, region._known
        count = 0
        i = -1
        for i, code in enumerate(codes):
            if i >= REGION_VOLUME:
                raise ValueError("too many voxel codes for region")
            if code == 0:
                continue
            if not 1 <= code <= 4:
                raise ValueError(f"invalid voxel code {code}")
            classes[i >> 2] |= (code - 1) << ((i & 3) << 1)
            known[i >> 3] |= 1 << (i & 7)
            count += 1
        if i != REGION_VOLUME - 1:
            raise ValueError("too few voxel codes for region")
        region._known_count = count
        return region

    def merge_missing_from(self, other: "Region") -> int:
        """Copy voxels known in `other` but unknown here. Returns count copied."""
        copied = 0
        origin_x, origin_y, origin_z = region_origin(self.key)
        for i, code in enumerate(other.iter_codes()):
            if code == 0 or (self._known[i >> 3] >> (i & 7)) & 1:
                continue
            x = origin_x + (i & REGION_MASK)
            z = origin_z + ((i >> REGION_SHIFT) & REGION_MASK)
            y = origin_y + (i >> (2 * REGION_SHIFT))
            self.set(x, y, z, _BY_CODE[code - 1])
            copied += 1
        return copied
