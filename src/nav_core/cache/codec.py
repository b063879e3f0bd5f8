# versioned binary layout for persisted cache regions
# src/nav_core/cache/codec.py
"""
Region serialization.

Layout (big-endian):

    magic        4s   b"NVRC"
    version      H    FORMAT_VERSION
    dim_len      B    length of the utf-8 dimension id
    dimension    dim_len bytes
    rx, ry, rz   iii  region coordinate
    encoding     B    0 = bit-packed planes, 1 = run-length codes
    payload

Bit-packed payload: known plane (1 bit/voxel) then class plane (2 bits/voxel).
Run-length payload: run count (I), then runs of (code B, length H) where code
is 0 for unknown or 1 + classification value.

Anything that does not parse, including a version this build does not know,
raises RegionFormatError. Callers treat that as a cache miss.
"""

from __future__ import annotations

import struct
from typing import Iterator, List, Optional, Tuple

from .region import REGION_VOLUME, Region, RegionKey


MAGIC = b"NVRC"
FORMAT_VERSION = 1

ENCODING_PACKED = 0
ENCODING_RLE = 1

_PREFIX = struct.Struct(">4sHB")
_COORDS = struct.Struct(">iiiB")
_RUN_COUNT = struct.Struct(">I")
_RUN = struct.Struct(">BH")
_MAX_RUN = 0xFFFF
_PACKED_SIZE = REGION_VOLUME // 8 + REGION_VOLUME // 4


class RegionFormatError(ValueError):
    """Serialized region bytes are malformed or of an unsupported version."""


def _runs(codes: Iterator[int]) -> List[Tuple[int, int]]:
    runs: List[Tuple[int, int]] = []
    current = -1
    length = 0
    for code in codes:
        if code == current and length < _MAX_RUN:
            length += 1
            continue
        if length:
            runs.append((current, length))
        current, length = code, 1
    if length:
        runs.append((current, length))
    return runs


def encode_region(dimension: str, region: Region, *, encoding: Optional[int] = None) -> bytes:
    """Serialize a region. Picks the smaller encoding unless one is forced."""
    dim_bytes = dimension.encode("utf-8")
    if len(dim_bytes) > 255:
        raise ValueError(f"dimension id too long: {dimension!r}")

    runs = _runs(region.iter_codes())
    if encoding is None:
        encoding = ENCODING_RLE if len(runs) * _RUN.size < _PACKED_SIZE else ENCODING_PACKED

    parts = [
        _PREFIX.pack(MAGIC, FORMAT_VERSION, len(dim_bytes)),
        dim_bytes,
        _COORDS.pack(region.key[0], region.key[1], region.key[2], encoding),
    ]
    if encoding == ENCODING_RLE:
        parts.append(_RUN_COUNT.pack(len(runs)))
        parts.extend(_RUN.pack(code, length) for code, length in runs)
    elif encoding == ENCODING_PACKED:
        known, classes = region.planes()
        parts.append(known)
        parts.append(classes)
    else:
        raise ValueError(f"unknown encoding {encoding}")
    return b"".join(parts)


def read_header(data: bytes) -> Tuple[str, RegionKey, int, int]:
    """Parse the header. Returns (dimension, key, encoding, payload offset)."""
    if len(data) < _PREFIX.size:
        raise RegionFormatError("truncated header")
    magic, version, dim_len = _PREFIX.unpack_from(data, 0)
    if magic != MAGIC:
        raise RegionFormatError(f"bad magic {magic!r}")
    if version != FORMAT_VERSION:
        raise RegionFormatError(f"unsupported region format version {version}")
    offset = _PREFIX.size
    if len(data) < offset + dim_len + _COORDS.size:
        raise RegionFormatError("truncated header")
    try:
        dimension = data[offset:offset + dim_len].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise RegionFormatError("dimension id is not utf-8") from exc
    offset += dim_len
    rx, ry, rz, encoding = _COORDS.unpack_from(data, offset)
    return dimension, (rx, ry, rz), encoding, offset + _COORDS.size


def _decode_runs(data: bytes, offset: int) -> Iterator[int]:
    if len(data) < offset + _RUN_COUNT.size:
        raise RegionFormatError("truncated run table")
    (count,) = _RUN_COUNT.unpack_from(data, offset)
    offset += _RUN_COUNT.size
    if len(data) != offset + count * _RUN.size:
        raise RegionFormatError("run table length mismatch")
    for _ in range(count):
        code, length = _RUN.unpack_from(data, offset)
        offset += _RUN.size
        for _ in range(length):
            yield code


def decode_region(
    data: bytes,
    *,
    dimension: Optional[str] = None,
    key: Optional[RegionKey] = None,
) -> Region:
    """
    Deserialize a region.

    When `dimension` / `key` are given they must match the header, which
    catches files stored under the wrong name.
    """
    found_dim, found_key, encoding, offset = read_header(data)
    if dimension is not None and found_dim != dimension:
        raise RegionFormatError(f"dimension mismatch: {found_dim!r} != {dimension!r}")
    if key is not None and tuple(found_key) != tuple(key):
        raise RegionFormatError(f"region mismatch: {found_key} != {tuple(key)}")

    try:
        if encoding == ENCODING_RLE:
            return Region.from_codes(found_key, _decode_runs(data, offset))
        if encoding == ENCODING_PACKED:
            payload = data[offset:]
            if len(payload) != _PACKED_SIZE:
                raise RegionFormatError("packed payload length mismatch")
            split = REGION_VOLUME // 8
            return Region.from_planes(found_key, payload[:split], payload[split:])
    except ValueError as exc:
        if isinstance(exc, RegionFormatError):
            raise
        raise RegionFormatError(str(exc)) from exc
    raise RegionFormatError(f"unknown encoding {encoding}")
