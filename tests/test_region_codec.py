# tests/test_region_codec.py
"""
Region bit planes, the versioned codec and on-disk storage.
"""

from __future__ import annotations

import struct
from pathlib import Path

import pytest

from contracts.types import Classification, VoxelPos
from nav_core.cache import (
    REGION_SIZE,
    FileRegionStorage,
    Region,
    RegionFormatError,
    decode_region,
    encode_region,
    region_key,
)
from nav_core.cache.codec import ENCODING_PACKED, ENCODING_RLE


def make_region() -> Region:
    region = Region((1, 2, -1))
    ox, oy, oz = REGION_SIZE, 2 * REGION_SIZE, -REGION_SIZE
    region.set(ox, oy, oz, Classification.SOLID)
    region.set(ox + 1, oy, oz, Classification.WATER)
    region.set(ox + 2, oy + 3, oz + 4, Classification.AVOID)
    region.set(ox + 31, oy + 31, oz + 31, Classification.AIR)
    return region


def test_region_key_floors_negative_coordinates():
    assert region_key(0, 0, 0) == (0, 0, 0)
    assert region_key(-1, 31, 32) == (-1, 0, 1)


def test_unset_voxels_are_unknown():
    region = Region((0, 0, 0))
    assert region.get(5, 5, 5) is Classification.UNKNOWN
    assert region.known_count == 0


def test_set_reports_changes_and_tracks_dirty():
    region = Region((0, 0, 0))
    assert region.set(1, 2, 3, Classification.SOLID)
    assert region.dirty
    region.dirty = False
    assert not region.set(1, 2, 3, Classification.SOLID)
    assert not region.dirty
    assert region.set(1, 2, 3, Classification.AIR)
    assert region.get(1, 2, 3) is Classification.AIR
    assert region.known_count == 1


def test_clear_forgets_voxel():
    region = Region((0, 0, 0))
    region.set(0, 0, 0, Classification.WATER)
    assert region.set(0, 0, 0, Classification.UNKNOWN)
    assert region.get(0, 0, 0) is Classification.UNKNOWN
    assert not region.clear(0, 0, 0)


@pytest.mark.parametrize("encoding", [ENCODING_PACKED, ENCODING_RLE])
def test_codec_preserves_every_voxel(encoding):
    region = make_region()
    blob = encode_region("overworld", region, encoding=encoding)
    restored = decode_region(blob, dimension="overworld", key=(1, 2, -1))

    assert restored.key == (1, 2, -1)
    assert restored.known_count == region.known_count
    assert list(restored.iter_codes()) == list(region.iter_codes())


def test_sparse_region_prefers_run_length_encoding():
    blob = encode_region("overworld", make_region())
    packed = encode_region("overworld", make_region(), encoding=ENCODING_PACKED)
    assert len(blob) < len(packed)


def test_decode_rejects_bad_magic_and_truncation():
    blob = encode_region("overworld", make_region())
    with pytest.raises(RegionFormatError):
        decode_region(b"XXXX" + blob[4:])
    with pytest.raises(RegionFormatError):
        decode_region(blob[:3])
    with pytest.raises(RegionFormatError):
        decode_region(blob[:-1])


def test_decode_rejects_unknown_version():
    blob = bytearray(encode_region("overworld", make_region()))
    struct.pack_into(">H", blob, 4, 99)
    with pytest.raises(RegionFormatError, match="version"):
        decode_region(bytes(blob))


def test_decode_checks_expected_dimension_and_key():
    blob = encode_region("overworld", make_region())
    with pytest.raises(RegionFormatError):
        decode_region(blob, dimension="nether")
    with pytest.raises(RegionFormatError):
        decode_region(blob, key=(0, 0, 0))


def test_file_storage_round_trips_through_gzip(tmp_path: Path):
    storage = FileRegionStorage(tmp_path)
    assert storage.load("overworld", (0, 0, 0)) is None

    blob = encode_region("minecraft:overworld", make_region())
    storage.save("minecraft:overworld", (1, 2, -1), blob)

    assert storage.load("minecraft:overworld", (1, 2, -1)) == blob
    files = list(tmp_path.rglob("*.nvr"))
    assert len(files) == 1
    assert ":" not in files[0].parent.name


def test_voxelpos_packing_is_reversible_for_negative_coordinates():
    pos = VoxelPos(-123456, -60, 98765)
    assert VoxelPos.unpack(pos.packed) == pos
