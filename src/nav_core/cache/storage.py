# gzip file storage for serialized regions
# src/nav_core/cache/storage.py
"""
File-backed RegionStorage.

One gzip file per region under <root>/<dimension>/r.<rx>.<ry>.<rz>.nvr.
Writes go to a temporary file that replaces the target, so a crash mid-save
never leaves a truncated region behind.

Errors are raised to the caller; WorldCache logs them and treats them as a
miss or a dropped save.
"""

from __future__ import annotations

import gzip
import os
import re
from pathlib import Path
from typing import Optional, Tuple


_SAFE_DIM = re.compile(r"[^A-Za-z0-9_.-]")


class FileRegionStorage:
    """RegionStorage over a directory tree."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, dimension: str, region: Tuple[int, int, int]) -> Path:
        dim_dir = _SAFE_DIM.sub("_", dimension) or "_"
        rx, ry, rz = region
        return self._root / dim_dir / f"r.{rx}.{ry}.{rz}.nvr"

    def load(self, dimension: str, region: Tuple[int, int, int]) -> Optional[bytes]:
        path = self._path(dimension, region)
        if not path.exists():
            return None
        with gzip.open(path, "rb") as f:
            return f.read()

    def save(self, dimension: str, region: Tuple[int, int, int], data: bytes) -> None:
        path = self._path(dimension, region)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        with gzip.open(tmp, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
