# retry ledger and recent-failure cost penalties
# src/nav_core/execution/retry.py
"""
Termination guards for re-planning.

RetryBudget
    Per-voxel retry ledger. Counts only grow until reset(); once a voxel
    reaches `max_retries` it is no longer retryable and the caller marks it
    AVOID for the rest of the goal episode.

FailureMemory
    Remembers (kind, src, dest) edges that failed recently and multiplies
    their search cost by `base ** attempts` until the entry expires. Only
    ever raises costs.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional, Tuple

from contracts.types import VoxelPos
from env.schema import RetrySettings

from ..movement.moves import MoveKind


log = logging.getLogger(__name__)


class RetryBudget:
    def __init__(self, max_retries: int = 3) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.max_retries = max_retries
        self._counts: Dict[VoxelPos, int] = {}

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryBudget":
        return cls(settings.max_retries)

    def can_retry(self, pos: VoxelPos) -> bool:
        return self._counts.get(VoxelPos(*pos), 0) < self.max_retries

    def record_retry(self, pos: VoxelPos) -> int:
        key = VoxelPos(*pos)
        count = self._counts.get(key, 0) + 1
        self._counts[key] = count
        log.debug("retry %d/%d at %s", count, self.max_retries, tuple(key))
        return count

    def get_retry_count(self, pos: VoxelPos) -> int:
        return self._counts.get(VoxelPos(*pos), 0)

    def reset(self) -> None:
        self._counts.clear()

    def __len__(self) -> int:
        return len(self._counts)


_EdgeKey = Tuple[MoveKind, VoxelPos, VoxelPos]


class FailureMemory:
    def __init__(
        self,
        *,
        ttl_s: float = 60.0,
        base: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if base < 1.0:
            raise ValueError("failure penalty base must be >= 1.0")
        self.ttl_s = ttl_s
        self.base = base
        self._clock = clock
        # edge -> (attempts, expires_at)
        self._entries: Dict[_EdgeKey, Tuple[int, float]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: RetrySettings,
        clock: Optional[Callable[[], float]] = None,
    ) -> "FailureMemory":
        return cls(
            ttl_s=settings.failure_penalty_ttl_s,
            base=settings.failure_penalty_base,
            clock=clock or time.monotonic,
        )

    def record_failure(self, kind: MoveKind, src: VoxelPos, dest: VoxelPos) -> int:
        key = (kind, VoxelPos(*src), VoxelPos(*dest))
        now = self._clock()
        attempts, expires = self._entries.get(key, (0, 0.0))
        if expires <= now:
            attempts = 0
        attempts += 1
        self._entries[key] = (attempts, now + self.ttl_s)
        return attempts

    def penalty(self, kind: MoveKind, src: VoxelPos, dest: VoxelPos) -> float:
        """Cost multiplier for this edge; 1.0 when it has no live failures."""
        if not self._entries:
            return 1.0
        entry = self._entries.get((kind, src, dest))
        if entry is None:
            return 1.0
        attempts, expires = entry
        if expires <= self._clock():
            return 1.0
        return self.base ** attempts

    def prune(self) -> int:
        now = self._clock()
        dead = [k for k, (_, expires) in self._entries.items() if expires <= now]
        for k in dead:
            del self._entries[k]
        return len(dead)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
