# tests/test_retry_budget.py
"""
RetryBudget ledger and FailureMemory penalties.
"""

from __future__ import annotations

import pytest

from contracts.types import VoxelPos
from env.schema import RetrySettings
from nav_core.execution import FailureMemory, RetryBudget
from nav_core.movement import MoveKind

A = VoxelPos(0, 64, 0)
B = VoxelPos(1, 64, 0)


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_budget_counts_per_position_until_limit():
    budget = RetryBudget(max_retries=3)
    assert budget.can_retry(B)
    assert budget.get_retry_count(B) == 0

    for expected in (1, 2, 3):
        assert budget.record_retry(B) == expected

    assert not budget.can_retry(B)
    assert budget.can_retry(A)
    assert len(budget) == 1


def test_budget_accepts_plain_tuples():
    budget = RetryBudget(max_retries=1)
    budget.record_retry((1, 64, 0))
    assert not budget.can_retry(B)


def test_reset_clears_every_position():
    budget = RetryBudget.from_settings(RetrySettings(max_retries=2))
    budget.record_retry(A)
    budget.record_retry(B)
    budget.reset()
    assert len(budget) == 0
    assert budget.can_retry(A) and budget.can_retry(B)


def test_budget_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        RetryBudget(max_retries=0)


def test_failure_penalty_grows_and_expires():
    clock = FakeClock()
    memory = FailureMemory(ttl_s=30.0, base=2.0, clock=clock)
    assert memory.penalty(MoveKind.TRAVERSE, A, B) == 1.0

    assert memory.record_failure(MoveKind.TRAVERSE, A, B) == 1
    assert memory.penalty(MoveKind.TRAVERSE, A, B) == 2.0
    assert memory.record_failure(MoveKind.TRAVERSE, A, B) == 2
    assert memory.penalty(MoveKind.TRAVERSE, A, B) == 4.0

    # Other edges are untouched.
    assert memory.penalty(MoveKind.DIAGONAL, A, B) == 1.0
    assert memory.penalty(MoveKind.TRAVERSE, B, A) == 1.0

    clock.now += 31.0
    assert memory.penalty(MoveKind.TRAVERSE, A, B) == 1.0
    assert memory.record_failure(MoveKind.TRAVERSE, A, B) == 1


def test_prune_and_clear():
    clock = FakeClock()
    memory = FailureMemory.from_settings(RetrySettings(failure_penalty_ttl_s=10.0), clock=clock)
    memory.record_failure(MoveKind.ASCEND, A, B)
    clock.now += 5.0
    memory.record_failure(MoveKind.TRAVERSE, A, B)
    clock.now += 6.0

    assert memory.prune() == 1
    assert len(memory) == 1
    memory.clear()
    assert len(memory) == 0


def test_penalty_base_below_one_rejected():
    with pytest.raises(ValueError):
        FailureMemory(base=0.5)
