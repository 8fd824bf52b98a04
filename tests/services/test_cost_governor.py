"""
Tests for the per-repository daily extraction budget
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from archlog.errors import BudgetExceededError
from archlog.models.records import ExtractionCost
from archlog.services.cost_governor import (
    DAILY_EXTRACTION_LIMIT,
    CostGovernor,
    next_utc_midnight,
)

from factories import NOW


class MutableClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def test_next_utc_midnight():
    assert next_utc_midnight(NOW) == datetime(2024, 6, 2, tzinfo=timezone.utc)
    late = datetime(2024, 6, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert next_utc_midnight(late) == datetime(2024, 6, 3, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_fresh_repo_has_full_budget(store, repo, clock):
    governor = CostGovernor(store, clock=clock)
    status = await governor.check(repo.id)
    assert status.allowed
    assert status.remaining == DAILY_EXTRACTION_LIMIT
    assert status.used == 0
    assert status.reset_at == datetime(2024, 6, 2, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_exhausted_until_reset(store, repo):
    clock = MutableClock(NOW)
    governor = CostGovernor(store, daily_limit=3, clock=clock)
    await governor.check(repo.id)
    await governor.increment(repo.id, 3)

    status = await governor.check(repo.id)
    assert not status.allowed
    assert status.remaining == 0

    with pytest.raises(BudgetExceededError) as exc_info:
        await governor.enforce(repo.id)
    assert exc_info.value.reset_at == datetime(2024, 6, 2, tzinfo=timezone.utc)

    clock.now = datetime(2024, 6, 1, 23, 59, 59, tzinfo=timezone.utc)
    assert not (await governor.check(repo.id)).allowed

    clock.now = datetime(2024, 6, 2, 0, 0, 1, tzinfo=timezone.utc)
    status = await governor.check(repo.id)
    assert status.allowed
    assert status.remaining == 3
    assert status.reset_at == datetime(2024, 6, 3, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_concurrent_checks_reset_once(store, repo):
    clock = MutableClock(NOW)
    governor = CostGovernor(store, daily_limit=5, clock=clock)
    await governor.check(repo.id)
    await governor.increment(repo.id, 5)

    clock.now = NOW + timedelta(days=1)
    await asyncio.gather(*(governor.check(repo.id) for _ in range(10)))
    await governor.increment(repo.id, 1)
    # A second reset after the increment would have wiped it
    await asyncio.gather(*(governor.check(repo.id) for _ in range(10)))

    status = await governor.check(repo.id)
    assert status.used == 1


@pytest.mark.asyncio
async def test_increment_is_atomic(store, repo, clock):
    governor = CostGovernor(store, clock=clock)
    await asyncio.gather(*(governor.increment(repo.id, 1) for _ in range(15)))
    assert (await store.get_repo(repo.id)).extractions_today == 15


@pytest.mark.asyncio
async def test_cost_stats(store, repo, clock):
    governor = CostGovernor(store, clock=clock)
    for cost in (0.0125, 0.003):
        await store.add_extraction_cost(
            ExtractionCost(
                repo_id=repo.id,
                provider="primary",
                model="gpt-4o",
                input_tokens=1000,
                output_tokens=200,
                total_cost=cost,
                batch_size=5,
            )
        )
    await governor.check(repo.id)
    await governor.increment(repo.id, 2)

    stats = await governor.cost_stats(repo.id)
    assert stats.total_cost == pytest.approx(0.0155)
    assert stats.total_calls == 2
    assert stats.total_items == 10
    assert stats.used_today == 2
    assert stats.remaining_today == DAILY_EXTRACTION_LIMIT - 2
