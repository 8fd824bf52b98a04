"""
Cost Governor

Per-repository daily extraction budget. The counter lives on the repo row;
resets and increments go through the store's atomic primitives, never a
read-then-write from here.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from archlog.errors import BudgetExceededError
from archlog.services.store import Store

logger = logging.getLogger(__name__)

DAILY_EXTRACTION_LIMIT = 20  # Provider calls per repo per UTC day
EXTRACTION_BATCH_SIZE = 5  # Artifacts per provider call
FIRST_SYNC_LIMIT = 100
FIRST_SYNC_LOOKBACK_DAYS = 90


@dataclass
class BudgetStatus:
    allowed: bool
    remaining: int
    limit: int
    used: int
    reset_at: datetime


@dataclass
class CostStats:
    used_today: int
    remaining_today: int
    total_cost: float
    total_calls: int
    total_items: int


def next_utc_midnight(now: datetime) -> datetime:
    now = now.astimezone(timezone.utc)
    today = datetime(now.year, now.month, now.day, tzinfo=timezone.utc)
    return today + timedelta(days=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CostGovernor:
    """Enforces the daily extraction limit of each repository."""

    def __init__(
        self,
        store: Store,
        daily_limit: int = DAILY_EXTRACTION_LIMIT,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.daily_limit = daily_limit
        self.clock = clock

    async def check(self, repo_id: str) -> BudgetStatus:
        """
        Report the remaining budget, resetting it first when the window expired.

        The reset is a conditional update in the store, so two concurrent
        checks after midnight reset the counter exactly once.
        """
        now = self.clock()
        if await self.store.reset_budget_if_due(repo_id, now, next_utc_midnight(now)):
            logger.info(f"Extraction budget reset for repo {repo_id}")

        repo = await self.store.get_repo(repo_id)
        remaining = max(self.daily_limit - repo.extractions_today, 0)
        return BudgetStatus(
            allowed=remaining > 0,
            remaining=remaining,
            limit=self.daily_limit,
            used=repo.extractions_today,
            reset_at=repo.extractions_reset_at,
        )

    async def increment(self, repo_id: str, n: int = 1) -> int:
        """Atomically add ``n`` provider calls to today's counter."""
        used = await self.store.increment_extractions(repo_id, n)
        logger.debug(f"Repo {repo_id} extraction calls today: {used}/{self.daily_limit}")
        return used

    async def enforce(self, repo_id: str) -> BudgetStatus:
        """Like ``check`` but raises BudgetExceededError when nothing is left."""
        status = await self.check(repo_id)
        if not status.allowed:
            raise BudgetExceededError(
                f"Daily extraction limit reached for this repository "
                f"({self.daily_limit}/day). Resets at {status.reset_at.isoformat()}.",
                reset_at=status.reset_at,
            )
        return status

    async def cost_stats(self, repo_id: str, status: Optional[BudgetStatus] = None) -> CostStats:
        """Totals from the append-only cost ledger plus today's counter."""
        status = status or await self.check(repo_id)
        costs = await self.store.list_extraction_costs(repo_id)
        return CostStats(
            used_today=status.used,
            remaining_today=status.remaining,
            total_cost=round(sum(c.total_cost for c in costs), 6),
            total_calls=len(costs),
            total_items=sum(c.batch_size for c in costs),
        )
