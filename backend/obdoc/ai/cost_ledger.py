"""
Cost Ledger - shared AI spend tracking with daily and monthly ceilings.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, date
from typing import Optional, List, Dict, Tuple

from ..core.exceptions import CostLimitExceeded
from ..models import CostSummary
from ..utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)

DAILY_ALERT_RATIO = 0.8
MONTHLY_ALERT_RATIO = 0.9


@dataclass
class UsageRecord:
    provider: str
    cost: float
    analysis_type: str
    timestamp: datetime


class CostLedger:
    """
    Shared spend ledger. Increments are serialized by a lock; ceiling checks
    read the current day and month buckets.
    """

    def __init__(self, daily_limit: float, monthly_limit: float, clock: Clock = utc_now):
        self.daily_limit = daily_limit
        self.monthly_limit = monthly_limit
        self._clock = clock
        self._daily: Dict[date, float] = defaultdict(float)
        self._monthly: Dict[Tuple[int, int], float] = defaultdict(float)
        self._usage: List[UsageRecord] = []
        self._lock = asyncio.Lock()

    def _now(self, now: Optional[datetime]) -> datetime:
        return now or self._clock()

    def daily_total(self, now: Optional[datetime] = None) -> float:
        return self._daily.get(self._now(now).date(), 0.0)

    def monthly_total(self, now: Optional[datetime] = None) -> float:
        current = self._now(now)
        return self._monthly.get((current.year, current.month), 0.0)

    def check(self, now: Optional[datetime] = None) -> None:
        """
        Fail fast when a ceiling has been reached.

        Raises:
            CostLimitExceeded: If daily or monthly spend is at or above its ceiling
        """
        daily = self.daily_total(now)
        monthly = self.monthly_total(now)
        if daily >= self.daily_limit:
            raise CostLimitExceeded(
                f"Daily AI cost limit reached (${daily:.2f}/${self.daily_limit:.2f})"
            )
        if monthly >= self.monthly_limit:
            raise CostLimitExceeded(
                f"Monthly AI cost limit reached (${monthly:.2f}/${self.monthly_limit:.2f})"
            )

    async def record(
        self,
        provider: str,
        cost: float,
        analysis_type: str = "unknown",
        now: Optional[datetime] = None
    ) -> None:
        """Add incurred cost to the current day and month."""
        current = self._now(now)
        async with self._lock:
            self._daily[current.date()] += cost
            self._monthly[(current.year, current.month)] += cost
            self._usage.append(UsageRecord(provider, cost, analysis_type, current))
            daily = self._daily[current.date()]
            monthly = self._monthly[(current.year, current.month)]

        logger.debug(f"Recorded AI usage: {provider} - ${cost:.4f} ({analysis_type})")
        self._check_alerts(daily, monthly)

    def _check_alerts(self, daily: float, monthly: float) -> None:
        if daily >= self.daily_limit:
            logger.warning(
                f"Daily AI cost limit exceeded (${daily:.2f}/${self.daily_limit:.2f})",
                extra={"extra_fields": {"daily_cost": daily, "daily_limit": self.daily_limit}}
            )
        elif daily > self.daily_limit * DAILY_ALERT_RATIO:
            logger.warning(
                f"Daily AI cost at {daily / self.daily_limit * 100:.1f}% of limit "
                f"(${daily:.2f}/${self.daily_limit:.2f})"
            )
        if monthly >= self.monthly_limit:
            logger.warning(
                f"Monthly AI cost limit exceeded (${monthly:.2f}/${self.monthly_limit:.2f})",
                extra={"extra_fields": {"monthly_cost": monthly, "monthly_limit": self.monthly_limit}}
            )
        elif monthly > self.monthly_limit * MONTHLY_ALERT_RATIO:
            logger.warning(
                f"Monthly AI cost at {monthly / self.monthly_limit * 100:.1f}% of limit "
                f"(${monthly:.2f}/${self.monthly_limit:.2f})"
            )

    def summary(self, now: Optional[datetime] = None) -> CostSummary:
        current = self._now(now)
        daily = self.daily_total(current)
        monthly = self.monthly_total(current)
        by_provider: Dict[str, float] = defaultdict(float)
        for usage in self._usage:
            if (usage.timestamp.year, usage.timestamp.month) == (current.year, current.month):
                by_provider[usage.provider] += usage.cost
        return CostSummary(
            daily=round(daily, 6),
            monthly=round(monthly, 6),
            daily_limit=self.daily_limit,
            monthly_limit=self.monthly_limit,
            remaining_daily=round(max(0.0, self.daily_limit - daily), 6),
            remaining_monthly=round(max(0.0, self.monthly_limit - monthly), 6),
            by_provider=dict(by_provider),
        )
