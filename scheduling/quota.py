"""
Daily Quota Counter

Counts the public requests already submitted for a date and reports the
start times they claim. Every request row counts toward the cap whatever
its status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import FrozenSet

from core.clock import format_hhmm
from core.errors import AvailabilityUnknownError, StoreError
from repositories.base import Range, RecordStore
from repositories.collections import APPOINTMENT_REQUESTS


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DailyQuota:
    day: date
    count: int
    claimed_times: FrozenSet[str] = field(default_factory=frozenset)

    def is_full(self, cap: int) -> bool:
        return self.count >= cap


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


async def count_daily_requests(store: RecordStore, day: date) -> DailyQuota:
    start, end = day_bounds(day)
    try:
        rows = await store.find_many(APPOINTMENT_REQUESTS, {"requested_at": Range(gte=start, lt=end)})
    except StoreError as exc:
        logger.error("quota.read_failed", extra={"date": day.isoformat(), "error": exc.message})
        raise AvailabilityUnknownError(
            "Could not load existing requests for this date; availability is unknown. Please try again later.",
            details={"date": day.isoformat()},
        ) from exc

    claimed = set()
    for row in rows:
        ts = row.get("requested_at")
        if isinstance(ts, datetime):
            claimed.add(format_hhmm(ts))
    return DailyQuota(day=day, count=len(rows), claimed_times=frozenset(claimed))
