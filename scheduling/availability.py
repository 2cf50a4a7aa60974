"""
Availability Calculator

Composes the weekday filter, the daily quota and the slot grid into the list
of start times a public requester may pick for a date. The composition is a
pure function over explicit inputs; `get_available_slots` only adds the read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Optional, Tuple

from core.clock import clinic_now, parse_date, parse_hhmm
from core.config import AppSettings, settings as default_settings
from repositories.base import RecordStore
from .quota import DailyQuota, count_daily_requests
from .slots import generate_slot_grid
from .weekdays import describe_allowed_weekdays, is_eligible_weekday


logger = logging.getLogger(__name__)


class UnavailableReason(str, Enum):
    INVALID_DATE = "invalid_date"
    DAY_NOT_ELIGIBLE = "day_not_eligible"
    DAILY_CAP_REACHED = "daily_cap_reached"
    DATE_IN_PAST = "date_in_past"
    NO_SLOTS_LEFT = "no_slots_left"


@dataclass(frozen=True)
class AvailabilityResult:
    day: Optional[date]
    slots: Tuple[str, ...] = ()
    reason: Optional[UnavailableReason] = None
    message: Optional[str] = None

    @property
    def available(self) -> bool:
        return bool(self.slots)


def _unavailable(day: Optional[date], reason: UnavailableReason, message: str) -> AvailabilityResult:
    return AvailabilityResult(day=day, slots=(), reason=reason, message=message)


def compute_available_slots(
    day: date,
    *,
    grid: Iterable[str],
    quota: Optional[DailyQuota],
    cap: int,
    now: datetime,
    eligible: bool,
) -> AvailabilityResult:
    """
    Bookable start times for `day`, or the reason there are none.

    Args:
        day: the requested calendar date
        grid: ordered candidate start times (HH:MM)
        quota: requests already submitted for `day`; None only when `eligible` is False
        cap: maximum number of public requests per day
        now: current clinic-local time
        eligible: result of the weekday filter for `day`

    Algorithm:
        1. Ineligible weekday -> day_not_eligible
        2. quota.count >= cap -> daily_cap_reached
        3. Day before today -> date_in_past
        4. Drop claimed start times
        5. For today, drop every slot at or before `now`
        6. Nothing left -> no_slots_left
    """
    if not eligible:
        return _unavailable(
            day,
            UnavailableReason.DAY_NOT_ELIGIBLE,
            "Public appointment requests are only available on eligible weekdays.",
        )
    if quota is None:
        raise ValueError("quota is required for an eligible day")

    if quota.is_full(cap):
        return _unavailable(
            day,
            UnavailableReason.DAILY_CAP_REACHED,
            f"No more requests can be accepted for {day.isoformat()}: "
            f"the daily limit of {cap} requests has been reached.",
        )

    today = now.date()
    if day < today:
        return _unavailable(day, UnavailableReason.DATE_IN_PAST, "The selected date is in the past.")

    remaining = []
    for label in grid:
        if label in quota.claimed_times:
            continue
        if day == today and datetime.combine(day, parse_hhmm(label)) <= now:
            continue
        remaining.append(label)

    if not remaining:
        return _unavailable(
            day, UnavailableReason.NO_SLOTS_LEFT, f"There are no times left for {day.isoformat()}."
        )
    return AvailabilityResult(day=day, slots=tuple(remaining))


async def get_available_slots(
    store: RecordStore,
    value: date | str | None,
    *,
    settings: Optional[AppSettings] = None,
    now: Optional[datetime] = None,
) -> AvailabilityResult:
    """Read the daily quota for the date and compute its bookable slots. Performs no writes."""
    cfg = settings or default_settings
    day = parse_date(value)
    if day is None:
        return _unavailable(None, UnavailableReason.INVALID_DATE, "Invalid date. Use YYYY-MM-DD.")

    if not is_eligible_weekday(day, cfg):
        result = compute_available_slots(
            day, grid=(), quota=None, cap=cfg.max_public_requests_per_day, now=now or clinic_now(cfg), eligible=False
        )
        return AvailabilityResult(
            day=day,
            reason=result.reason,
            message=f"Public appointment requests are only available {describe_allowed_weekdays(cfg)}.",
        )

    quota = await count_daily_requests(store, day)
    result = compute_available_slots(
        day,
        grid=generate_slot_grid(cfg),
        quota=quota,
        cap=cfg.max_public_requests_per_day,
        now=now or clinic_now(cfg),
        eligible=True,
    )
    logger.info(
        "availability.computed",
        extra={"date": day.isoformat(), "requests": quota.count, "slots": len(result.slots)},
    )
    return result
