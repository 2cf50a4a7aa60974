from __future__ import annotations

from datetime import date
from typing import Optional

from core.clock import parse_date
from core.config import AppSettings, settings as default_settings


WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def is_eligible_weekday(value: date | str | None, settings: Optional[AppSettings] = None) -> bool:
    """True iff the date's weekday is within [FIRST_WEEKDAY, LAST_WEEKDAY]. Empty or invalid input is False."""
    day = parse_date(value)
    if day is None:
        return False
    cfg = settings or default_settings
    weekday = day.weekday()
    first, last = cfg.first_weekday, cfg.last_weekday
    if first <= last:
        return first <= weekday <= last
    # Range wraps around the week, e.g. Saturday..Tuesday
    return weekday >= first or weekday <= last


def describe_allowed_weekdays(settings: Optional[AppSettings] = None) -> str:
    cfg = settings or default_settings
    return f"{WEEKDAY_NAMES[cfg.first_weekday]} to {WEEKDAY_NAMES[cfg.last_weekday]}"
