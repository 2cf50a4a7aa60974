from __future__ import annotations

from datetime import date, datetime, time
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from core.config import AppSettings, settings as default_settings


Clock = Callable[[], datetime]


def clinic_zone(settings: Optional[AppSettings] = None) -> ZoneInfo:
    # Validated when the settings are loaded
    return ZoneInfo((settings or default_settings).clinic_timezone)


def clinic_now(settings: Optional[AppSettings] = None) -> datetime:
    # Naive wall-clock time in the clinic zone, comparable with stored timestamps
    return datetime.now(clinic_zone(settings)).replace(tzinfo=None)


def parse_hhmm(value: str) -> time:
    hh, mm = value.strip().split(":")
    return time(int(hh), int(mm))


def format_hhmm(value: datetime | time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def parse_date(value: date | str | None) -> Optional[date]:
    """Return a date for a `date`/ISO string, or None for empty or malformed input."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None
