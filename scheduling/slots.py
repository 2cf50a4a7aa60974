"""
Slot Grid Generator

The fixed, ordered set of candidate start times offered for public booking.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Tuple

from core.clock import format_hhmm, parse_hhmm
from core.config import AppSettings, settings as default_settings


def generate_slot_grid(settings: Optional[AppSettings] = None) -> Tuple[str, ...]:
    """
    Candidate start times from FIRST_SLOT to LAST_SLOT inclusive, every
    SLOT_INTERVAL_MINUTES, as HH:MM labels.

    Example with the defaults: ("09:00", "09:30", ..., "16:00").
    """
    cfg = settings or default_settings
    step = timedelta(minutes=cfg.slot_interval_minutes)
    anchor = datetime(2000, 1, 1)
    current = datetime.combine(anchor.date(), parse_hhmm(cfg.first_slot))
    last = datetime.combine(anchor.date(), parse_hhmm(cfg.last_slot))

    grid = []
    # Stay on the same day even if the interval does not divide the window
    while current <= last and current.date() == anchor.date():
        grid.append(format_hhmm(current))
        current += step
    return tuple(grid)
