"""
Resource Overlap Detector

Decides whether a resource (veterinarian/groomer) can take a booking of a
given service type at a given date and time, considering:
- the service duration from the Duration Catalog
- the clinic closing time
- the resource's existing bookings in blocking status

Intervals are half-open, so a booking may start exactly when another ends.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from core.clock import clinic_now, format_hhmm, parse_date, parse_hhmm
from core.config import AppSettings, settings as default_settings
from core.errors import AvailabilityConflict, ValidationError
from models.appointment import BLOCKING_STATUSES
from repositories.base import OneOf, Range, RecordStore
from repositories.collections import APPOINTMENTS
from .catalog import DurationCatalog
from .quota import day_bounds


logger = logging.getLogger(__name__)


class DenialCode(str, Enum):
    UNKNOWN_SERVICE_TYPE = "unknown_service_type"
    IN_THE_PAST = "in_the_past"
    AFTER_CLOSING = "after_closing"
    RESOURCE_OVERLAP = "resource_overlap"


@dataclass(frozen=True)
class Booking:
    appointment_id: Optional[str]
    start: datetime
    # None when the booking's duration is unknown; it then blocks the rest of the day
    end: Optional[datetime]


@dataclass(frozen=True)
class OverlapDecision:
    allowed: bool
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    code: Optional[DenialCode] = None
    reason: Optional[str] = None
    conflict: Optional[Booking] = None

    def details(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "code": self.code.value if self.code else None,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
        }
        if self.conflict is not None:
            data["conflicting_appointment_id"] = self.conflict.appointment_id
            data["conflict_start"] = self.conflict.start.isoformat()
            data["conflict_end"] = self.conflict.end.isoformat() if self.conflict.end else None
        return data

    def raise_for_denial(self) -> None:
        if self.allowed:
            return
        if self.code == DenialCode.RESOURCE_OVERLAP:
            raise AvailabilityConflict(self.reason or "Resource not available", details=self.details())
        raise ValidationError(self.reason or "Requested time is not valid", details=self.details())


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open [a_start, a_end) and [b_start, b_end) share at least one instant."""
    return a_start < b_end and b_start < a_end


def find_conflict(start: datetime, end: datetime, bookings: Iterable[Booking]) -> Optional[Booking]:
    """First booking overlapping [start, end), or None."""
    for booking in bookings:
        if booking.end is None:
            if end > booking.start:
                return booking
            continue
        if intervals_overlap(start, end, booking.start, booking.end):
            return booking
    return None


def bookings_from_records(records: Iterable[Dict[str, Any]], catalog: DurationCatalog) -> List[Booking]:
    bookings: List[Booking] = []
    for record in records:
        start = record.get("start_at")
        if not isinstance(start, datetime):
            continue
        minutes = record.get("duration_minutes") or catalog.duration_for(record.get("service_type"))
        if not minutes:
            logger.warning(
                "overlap.unknown_booking_duration",
                extra={"appointment_id": record.get("id"), "service_type": record.get("service_type")},
            )
            bookings.append(Booking(appointment_id=record.get("id"), start=start, end=None))
            continue
        bookings.append(Booking(appointment_id=record.get("id"), start=start, end=start + timedelta(minutes=minutes)))
    bookings.sort(key=lambda b: b.start)
    return bookings


def evaluate_booking(
    start: datetime,
    service_type: str,
    bookings: Iterable[Booking],
    *,
    catalog: DurationCatalog,
    closing: time,
    now: Optional[datetime],
) -> OverlapDecision:
    """
    Pure decision for a booking of `service_type` starting at `start`.

    Pass now=None to skip the past/closing-time rules (used when reverting a
    cancelled appointment back onto its resource).
    """
    duration = catalog.duration_for(service_type)
    if duration is None:
        return OverlapDecision(
            allowed=False,
            start=start,
            code=DenialCode.UNKNOWN_SERVICE_TYPE,
            reason=f'Unknown service type: "{service_type}". Its duration cannot be determined.',
        )

    end = start + timedelta(minutes=duration)

    if now is not None:
        if start < now.replace(second=0, microsecond=0):
            return OverlapDecision(
                allowed=False,
                start=start,
                end=end,
                code=DenialCode.IN_THE_PAST,
                reason="Appointments cannot be scheduled in the past.",
            )
        closing_at = datetime.combine(start.date(), closing)
        if end > closing_at:
            return OverlapDecision(
                allowed=False,
                start=start,
                end=end,
                code=DenialCode.AFTER_CLOSING,
                reason=(
                    f'A "{service_type}" appointment at {format_hhmm(start)} ends at {format_hhmm(end)}, '
                    f"after the clinic closing time ({format_hhmm(closing)}). Please choose an earlier time."
                ),
            )

    conflict = find_conflict(start, end, bookings)
    if conflict is not None:
        until = format_hhmm(conflict.end) if conflict.end else "closing time"
        return OverlapDecision(
            allowed=False,
            start=start,
            end=end,
            code=DenialCode.RESOURCE_OVERLAP,
            reason=(
                f"Overlap: the selected resource is not available from {format_hhmm(conflict.start)} "
                f"to {until} because of another appointment (ID: {conflict.appointment_id or 'unknown'}). "
                "Please choose a different time or resource."
            ),
            conflict=conflict,
        )

    return OverlapDecision(allowed=True, start=start, end=end)


def combine_start(day_value: date | str | None, time_value: time | str | None) -> datetime:
    day = parse_date(day_value)
    if day is None:
        raise ValidationError("A valid date (YYYY-MM-DD) is required.", details={"date": str(day_value)})
    if isinstance(time_value, time):
        return datetime.combine(day, time_value.replace(second=0, microsecond=0))
    try:
        return datetime.combine(day, parse_hhmm(str(time_value or "")))
    except ValueError as exc:
        raise ValidationError("A valid time (HH:MM) is required.", details={"time": str(time_value)}) from exc


async def load_resource_bookings(
    store: RecordStore,
    resource_id: str,
    day: date,
    catalog: DurationCatalog,
    *,
    exclude_appointment_id: Optional[str] = None,
) -> List[Booking]:
    start, end = day_bounds(day)
    records = await store.find_many(
        APPOINTMENTS,
        {
            "resource_id": resource_id,
            "status": OneOf(BLOCKING_STATUSES),
            "start_at": Range(gte=start, lt=end),
        },
        sort=[("start_at", 1)],
    )
    if exclude_appointment_id:
        records = [r for r in records if r.get("id") != exclude_appointment_id]
    return bookings_from_records(records, catalog)


async def check_resource_availability(
    store: RecordStore,
    resource_id: Optional[str],
    day: date | str | None,
    start_time: time | str | None,
    service_type: str,
    *,
    exclude_appointment_id: Optional[str] = None,
    catalog: Optional[DurationCatalog] = None,
    settings: Optional[AppSettings] = None,
    now: Optional[datetime] = None,
    enforce_window: bool = True,
) -> OverlapDecision:
    """
    Detect whether `resource_id` can take a `service_type` booking at day+start_time.

    Args:
        resource_id: the Resource to check
        day: calendar date of the booking
        start_time: HH:MM start
        service_type: Duration Catalog key
        exclude_appointment_id: appointment to ignore (editing it in place)
        enforce_window: apply the past/closing-time rules

    Returns:
        OverlapDecision; on deny `reason` says why and `conflict` names the
        first conflicting booking, if any.

    Raises:
        ValidationError for a missing resource or malformed date/time.
        StoreError when bookings cannot be read.
    """
    if not resource_id:
        raise ValidationError("Please select a valid resource to check availability.")
    cfg = settings or default_settings
    catalog = catalog or DurationCatalog.from_settings(cfg)
    start = combine_start(day, start_time)

    if catalog.duration_for(service_type) is None:
        # Fail closed before touching the store
        return evaluate_booking(start, service_type, (), catalog=catalog, closing=parse_hhmm(cfg.closing_time), now=None)

    bookings = await load_resource_bookings(
        store, resource_id, start.date(), catalog, exclude_appointment_id=exclude_appointment_id
    )
    decision = evaluate_booking(
        start,
        service_type,
        bookings,
        catalog=catalog,
        closing=parse_hhmm(cfg.closing_time),
        now=(now or clinic_now(cfg)) if enforce_window else None,
    )
    if not decision.allowed:
        logger.info(
            "overlap.denied",
            extra={"resource_id": resource_id, "start": start.isoformat(), **decision.details()},
        )
    return decision
