"""
Public Intake

Validates a public appointment request as a whole, re-checks availability
against a fresh read of the daily quota, and stores it as pending.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from core.clock import clinic_now, parse_date, parse_hhmm
from core.config import AppSettings, settings as default_settings
from core.errors import AvailabilityConflict, ValidationError
from models.appointment_request import AppointmentRequest, RequestStatus
from repositories.base import RecordStore
from repositories.collections import APPOINTMENT_REQUESTS
from schemas.public import AppointmentRequestCreate
from .quota import count_daily_requests
from .slots import generate_slot_grid
from .weekdays import describe_allowed_weekdays, is_eligible_weekday


logger = logging.getLogger(__name__)

REQUIRED_FIELDS = {
    "name": "your name",
    "phone": "phone",
    "date": "date",
    "time": "time",
    "reason": "reason",
    "pet_name": "pet name",
}


async def submit_request(
    store: RecordStore,
    form: AppointmentRequestCreate,
    *,
    settings: Optional[AppSettings] = None,
    now: Optional[datetime] = None,
) -> AppointmentRequest:
    cfg = settings or default_settings

    missing = [field for field in REQUIRED_FIELDS if not getattr(form, field)]
    if missing:
        raise ValidationError(
            "Please complete all required fields: " + ", ".join(REQUIRED_FIELDS[f] for f in missing) + ".",
            details={"missing": missing},
        )

    day = parse_date(form.date)
    if day is None:
        raise ValidationError("Invalid date. Use YYYY-MM-DD.", details={"date": form.date})

    grid = generate_slot_grid(cfg)
    if form.time not in grid:
        raise ValidationError(
            f"{form.time} is not an offered start time.", details={"time": form.time, "offered": list(grid)}
        )

    if form.reason not in cfg.public_reasons:
        raise ValidationError(
            f'Unknown reason "{form.reason}".', details={"reason": form.reason, "allowed": cfg.public_reasons}
        )

    if not is_eligible_weekday(day, cfg):
        raise ValidationError(
            f"The selected date is not valid. Public appointment requests are only available "
            f"{describe_allowed_weekdays(cfg)}.",
            details={"date": day.isoformat()},
        )

    requested_at = datetime.combine(day, parse_hhmm(form.time))
    if requested_at <= (now or clinic_now(cfg)):
        raise ValidationError("The selected time is in the past.", details={"requested_at": requested_at.isoformat()})

    quota = await count_daily_requests(store, day)
    cap = cfg.max_public_requests_per_day
    if quota.is_full(cap) or form.time in quota.claimed_times:
        raise AvailabilityConflict(
            "The selected time is no longer available or the daily request limit has been reached. "
            "Please choose another time or date.",
            details={"date": day.isoformat(), "time": form.time, "requests": quota.count, "cap": cap},
        )

    request = AppointmentRequest(
        name=form.name,
        email=str(form.email) if form.email else None,
        phone=form.phone,
        pet_name=form.pet_name,
        reason=form.reason,
        requested_at=requested_at,
        wants_reminder=form.wants_reminder,
        status=RequestStatus.pending,
    )
    request_id = await store.insert_one(APPOINTMENT_REQUESTS, request.to_record())
    logger.info("intake.request_stored", extra={"request_id": request_id, "requested_at": requested_at.isoformat()})
    return request.model_copy(update={"id": request_id})
