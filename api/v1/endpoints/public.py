from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from api.v1.deps import get_now
from core.config import AppSettings, get_settings
from db.database import get_store
from repositories.base import RecordStore
from schemas.public import (
    AppointmentRequestCreate,
    AppointmentRequestResponse,
    AvailabilityResponse,
    PublicOptionsResponse,
)
from scheduling.availability import get_available_slots
from scheduling.intake import submit_request
from scheduling.slots import generate_slot_grid


router = APIRouter(tags=["public"])


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    date: str = Query(..., description="YYYY-MM-DD"),
    store: RecordStore = Depends(get_store),
    settings: AppSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
) -> AvailabilityResponse:
    result = await get_available_slots(store, date, settings=settings, now=now)
    return AvailabilityResponse(
        date=result.day.isoformat() if result.day else None,
        slots=list(result.slots),
        reason=result.reason.value if result.reason else None,
        message=result.message,
    )


@router.get("/booking-options", response_model=PublicOptionsResponse)
async def get_booking_options(settings: AppSettings = Depends(get_settings)) -> PublicOptionsResponse:
    return PublicOptionsResponse(
        reasons=list(settings.public_reasons),
        slot_grid=list(generate_slot_grid(settings)),
        max_requests_per_day=settings.max_public_requests_per_day,
    )


@router.post(
    "/appointment-requests",
    response_model=AppointmentRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_appointment_request(
    payload: AppointmentRequestCreate,
    store: RecordStore = Depends(get_store),
    settings: AppSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
) -> AppointmentRequestResponse:
    request = await submit_request(store, payload, settings=settings, now=now)
    return AppointmentRequestResponse(
        message=(
            "Your appointment request was sent. We will contact you soon to confirm it. "
            "Grooming appointments may need extra confirmation because of their length."
        ),
        request_id=request.id,
        requested_at=request.requested_at,
        status=request.status,
    )
