from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, field_validator


class AppointmentRequestCreate(BaseModel):
    # Completeness is checked by scheduling.intake so the requester gets one message for all missing fields
    name: str = ""
    email: Optional[EmailStr] = None
    phone: str = ""
    date: str = ""
    time: str = ""
    reason: str = ""
    pet_name: str = ""
    wants_reminder: bool = False

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("name", "phone", "date", "time", "reason", "pet_name", mode="before")
    @classmethod
    def _strip(cls, value):
        if value is None:
            return ""
        return str(value).strip()


class AppointmentRequestResponse(BaseModel):
    message: str
    request_id: str
    requested_at: datetime
    status: str


class AvailabilityResponse(BaseModel):
    date: Optional[str] = None
    slots: List[str]
    reason: Optional[str] = None
    message: Optional[str] = None


class PublicOptionsResponse(BaseModel):
    reasons: List[str]
    slot_grid: List[str]
    max_requests_per_day: int
