from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from .base import MongoModel


class RequestStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"


class AppointmentRequest(MongoModel):
    name: str
    email: Optional[str] = None
    phone: str
    pet_name: str
    reason: str
    requested_at: datetime
    wants_reminder: bool = False
    status: RequestStatus = RequestStatus.pending
    appointment_id: Optional[str] = None
