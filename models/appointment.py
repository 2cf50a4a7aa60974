from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import Field

from .base import MongoModel


class AppointmentStatus(str, Enum):
    pending = "pending"
    scheduled = "scheduled"
    done = "done"
    cancelled = "cancelled"
    rejected = "rejected"


# Statuses that occupy a resource's time
BLOCKING_STATUSES = (AppointmentStatus.scheduled.value,)


class Appointment(MongoModel):
    client_id: Optional[str] = None
    pet_id: Optional[str] = None
    guest_client_name: Optional[str] = None
    guest_pet_name: Optional[str] = None
    resource_id: Optional[str] = None
    start_at: datetime
    reason: str
    service_type: str
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    status: AppointmentStatus = AppointmentStatus.pending
    source_request_id: Optional[str] = None

    @property
    def end_at(self) -> Optional[datetime]:
        if self.duration_minutes is None:
            return None
        return self.start_at + timedelta(minutes=self.duration_minutes)
