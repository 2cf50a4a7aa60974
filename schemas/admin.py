from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from core.errors import ValidationError
from scheduling.promotion import PromotionSelection
from scheduling.state_machine import Action


class AppointmentDraft(BaseModel):
    """
    An internal appointment being put together by staff.

    Fields are filled in one step at a time (client, then pet, then
    resource...) through the `with_*` helpers, which return new drafts. Picking
    a different client clears the pet, and picking a registered client clears
    the guest names. `check_complete` validates the draft as a whole.
    """

    start_at: Optional[datetime] = None
    reason: Optional[str] = None
    service_type: Optional[str] = None
    resource_id: Optional[str] = None
    client_id: Optional[str] = None
    pet_id: Optional[str] = None
    guest_client_name: Optional[str] = None
    guest_pet_name: Optional[str] = None

    def with_client(self, client_id: Optional[str]) -> "AppointmentDraft":
        update = {"client_id": client_id or None}
        if client_id != self.client_id:
            update["pet_id"] = None
        if client_id:
            update.update({"guest_client_name": None, "guest_pet_name": None})
        return self.model_copy(update=update)

    def with_pet(self, pet_id: Optional[str]) -> "AppointmentDraft":
        return self.model_copy(update={"pet_id": pet_id or None})

    def with_guest(self, client_name: str, pet_name: str) -> "AppointmentDraft":
        return self.model_copy(
            update={"client_id": None, "pet_id": None, "guest_client_name": client_name, "guest_pet_name": pet_name}
        )

    def with_resource(self, resource_id: Optional[str]) -> "AppointmentDraft":
        return self.model_copy(update={"resource_id": resource_id or None})

    def check_complete(self) -> None:
        missing = [f for f in ("start_at", "reason", "service_type") if not getattr(self, f)]
        if missing:
            raise ValidationError(
                "Please complete the required fields: date and time, reason, service type.",
                details={"missing": missing},
            )
        if self.client_id is None and not (self.guest_client_name and self.guest_pet_name):
            raise ValidationError(
                "Without a registered client, the guest client name and guest pet name are required."
            )
        if self.client_id is not None and not self.pet_id:
            raise ValidationError("Please select a registered pet for the selected client.")


class AppointmentUpdate(BaseModel):
    start_at: Optional[datetime] = None
    reason: Optional[str] = None
    service_type: Optional[str] = None
    resource_id: Optional[str] = None
    client_id: Optional[str] = None
    pet_id: Optional[str] = None
    guest_client_name: Optional[str] = None
    guest_pet_name: Optional[str] = None


class AppointmentActionRequest(BaseModel):
    action: Action
    resource_id: Optional[str] = None


class OverlapCheckRequest(BaseModel):
    resource_id: str
    date: date
    time: str
    service_type: str
    exclude_appointment_id: Optional[str] = None


class OverlapCheckResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    code: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    conflicting_appointment_id: Optional[str] = None


class PromoteRequest(PromotionSelection):
    pass


class PromotionResponse(BaseModel):
    message: str
    appointment_id: str
    request_id: str


class ServiceTypesResponse(BaseModel):
    durations: Dict[str, int]


class AllowedActionsResponse(BaseModel):
    appointment_id: str
    status: str
    actions: List[str]
