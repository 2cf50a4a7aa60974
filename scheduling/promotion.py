"""
Promotion Protocol

Turns a pending public AppointmentRequest into a scheduled internal
Appointment on a chosen resource and marks the request confirmed.

The two writes are not transactional. If confirming the request fails after
the appointment was created, the appointment is deleted again (best effort)
and PartialFailureError is raised. The appointment records its
`source_request_id`, so an orphan left by a crash between the two writes can
be found and reconciled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, model_validator

from core.config import AppSettings, settings as default_settings
from core.errors import (
    NotFoundError,
    PartialFailureError,
    StoreError,
    ValidationError,
)
from models.appointment import Appointment, AppointmentStatus
from models.appointment_request import AppointmentRequest, RequestStatus
from models.client import Client, Pet
from repositories.base import RecordStore
from repositories.collections import APPOINTMENT_REQUESTS, APPOINTMENTS, CLIENTS, PETS
from .catalog import DurationCatalog
from .guard import ResourceGuard
from .overlap import check_resource_availability


logger = logging.getLogger(__name__)


class PromotionSelection(BaseModel):
    resource_id: str
    client_id: Optional[str] = None
    pet_id: Optional[str] = None
    # Defaults to the request's reason
    service_type: Optional[str] = None

    @model_validator(mode="after")
    def _client_and_pet_together(self) -> "PromotionSelection":
        if bool(self.client_id) != bool(self.pet_id):
            raise ValueError("Select both a registered client and one of their pets, or neither.")
        return self


@dataclass(frozen=True)
class PromotionResult:
    appointment: Appointment
    request: AppointmentRequest


async def load_request(store: RecordStore, request_id: str) -> AppointmentRequest:
    record = await store.find_one(APPOINTMENT_REQUESTS, {"id": request_id})
    if record is None:
        raise NotFoundError(f"Appointment request {request_id} not found", details={"request_id": request_id})
    return AppointmentRequest.model_validate(record)


async def resolve_registered_pet(store: RecordStore, client_id: str, pet_id: str) -> Tuple[str, str]:
    """Check that the client exists and owns the pet."""
    record = await store.find_one(CLIENTS, {"id": client_id})
    if record is None:
        raise ValidationError(f"Client {client_id} not found", details={"client_id": client_id})
    client = Client.model_validate(record)
    record = await store.find_one(PETS, {"id": pet_id})
    pet = Pet.model_validate(record) if record else None
    if pet is None or pet.client_id != client.id:
        raise ValidationError(
            "Please select a pet registered to the selected client.",
            details={"client_id": client_id, "pet_id": pet_id},
        )
    return client.id, pet.id


async def promote_request(
    store: RecordStore,
    request_id: str,
    selection: PromotionSelection,
    *,
    catalog: Optional[DurationCatalog] = None,
    settings: Optional[AppSettings] = None,
    now: Optional[datetime] = None,
) -> PromotionResult:
    """
    Promote a pending request onto `selection.resource_id`.

    Algorithm:
        1. Load the request; it must be pending
        2. Resolve the optional registered client/pet
        3. Snapshot the resource generation and run the Overlap Detector
        4. Insert the scheduled Appointment
        5. Bump the resource generation; if that fails delete the appointment
        6. Confirm the request and link the appointment; on failure delete the
           appointment and raise PartialFailureError
    """
    cfg = settings or default_settings
    catalog = catalog or DurationCatalog.from_settings(cfg)

    request = await load_request(store, request_id)
    if request.status != RequestStatus.pending.value:
        raise ValidationError(
            f'Only pending requests can be confirmed (current status: "{request.status}").',
            details={"request_id": request_id, "status": request.status},
        )

    client_id = pet_id = None
    if selection.client_id and selection.pet_id:
        client_id, pet_id = await resolve_registered_pet(store, selection.client_id, selection.pet_id)

    service_type = selection.service_type or request.reason
    guard = await ResourceGuard(store, selection.resource_id).snapshot()
    decision = await check_resource_availability(
        store,
        selection.resource_id,
        request.requested_at.date(),
        request.requested_at.time(),
        service_type,
        catalog=catalog,
        settings=cfg,
        now=now,
    )
    decision.raise_for_denial()

    appointment = Appointment(
        client_id=client_id,
        pet_id=pet_id,
        guest_client_name=None if client_id else request.name,
        guest_pet_name=None if client_id else request.pet_name,
        resource_id=selection.resource_id,
        start_at=request.requested_at,
        reason=request.reason,
        service_type=service_type,
        duration_minutes=catalog.duration_for(service_type),
        status=AppointmentStatus.scheduled,
        source_request_id=request_id,
    )
    appointment_id = await store.insert_one(APPOINTMENTS, appointment.to_record())
    appointment = appointment.model_copy(update={"id": appointment_id})

    await guard.commit_or_undo(
        lambda: store.delete_one(APPOINTMENTS, appointment_id), appointment_id=appointment_id
    )

    failure: Optional[str] = None
    try:
        confirmed = await store.update_one(
            APPOINTMENT_REQUESTS,
            request_id,
            {"status": RequestStatus.confirmed.value, "appointment_id": appointment_id},
            expected={"status": RequestStatus.pending.value},
        )
        if not confirmed:
            failure = "the request is no longer pending"
    except StoreError as exc:
        failure = exc.message

    if failure is not None:
        compensated = False
        try:
            compensated = await store.delete_one(APPOINTMENTS, appointment_id)
        except StoreError as exc:
            logger.error(
                "promotion.compensation_failed",
                extra={"request_id": request_id, "appointment_id": appointment_id, "error": exc.message},
            )
        logger.error(
            "promotion.partial_failure",
            extra={
                "request_id": request_id,
                "appointment_id": appointment_id,
                "compensated": compensated,
                "error": failure,
            },
        )
        if compensated:
            message = f"Could not confirm the request; the operation was rolled back. ({failure})"
        else:
            message = (
                f"Could not confirm the request and the created appointment {appointment_id} "
                f"could not be removed; manual reconciliation is needed. ({failure})"
            )
        raise PartialFailureError(message, appointment_id=appointment_id, compensated=compensated)

    logger.info(
        "promotion.confirmed",
        extra={"request_id": request_id, "appointment_id": appointment_id, "resource_id": selection.resource_id},
    )
    request = request.model_copy(
        update={"status": RequestStatus.confirmed.value, "appointment_id": appointment_id}
    )
    return PromotionResult(appointment=appointment, request=request)
