from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

import logging
from fastapi import APIRouter, Depends, Query, status

from api.v1.deps import get_catalog, get_now
from core.config import AppSettings, get_settings
from db.database import get_store
from models.appointment import Appointment, AppointmentStatus
from models.appointment_request import AppointmentRequest, RequestStatus
from models.role import Role
from repositories.base import RecordStore
from schemas.admin import (
    AllowedActionsResponse,
    AppointmentActionRequest,
    AppointmentDraft,
    AppointmentUpdate,
    OverlapCheckRequest,
    OverlapCheckResponse,
    PromoteRequest,
    PromotionResponse,
    ServiceTypesResponse,
)
from scheduling.catalog import DurationCatalog
from scheduling.overlap import check_resource_availability
from scheduling.promotion import load_request, promote_request
from scheduling.state_machine import allowed_actions
from services import appointments as appointment_service
from services.security import get_current_user, require_request_rights


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(get_current_user)])


@router.get("/service-types", response_model=ServiceTypesResponse)
async def service_types(catalog: DurationCatalog = Depends(get_catalog)) -> ServiceTypesResponse:
    return ServiceTypesResponse(durations=catalog.as_dict())


# ---------------- Public requests ----------------

@router.get("/appointment-requests", response_model=List[AppointmentRequest])
async def list_appointment_requests(
    request_status: Optional[RequestStatus] = Query(default=RequestStatus.pending, alias="status"),
    store: RecordStore = Depends(get_store),
) -> List[AppointmentRequest]:
    return await appointment_service.list_requests(store, status=request_status)


@router.get("/appointment-requests/{request_id}", response_model=AppointmentRequest)
async def get_appointment_request(request_id: str, store: RecordStore = Depends(get_store)) -> AppointmentRequest:
    return await load_request(store, request_id)


@router.post("/appointment-requests/{request_id}/promote", response_model=PromotionResponse)
async def promote_appointment_request(
    request_id: str,
    payload: PromoteRequest,
    store: RecordStore = Depends(get_store),
    current_user: Role = Depends(get_current_user),
    catalog: DurationCatalog = Depends(get_catalog),
    settings: AppSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
) -> PromotionResponse:
    require_request_rights(current_user)
    result = await promote_request(store, request_id, payload, catalog=catalog, settings=settings, now=now)
    return PromotionResponse(
        message="Appointment confirmed and scheduled.",
        appointment_id=result.appointment.id,
        request_id=request_id,
    )


@router.post("/appointment-requests/{request_id}/cancel", response_model=AppointmentRequest)
async def cancel_appointment_request(
    request_id: str,
    store: RecordStore = Depends(get_store),
    current_user: Role = Depends(get_current_user),
) -> AppointmentRequest:
    return await appointment_service.cancel_request(store, request_id, current_user)


# ---------------- Internal appointments ----------------

@router.post("/overlap-check", response_model=OverlapCheckResponse)
async def overlap_check(
    payload: OverlapCheckRequest,
    store: RecordStore = Depends(get_store),
    catalog: DurationCatalog = Depends(get_catalog),
    settings: AppSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
) -> OverlapCheckResponse:
    decision = await check_resource_availability(
        store,
        payload.resource_id,
        payload.date,
        payload.time,
        payload.service_type,
        exclude_appointment_id=payload.exclude_appointment_id,
        catalog=catalog,
        settings=settings,
        now=now,
    )
    return OverlapCheckResponse(
        allowed=decision.allowed,
        reason=decision.reason,
        code=decision.code.value if decision.code else None,
        start=decision.start,
        end=decision.end,
        conflicting_appointment_id=decision.conflict.appointment_id if decision.conflict else None,
    )


@router.get("/appointments", response_model=List[Appointment])
async def list_appointments(
    appointment_status: Optional[AppointmentStatus] = Query(default=None, alias="status"),
    resource_id: Optional[str] = None,
    day: Optional[date] = Query(default=None, alias="date"),
    store: RecordStore = Depends(get_store),
) -> List[Appointment]:
    return await appointment_service.list_appointments(
        store, status=appointment_status, resource_id=resource_id, day=day
    )


@router.post("/appointments", response_model=Appointment, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: AppointmentDraft,
    store: RecordStore = Depends(get_store),
    current_user: Role = Depends(get_current_user),
    catalog: DurationCatalog = Depends(get_catalog),
    settings: AppSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
) -> Appointment:
    return await appointment_service.create_appointment(
        store, payload, current_user, catalog=catalog, settings=settings, now=now
    )


@router.get("/appointments/{appointment_id}/actions", response_model=AllowedActionsResponse)
async def appointment_actions(appointment_id: str, store: RecordStore = Depends(get_store)) -> AllowedActionsResponse:
    appointment = await appointment_service.get_appointment(store, appointment_id)
    return AllowedActionsResponse(
        appointment_id=appointment_id,
        status=appointment.status,
        actions=[a.value for a in allowed_actions(appointment.status)],
    )


@router.patch("/appointments/{appointment_id}", response_model=Appointment)
async def update_appointment(
    appointment_id: str,
    payload: AppointmentUpdate,
    store: RecordStore = Depends(get_store),
    current_user: Role = Depends(get_current_user),
    catalog: DurationCatalog = Depends(get_catalog),
    settings: AppSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
) -> Appointment:
    return await appointment_service.update_appointment(
        store, appointment_id, payload, current_user, catalog=catalog, settings=settings, now=now
    )


@router.post("/appointments/{appointment_id}/actions", response_model=Appointment)
async def run_appointment_action(
    appointment_id: str,
    payload: AppointmentActionRequest,
    store: RecordStore = Depends(get_store),
    current_user: Role = Depends(get_current_user),
    catalog: DurationCatalog = Depends(get_catalog),
    settings: AppSettings = Depends(get_settings),
    now: datetime = Depends(get_now),
) -> Appointment:
    return await appointment_service.apply_appointment_action(
        store,
        appointment_id,
        payload.action,
        current_user,
        resource_id=payload.resource_id,
        catalog=catalog,
        settings=settings,
        now=now,
    )


@router.delete("/appointments/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_appointment(
    appointment_id: str,
    store: RecordStore = Depends(get_store),
    current_user: Role = Depends(get_current_user),
) -> None:
    await appointment_service.delete_appointment(store, appointment_id, current_user)
