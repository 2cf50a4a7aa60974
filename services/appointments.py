from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from core.config import AppSettings, settings as default_settings
from core.errors import InvalidTransitionError, NotFoundError, ValidationError
from models.appointment import Appointment, AppointmentStatus
from models.appointment_request import AppointmentRequest, RequestStatus
from models.role import Role
from repositories.base import Range, RecordStore
from repositories.collections import APPOINTMENT_REQUESTS, APPOINTMENTS
from schemas.admin import AppointmentDraft, AppointmentUpdate
from scheduling.catalog import DurationCatalog
from scheduling.guard import ResourceGuard
from scheduling.overlap import check_resource_availability
from scheduling.promotion import load_request, resolve_registered_pet
from scheduling.quota import day_bounds
from scheduling.state_machine import TERMINAL_STATUSES, Action, apply_action
from services.security import require_appointment_rights, require_request_rights


logger = logging.getLogger(__name__)


async def get_appointment(store: RecordStore, appointment_id: str) -> Appointment:
    record = await store.find_one(APPOINTMENTS, {"id": appointment_id})
    if record is None:
        raise NotFoundError(f"Appointment {appointment_id} not found", details={"appointment_id": appointment_id})
    return Appointment.model_validate(record)


async def list_appointments(
    store: RecordStore,
    *,
    status: Optional[AppointmentStatus] = None,
    resource_id: Optional[str] = None,
    day: Optional[date] = None,
) -> List[Appointment]:
    filters: Dict[str, Any] = {}
    if status is not None:
        filters["status"] = AppointmentStatus(status).value
    if resource_id:
        filters["resource_id"] = resource_id
    if day is not None:
        start, end = day_bounds(day)
        filters["start_at"] = Range(gte=start, lt=end)
    records = await store.find_many(APPOINTMENTS, filters, sort=[("start_at", 1)])
    return [Appointment.model_validate(r) for r in records]


async def list_requests(store: RecordStore, *, status: Optional[RequestStatus] = None) -> List[AppointmentRequest]:
    filters = {"status": RequestStatus(status).value} if status is not None else {}
    records = await store.find_many(APPOINTMENT_REQUESTS, filters, sort=[("requested_at", 1)])
    return [AppointmentRequest.model_validate(r) for r in records]


async def _check_slot(
    store: RecordStore,
    appointment: Appointment,
    catalog: DurationCatalog,
    settings: AppSettings,
    now: Optional[datetime],
    *,
    exclude_id: Optional[str] = None,
    enforce_window: bool = True,
) -> None:
    decision = await check_resource_availability(
        store,
        appointment.resource_id,
        appointment.start_at.date(),
        appointment.start_at.time(),
        appointment.service_type,
        exclude_appointment_id=exclude_id,
        catalog=catalog,
        settings=settings,
        now=now,
        enforce_window=enforce_window,
    )
    decision.raise_for_denial()


async def create_appointment(
    store: RecordStore,
    draft: AppointmentDraft,
    actor: Role,
    *,
    catalog: Optional[DurationCatalog] = None,
    settings: Optional[AppSettings] = None,
    now: Optional[datetime] = None,
) -> Appointment:
    """Staff-created appointment: scheduled when a resource is given (and free), pending otherwise."""
    cfg = settings or default_settings
    catalog = catalog or DurationCatalog.from_settings(cfg)

    draft.check_complete()
    duration = catalog.duration_for(draft.service_type)
    if duration is None:
        raise ValidationError(
            f'Unknown service type: "{draft.service_type}".', details={"service_type": draft.service_type}
        )
    if draft.client_id:
        await resolve_registered_pet(store, draft.client_id, draft.pet_id)

    appointment = Appointment(
        client_id=draft.client_id,
        pet_id=draft.pet_id,
        guest_client_name=draft.guest_client_name if not draft.client_id else None,
        guest_pet_name=draft.guest_pet_name if not draft.client_id else None,
        resource_id=draft.resource_id,
        start_at=draft.start_at.replace(second=0, microsecond=0, tzinfo=None),
        reason=draft.reason,
        service_type=draft.service_type,
        duration_minutes=duration,
        status=AppointmentStatus.scheduled if draft.resource_id else AppointmentStatus.pending,
    )
    require_appointment_rights(actor, appointment)

    if not appointment.resource_id:
        appointment_id = await store.insert_one(APPOINTMENTS, appointment.to_record())
        logger.info("appointments.created", extra={"appointment_id": appointment_id, "status": appointment.status})
        return appointment.model_copy(update={"id": appointment_id})

    guard = await ResourceGuard(store, appointment.resource_id).snapshot()
    await _check_slot(store, appointment, catalog, cfg, now)
    appointment_id = await store.insert_one(APPOINTMENTS, appointment.to_record())
    await guard.commit_or_undo(
        lambda: store.delete_one(APPOINTMENTS, appointment_id), appointment_id=appointment_id
    )
    logger.info(
        "appointments.created",
        extra={"appointment_id": appointment_id, "status": appointment.status, "resource_id": appointment.resource_id},
    )
    return appointment.model_copy(update={"id": appointment_id})


async def update_appointment(
    store: RecordStore,
    appointment_id: str,
    changes: AppointmentUpdate,
    actor: Role,
    *,
    catalog: Optional[DurationCatalog] = None,
    settings: Optional[AppSettings] = None,
    now: Optional[datetime] = None,
) -> Appointment:
    """Edit in place. A scheduled appointment is re-checked against its resource, excluding itself."""
    cfg = settings or default_settings
    catalog = catalog or DurationCatalog.from_settings(cfg)

    current = await get_appointment(store, appointment_id)
    require_appointment_rights(actor, current)
    if AppointmentStatus(current.status) in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            f'Appointments in status "{current.status}" can no longer be edited.',
            details={"appointment_id": appointment_id, "status": current.status},
        )

    draft = AppointmentDraft(**current.model_dump(include=set(AppointmentDraft.model_fields)))
    provided = changes.model_dump(exclude_unset=True)
    if "client_id" in provided:
        draft = draft.with_client(provided.pop("client_id"))
    if "resource_id" in provided:
        draft = draft.with_resource(provided.pop("resource_id"))
    draft = draft.model_copy(update=provided)
    if draft.guest_client_name and draft.client_id is None:
        draft = draft.with_guest(draft.guest_client_name, draft.guest_pet_name or "")
    draft.check_complete()
    if draft.client_id:
        draft = draft.model_copy(update={"guest_client_name": None, "guest_pet_name": None})

    duration = catalog.duration_for(draft.service_type)
    if duration is None:
        raise ValidationError(
            f'Unknown service type: "{draft.service_type}".', details={"service_type": draft.service_type}
        )
    if draft.client_id:
        await resolve_registered_pet(store, draft.client_id, draft.pet_id)
    if current.status == AppointmentStatus.scheduled.value and not draft.resource_id:
        raise ValidationError("A scheduled appointment must keep a resource. Cancel it instead.")

    updated = current.model_copy(
        update={
            **draft.model_dump(),
            "start_at": draft.start_at.replace(second=0, microsecond=0, tzinfo=None),
            "duration_minutes": duration,
        }
    )
    require_appointment_rights(actor, updated)
    record = updated.to_record()

    guard: Optional[ResourceGuard] = None
    if updated.status == AppointmentStatus.scheduled.value:
        guard = await ResourceGuard(store, updated.resource_id).snapshot()
        await _check_slot(store, updated, catalog, cfg, now, exclude_id=appointment_id)

    saved = await store.update_one(APPOINTMENTS, appointment_id, record, expected={"status": current.status})
    if not saved:
        raise InvalidTransitionError(
            "The appointment was changed by someone else. Reload it and try again.",
            details={"appointment_id": appointment_id},
        )
    if guard is not None:
        await guard.commit_or_undo(
            lambda: store.update_one(APPOINTMENTS, appointment_id, current.to_record()),
            appointment_id=appointment_id,
        )
    logger.info("appointments.updated", extra={"appointment_id": appointment_id})
    return updated


async def apply_appointment_action(
    store: RecordStore,
    appointment_id: str,
    action: Action | str,
    actor: Role,
    *,
    resource_id: Optional[str] = None,
    catalog: Optional[DurationCatalog] = None,
    settings: Optional[AppSettings] = None,
    now: Optional[datetime] = None,
) -> Appointment:
    """
    Run a lifecycle action (assign, reject, complete, cancel, revert) and persist it.

    Assigning without `resource_id` uses the appointment's resource or, for a
    veterinarian, their own resource.
    """
    cfg = settings or default_settings
    catalog = catalog or DurationCatalog.from_settings(cfg)
    act = Action(action)

    current = await get_appointment(store, appointment_id)
    require_appointment_rights(actor, current)

    if act == Action.assign and not resource_id and not current.resource_id:
        resource_id = actor.resource_id
    transition = apply_action(current.status, current.resource_id, act, new_resource_id=resource_id)

    update: Dict[str, Any] = {"status": transition.status.value, "resource_id": transition.resource_id}
    if current.duration_minutes is None and catalog.duration_for(current.service_type):
        update["duration_minutes"] = catalog.duration_for(current.service_type)
    updated = current.model_copy(update=update)
    require_appointment_rights(actor, updated)

    guard: Optional[ResourceGuard] = None
    if transition.requires_overlap_check:
        guard = await ResourceGuard(store, transition.resource_id).snapshot()
        await _check_slot(
            store,
            updated,
            catalog,
            cfg,
            now,
            exclude_id=appointment_id,
            enforce_window=act != Action.revert,
        )

    saved = await store.update_one(APPOINTMENTS, appointment_id, update, expected={"status": current.status})
    if not saved:
        raise InvalidTransitionError(
            "The appointment status was changed by someone else. Reload it and try again.",
            details={"appointment_id": appointment_id},
        )
    if guard is not None:
        await guard.commit_or_undo(
            lambda: store.update_one(
                APPOINTMENTS, appointment_id, {"status": current.status, "resource_id": current.resource_id}
            ),
            appointment_id=appointment_id,
        )

    logger.info(
        "appointments.transition",
        extra={
            "appointment_id": appointment_id,
            "action": act.value,
            "from_status": transition.previous.value,
            "to_status": transition.status.value,
            "resource_id": transition.resource_id,
        },
    )
    return updated


async def delete_appointment(store: RecordStore, appointment_id: str, actor: Role) -> None:
    current = await get_appointment(store, appointment_id)
    require_appointment_rights(actor, current)
    deleted = await store.delete_one(APPOINTMENTS, appointment_id)
    if not deleted:
        raise NotFoundError(f"Appointment {appointment_id} not found", details={"appointment_id": appointment_id})
    logger.info("appointments.deleted", extra={"appointment_id": appointment_id})


async def cancel_request(store: RecordStore, request_id: str, actor: Role) -> AppointmentRequest:
    require_request_rights(actor)
    request = await load_request(store, request_id)
    if request.status != RequestStatus.pending.value:
        raise ValidationError(
            f'Only pending requests can be cancelled (current status: "{request.status}").',
            details={"request_id": request_id, "status": request.status},
        )
    saved = await store.update_one(
        APPOINTMENT_REQUESTS,
        request_id,
        {"status": RequestStatus.cancelled.value},
        expected={"status": RequestStatus.pending.value},
    )
    if not saved:
        raise ValidationError("The request was changed by someone else. Reload it and try again.")
    logger.info("requests.cancelled", extra={"request_id": request_id})
    return request.model_copy(update={"status": RequestStatus.cancelled.value})
