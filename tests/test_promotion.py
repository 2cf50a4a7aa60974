"""
Tests for promoting public requests into scheduled appointments.
"""

from datetime import datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from core.errors import AvailabilityConflict, NotFoundError, PartialFailureError, StoreError, ValidationError
from scheduling.promotion import PromotionSelection, promote_request

from conftest import NOW, run


def _request(store, when=datetime(2025, 6, 10, 10, 0), reason="Revision-Consulta", status="pending"):
    return store.add(
        "appointment_requests",
        name="Ana",
        phone="555",
        pet_name="Luna",
        reason=reason,
        requested_at=when,
        status=status,
    )


def _promote(store, request_id, selection, catalog, settings):
    return run(promote_request(store, request_id, selection, catalog=catalog, settings=settings, now=NOW))


def test_promotion_schedules_and_confirms(store, resource_id, catalog, settings):
    request_id = _request(store)

    result = _promote(store, request_id, PromotionSelection(resource_id=resource_id), catalog, settings)

    appointment = store.get("appointments", result.appointment.id)
    assert appointment["status"] == "scheduled"
    assert appointment["resource_id"] == resource_id
    assert appointment["start_at"] == datetime(2025, 6, 10, 10, 0)
    assert appointment["duration_minutes"] == 60
    assert appointment["guest_client_name"] == "Ana"
    assert appointment["guest_pet_name"] == "Luna"
    assert appointment["source_request_id"] == request_id

    request = store.get("appointment_requests", request_id)
    assert request["status"] == "confirmed"
    assert request["appointment_id"] == result.appointment.id
    assert result.request.status == "confirmed"
    assert store.get("resources", resource_id)["generation"] == 1


def test_promotion_with_registered_client(store, resource_id, catalog, settings):
    client_id = store.add("clients", name="Ana")
    pet_id = store.add("pets", client_id=client_id, name="Luna")
    request_id = _request(store)

    result = _promote(
        store,
        request_id,
        PromotionSelection(resource_id=resource_id, client_id=client_id, pet_id=pet_id),
        catalog,
        settings,
    )

    appointment = store.get("appointments", result.appointment.id)
    assert appointment["client_id"] == client_id
    assert appointment["pet_id"] == pet_id
    assert appointment["guest_client_name"] is None


def test_pet_must_belong_to_client(store, resource_id, catalog, settings):
    client_id = store.add("clients", name="Ana")
    stranger = store.add("clients", name="Bob")
    pet_id = store.add("pets", client_id=stranger, name="Rex")
    request_id = _request(store)

    with pytest.raises(ValidationError):
        _promote(
            store,
            request_id,
            PromotionSelection(resource_id=resource_id, client_id=client_id, pet_id=pet_id),
            catalog,
            settings,
        )
    assert store.all("appointments") == []


def test_selection_needs_client_and_pet_together():
    with pytest.raises(PydanticValidationError):
        PromotionSelection(resource_id="r1", client_id="c1")


def test_overlap_denial_leaves_everything_untouched(store, resource_id, catalog, settings):
    store.add(
        "appointments",
        resource_id=resource_id,
        start_at=datetime(2025, 6, 10, 9, 0),
        reason="Grooming",
        service_type="Grooming",
        duration_minutes=180,
        status="scheduled",
    )
    request_id = _request(store)

    with pytest.raises(AvailabilityConflict):
        _promote(store, request_id, PromotionSelection(resource_id=resource_id), catalog, settings)

    assert len(store.all("appointments")) == 1
    assert store.get("appointment_requests", request_id)["status"] == "pending"
    assert store.get("resources", resource_id)["generation"] == 0


def test_grooming_past_closing_is_denied(store, resource_id, catalog, settings):
    request_id = _request(store, when=datetime(2025, 6, 10, 15, 0), reason="Grooming")
    with pytest.raises(ValidationError):
        _promote(store, request_id, PromotionSelection(resource_id=resource_id), catalog, settings)
    assert store.all("appointments") == []


@pytest.mark.parametrize("status", ["confirmed", "cancelled"])
def test_only_pending_requests_are_promoted(store, resource_id, catalog, settings, status):
    request_id = _request(store, status=status)
    with pytest.raises(ValidationError):
        _promote(store, request_id, PromotionSelection(resource_id=resource_id), catalog, settings)
    assert store.all("appointments") == []


def test_failed_confirmation_is_compensated(store, resource_id, catalog, settings):
    request_id = _request(store)
    store.fail_next("update", "appointment_requests")

    with pytest.raises(PartialFailureError) as excinfo:
        _promote(store, request_id, PromotionSelection(resource_id=resource_id), catalog, settings)

    assert excinfo.value.compensated is True
    assert store.all("appointments") == []
    assert store.get("appointment_requests", request_id)["status"] == "pending"


def test_failed_compensation_reports_the_orphan(store, resource_id, catalog, settings):
    request_id = _request(store)
    store.fail_next("update", "appointment_requests")
    store.fail_next("delete", "appointments")

    with pytest.raises(PartialFailureError) as excinfo:
        _promote(store, request_id, PromotionSelection(resource_id=resource_id), catalog, settings)

    error = excinfo.value
    assert error.compensated is False
    orphan = store.get("appointments", error.appointment_id)
    assert orphan["source_request_id"] == request_id
    assert error.appointment_id in error.message


def test_request_changed_concurrently_is_compensated(store, resource_id, catalog, settings):
    request_id = _request(store)

    async def cancel_on_insert(change):
        if change["collection"] == "appointments" and change["operation"] == "insert":
            store.collections["appointment_requests"][request_id]["status"] = "cancelled"

    run(store.subscribe("appointments", cancel_on_insert))

    with pytest.raises(PartialFailureError) as excinfo:
        _promote(store, request_id, PromotionSelection(resource_id=resource_id), catalog, settings)
    assert excinfo.value.compensated is True
    assert store.all("appointments") == []


def test_lost_generation_race_removes_the_appointment(store, resource_id, catalog, settings):
    request_id = _request(store)

    async def race(change):
        # Another booking on the same resource commits first
        if change["operation"] == "insert":
            store.collections["resources"][resource_id]["generation"] = 5

    run(store.subscribe("appointments", race))

    with pytest.raises(AvailabilityConflict):
        _promote(store, request_id, PromotionSelection(resource_id=resource_id), catalog, settings)
    assert store.all("appointments") == []
    assert store.get("appointment_requests", request_id)["status"] == "pending"


def test_unknown_resource_is_not_found(store, catalog, settings):
    request_id = _request(store)
    with pytest.raises(NotFoundError):
        _promote(store, request_id, PromotionSelection(resource_id="missing"), catalog, settings)
    assert store.all("appointments") == []


def test_generation_write_failure_removes_the_appointment(store, resource_id, catalog, settings):
    request_id = _request(store)
    store.fail_next("update", "resources")

    with pytest.raises(StoreError):
        _promote(store, request_id, PromotionSelection(resource_id=resource_id), catalog, settings)

    assert store.all("appointments") == []
    assert store.get("appointment_requests", request_id)["status"] == "pending"


def test_generation_write_failure_with_failed_undo(store, resource_id, catalog, settings):
    request_id = _request(store)
    store.fail_next("update", "resources")
    store.fail_next("delete", "appointments")

    with pytest.raises(PartialFailureError) as excinfo:
        _promote(store, request_id, PromotionSelection(resource_id=resource_id), catalog, settings)

    assert excinfo.value.compensated is False
    assert store.get("appointments", excinfo.value.appointment_id)["source_request_id"] == request_id
    assert store.get("appointment_requests", request_id)["status"] == "pending"


def test_lost_race_with_failed_undo_reports_the_appointment(store, resource_id, catalog, settings):
    request_id = _request(store)

    async def race(change):
        if change["operation"] == "insert":
            store.collections["resources"][resource_id]["generation"] = 5

    run(store.subscribe("appointments", race))
    store.fail_next("delete", "appointments")

    with pytest.raises(PartialFailureError) as excinfo:
        _promote(store, request_id, PromotionSelection(resource_id=resource_id), catalog, settings)

    assert isinstance(excinfo.value.__cause__, AvailabilityConflict)
    assert excinfo.value.compensated is False
