"""
Tests for the resource overlap detector.
"""

from datetime import date, datetime, time, timedelta

import pytest

from core.errors import AvailabilityConflict, StoreError, ValidationError
from scheduling.overlap import (
    Booking,
    DenialCode,
    bookings_from_records,
    check_resource_availability,
    evaluate_booking,
    find_conflict,
    intervals_overlap,
)

from conftest import NOW, run


def _book(store, resource_id, start, service_type="Grooming", status="scheduled", **extra):
    fields = {
        "resource_id": resource_id,
        "start_at": start,
        "reason": service_type,
        "service_type": service_type,
        "status": status,
        "guest_client_name": "Ana",
        "guest_pet_name": "Luna",
    }
    fields.update(extra)
    return store.add("appointments", **fields)


def _check(store, resource_id, day, at, service_type, catalog, settings, **kwargs):
    kwargs.setdefault("now", NOW)
    return run(
        check_resource_availability(
            store, resource_id, day, at, service_type, catalog=catalog, settings=settings, **kwargs
        )
    )


BASE = datetime(2025, 6, 10, 9, 0)


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((0, 60), (60, 120), False),  # touching end-to-start
        ((60, 120), (0, 60), False),
        ((0, 60), (59, 120), True),
        ((0, 180), (60, 90), True),  # containment
        ((60, 90), (0, 180), True),
        ((0, 30), (0, 30), True),
        ((0, 30), (120, 150), False),
    ],
)
def test_half_open_intervals(a, b, expected):
    def at(minutes):
        return BASE + timedelta(minutes=minutes)

    assert intervals_overlap(at(a[0]), at(a[1]), at(b[0]), at(b[1])) is expected
    assert intervals_overlap(at(b[0]), at(b[1]), at(a[0]), at(a[1])) is expected


def test_overlap_is_denied_and_names_the_conflict(store, resource_id, catalog, settings):
    existing = _book(store, resource_id, datetime(2025, 6, 10, 9, 0), "Grooming")

    decision = _check(store, resource_id, "2025-06-10", "11:00", "Revision-Consulta", catalog, settings)

    assert not decision.allowed
    assert decision.code == DenialCode.RESOURCE_OVERLAP
    assert decision.conflict.appointment_id == existing
    assert "09:00" in decision.reason and "12:00" in decision.reason
    assert existing in decision.reason
    with pytest.raises(AvailabilityConflict):
        decision.raise_for_denial()


def test_back_to_back_is_allowed(store, resource_id, catalog, settings):
    _book(store, resource_id, datetime(2025, 6, 10, 9, 0), "Grooming")

    decision = _check(store, resource_id, date(2025, 6, 10), "12:00", "Revision-Consulta", catalog, settings)

    assert decision.allowed
    assert decision.start == datetime(2025, 6, 10, 12, 0)
    assert decision.end == datetime(2025, 6, 10, 13, 0)
    decision.raise_for_denial()


def test_unknown_service_type_denies_without_reading(store, resource_id, catalog, settings):
    store.fail_next("find", "appointments")
    decision = _check(store, resource_id, "2025-06-10", "10:00", "Astrology", catalog, settings)

    assert not decision.allowed
    assert decision.code == DenialCode.UNKNOWN_SERVICE_TYPE
    with pytest.raises(ValidationError):
        decision.raise_for_denial()


def test_booking_ending_after_closing_is_denied(store, resource_id, catalog, settings):
    decision = _check(store, resource_id, "2025-06-10", "15:00", "Grooming", catalog, settings)
    assert decision.code == DenialCode.AFTER_CLOSING
    assert "17:00" in decision.reason


def test_booking_ending_exactly_at_closing_is_allowed(store, resource_id, catalog, settings):
    decision = _check(store, resource_id, "2025-06-10", "14:00", "Grooming", catalog, settings)
    assert decision.allowed


def test_past_start_is_denied(store, resource_id, catalog, settings):
    decision = _check(store, resource_id, "2025-06-09", "07:30", "vacunacion", catalog, settings)
    assert decision.code == DenialCode.IN_THE_PAST


def test_window_rules_can_be_skipped(store, resource_id, catalog, settings):
    decision = _check(
        store, resource_id, "2025-06-02", "15:00", "Grooming", catalog, settings, enforce_window=False
    )
    assert decision.allowed


def test_excluded_appointment_does_not_conflict_with_itself(store, resource_id, catalog, settings):
    existing = _book(store, resource_id, datetime(2025, 6, 10, 9, 0), "Grooming")

    decision = _check(
        store, resource_id, "2025-06-10", "10:00", "Grooming", catalog, settings, exclude_appointment_id=existing
    )

    assert decision.allowed


@pytest.mark.parametrize("status", ["pending", "cancelled", "done", "rejected"])
def test_non_blocking_statuses_are_ignored(store, resource_id, catalog, settings, status):
    _book(store, resource_id, datetime(2025, 6, 10, 9, 0), "Grooming", status=status)
    decision = _check(store, resource_id, "2025-06-10", "10:00", "Revision-Consulta", catalog, settings)
    assert decision.allowed


def test_other_resources_and_days_are_ignored(store, resource_id, other_resource_id, catalog, settings):
    _book(store, other_resource_id, datetime(2025, 6, 10, 9, 0), "Grooming")
    _book(store, resource_id, datetime(2025, 6, 11, 9, 0), "Grooming")
    decision = _check(store, resource_id, "2025-06-10", "10:00", "Revision-Consulta", catalog, settings)
    assert decision.allowed


def test_booking_of_unknown_duration_blocks_from_its_start(store, resource_id, catalog, settings):
    existing = _book(store, resource_id, datetime(2025, 6, 10, 11, 0), "retired-service")

    later = _check(store, resource_id, "2025-06-10", "14:00", "vacunacion", catalog, settings)
    earlier = _check(store, resource_id, "2025-06-10", "10:00", "Revision-Consulta", catalog, settings)

    assert not later.allowed
    assert later.conflict.appointment_id == existing
    assert "closing time" in later.reason
    assert earlier.allowed


def test_stored_duration_wins_over_catalog(catalog):
    records = [
        {"id": "a1", "start_at": datetime(2025, 6, 10, 9, 0), "service_type": "Grooming", "duration_minutes": 60},
        {"id": "a2", "start_at": "not a datetime", "service_type": "Grooming"},
    ]
    bookings = bookings_from_records(records, catalog)
    assert bookings == [Booking("a1", datetime(2025, 6, 10, 9, 0), datetime(2025, 6, 10, 10, 0))]


def test_find_conflict_returns_first_overlap():
    bookings = [
        Booking("a", datetime(2025, 6, 10, 9, 0), datetime(2025, 6, 10, 10, 0)),
        Booking("b", datetime(2025, 6, 10, 10, 0), datetime(2025, 6, 10, 11, 0)),
    ]
    conflict = find_conflict(datetime(2025, 6, 10, 9, 30), datetime(2025, 6, 10, 10, 30), bookings)
    assert conflict.appointment_id == "a"


def test_evaluate_is_pure(catalog):
    bookings = [Booking("a", datetime(2025, 6, 10, 9, 0), datetime(2025, 6, 10, 12, 0))]
    first = evaluate_booking(
        datetime(2025, 6, 10, 11, 0), "Revision-Consulta", bookings, catalog=catalog, closing=time(17, 0), now=NOW
    )
    second = evaluate_booking(
        datetime(2025, 6, 10, 11, 0), "Revision-Consulta", bookings, catalog=catalog, closing=time(17, 0), now=NOW
    )
    assert first == second
    assert not first.allowed


def test_missing_resource_is_a_validation_error(store, catalog, settings):
    with pytest.raises(ValidationError):
        _check(store, None, "2025-06-10", "10:00", "Grooming", catalog, settings)


def test_malformed_time_is_a_validation_error(store, resource_id, catalog, settings):
    with pytest.raises(ValidationError):
        _check(store, resource_id, "2025-06-10", "ten", "Grooming", catalog, settings)


def test_read_failure_propagates(store, resource_id, catalog, settings):
    store.fail_next("find", "appointments")
    with pytest.raises(StoreError):
        _check(store, resource_id, "2025-06-10", "10:00", "Grooming", catalog, settings)


def test_scenario_b_grooming_at_half_past_three_runs_past_closing(store, resource_id, catalog, settings):
    decision = _check(store, resource_id, "2025-06-10", "15:30", "Grooming", catalog, settings)

    assert not decision.allowed
    assert decision.code == DenialCode.AFTER_CLOSING
    assert decision.end == datetime(2025, 6, 10, 18, 30)
    assert "18:30" in decision.reason


@pytest.mark.parametrize("at, allowed", [("10:30", False), ("11:00", True), ("09:30", True)])
def test_scenario_c_thirty_minute_service_around_a_ten_to_eleven_booking(
    store, resource_id, catalog, settings, at, allowed
):
    existing = _book(store, resource_id, datetime(2025, 6, 10, 10, 0), "Revision-Consulta")

    decision = _check(store, resource_id, "2025-06-10", at, "vacunacion", catalog, settings)

    assert decision.allowed is allowed
    if not allowed:
        assert decision.code == DenialCode.RESOURCE_OVERLAP
        assert decision.conflict.appointment_id == existing
