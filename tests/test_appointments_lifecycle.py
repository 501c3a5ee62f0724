from datetime import date, datetime, timedelta

import pytest

from clinic_queue.models import AppointmentStatus
from clinic_queue.services.appointments import _STATUS_ORDER, _TIMESTAMP_EFFECTS, check_transition
from clinic_queue.services.errors import InvalidTransition, NotFoundError, StateError, ValidationError

TODAY = date(2024, 6, 1)


@pytest.fixture
def three_booked(services, doctor, make_patient):
    booked = []
    for i, slot in enumerate(("09:00", "09:10", "09:20")):
        patient = make_patient(f"Queue {i}")
        booked.append((patient, services.appointments.book_appointment(patient.id, doctor.id, TODAY, slot).unwrap()))
    return booked


def test_status_tables_cover_every_status():
    assert set(_STATUS_ORDER) == set(AppointmentStatus)
    assert set(_TIMESTAMP_EFFECTS) == set(AppointmentStatus)


def test_only_completed_and_cancelled_are_terminal():
    assert [s for s in AppointmentStatus if s.is_terminal] == [AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED]
    assert all(s.is_active != s.is_terminal for s in AppointmentStatus)


@pytest.mark.parametrize(
    "current,new",
    [
        (AppointmentStatus.WAITING, AppointmentStatus.IN_PROGRESS),
        (AppointmentStatus.WAITING, AppointmentStatus.COMPLETED),
        (AppointmentStatus.WAITING, AppointmentStatus.CANCELLED),
        (AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED),
        (AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED),
        (AppointmentStatus.WAITING, AppointmentStatus.WAITING),
    ],
)
def test_allowed_transitions(current, new):
    check_transition(current, new)


@pytest.mark.parametrize(
    "current,new",
    [
        (AppointmentStatus.IN_PROGRESS, AppointmentStatus.WAITING),
        (AppointmentStatus.COMPLETED, AppointmentStatus.WAITING),
        (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED),
        (AppointmentStatus.CANCELLED, AppointmentStatus.WAITING),
        (AppointmentStatus.CANCELLED, AppointmentStatus.CANCELLED),
    ],
)
def test_rejected_transitions(current, new):
    with pytest.raises(InvalidTransition):
        check_transition(current, new)


def test_cancel_keeps_other_queue_numbers(services, doctor, three_booked):
    patient, second = three_booked[1]
    services.appointments.cancel_appointment(second.id, patient.id).unwrap()

    queue = services.appointments.get_doctor_queue(doctor.id, TODAY).unwrap()

    assert [a.queue_number for a in queue] == [1, 3]


def test_terminal_appointments_are_immutable(services, three_booked):
    patient, appt = three_booked[0]
    services.appointments.update_status(appt.id, "completed").unwrap()

    for status in AppointmentStatus:
        result = services.appointments.update_status(appt.id, status)
        assert isinstance(result.error, StateError)
    recancel = services.appointments.cancel_appointment(appt.id, patient.id)
    assert isinstance(recancel.error, StateError)
    assert recancel.error.reason == "already_completed"
    assert services.appointments.get_appointment(appt.id, patient.id).unwrap().status is AppointmentStatus.COMPLETED


def test_double_cancel_is_a_state_error(services, three_booked):
    patient, appt = three_booked[0]
    services.appointments.cancel_appointment(appt.id, patient.id).unwrap()
    result = services.appointments.cancel_appointment(appt.id, patient.id)
    assert result.error.reason == "already_cancelled"


def test_cancel_requires_ownership(services, three_booked):
    owner, appt = three_booked[0]
    other, _ = three_booked[1]
    result = services.appointments.cancel_appointment(appt.id, other.id)
    assert isinstance(result.error, NotFoundError)
    assert isinstance(services.appointments.get_appointment(appt.id, other.id).error, NotFoundError)


def test_progress_and_completion_stamp_times(services, clock, events, three_booked):
    _, appt = three_booked[0]
    clock.set(datetime(2024, 6, 1, 9, 2))
    started = services.appointments.update_status(appt.id, "in-progress").unwrap()
    clock.set(datetime(2024, 6, 1, 9, 14))
    done = services.appointments.update_status(appt.id, AppointmentStatus.COMPLETED, notes="All good").unwrap()

    assert started.actual_start_time == datetime(2024, 6, 1, 9, 2)
    assert done.actual_start_time == datetime(2024, 6, 1, 9, 2)
    assert done.actual_end_time == datetime(2024, 6, 1, 9, 14)
    assert done.to_dict()["duration"] == 12
    assert done.notes == "All good"
    assert [e.new_status for e in events.events][-2:] == [AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED]


def test_update_status_validation(services, three_booked):
    _, appt = three_booked[0]
    assert services.appointments.update_status(appt.id, "done").error.reason == "invalid_status"
    assert services.appointments.update_status(appt.id, "completed", notes="n" * 501).error.reason == "notes_too_long"
    assert isinstance(services.appointments.update_status("missing", "completed").error, NotFoundError)


def test_backward_move_rejected(services, three_booked):
    _, appt = three_booked[0]
    services.appointments.update_status(appt.id, "in-progress").unwrap()
    result = services.appointments.update_status(appt.id, "waiting")
    assert isinstance(result.error, InvalidTransition)
    assert result.error.reason == "backward_transition"


def test_event_sink_failure_does_not_break_update(services, events, three_booked, monkeypatch):
    _, appt = three_booked[0]

    def _boom(event):
        raise RuntimeError("sink down")

    monkeypatch.setattr(events, "publish", _boom)
    assert services.appointments.update_status(appt.id, "in-progress").ok


def test_current_status_reports_position(services, clock, three_booked):
    first_patient, first = three_booked[0]
    third_patient, _ = three_booked[2]
    services.appointments.cancel_appointment(first.id, first_patient.id).unwrap()

    status = services.appointments.get_current_status(third_patient.id).unwrap()

    assert status["has_appointment"] is True
    assert status["appointment"]["queue_number"] == 3
    assert status["queue_position"] == 2
    assert status["patients_ahead"] == 1
    assert status["live_wait_estimate"] == 15


def test_current_status_without_booking_today(services, patient):
    status = services.appointments.get_current_status(patient.id).unwrap()
    assert status == {"has_appointment": False, "appointment": None}


def test_patient_history_is_paginated(services, clock, doctor, patient):
    for offset in range(3):
        services.appointments.book_appointment(
            patient.id, doctor.id, TODAY + timedelta(days=offset), "09:00"
        ).unwrap()

    page = services.appointments.list_patient_appointments(patient.id, page=1, limit=2).unwrap()
    assert page.total == 3
    assert page.pages == 2
    assert [a.appointment_date for a in page.items] == [TODAY + timedelta(days=2), TODAY + timedelta(days=1)]

    second = services.appointments.list_patient_appointments(patient.id, page=2, limit=2).unwrap()
    assert [a.appointment_date for a in second.items] == [TODAY]

    waiting = services.appointments.list_patient_appointments(patient.id, status="completed").unwrap()
    assert waiting.total == 0
    assert services.appointments.list_patient_appointments(patient.id, page=0).error.reason == "invalid_pagination"


def test_available_slots_reflect_bookings(services, clock, doctor, patient):
    clock.set(datetime(2024, 6, 1, 9, 25))
    services.appointments.book_appointment(patient.id, doctor.id, TODAY, "10:00").unwrap()

    slots = services.appointments.get_available_slots(doctor.id, "2024-06-01").unwrap()

    unavailable = {s.time for s in slots if not s.available}
    assert unavailable == {"09:00", "09:10", "09:20", "10:00"}


def test_available_slots_outside_window_rejected(services, doctor):
    result = services.appointments.get_available_slots(doctor.id, "2024-05-31")
    assert result.error.reason == "invalid_booking_date"


def test_available_slots_degrade_on_storage_failure(services, doctor, monkeypatch):
    import sqlite3

    from clinic_queue.services import repository

    def _broken(self, doctor_id, day):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(repository.QueueRepository, "booked_slots", _broken)
    result = services.appointments.get_available_slots(doctor.id, "2024-06-01")
    assert result.ok
    assert result.value == []


def test_storage_failure_on_write_is_infrastructure_error(services, doctor, patient, monkeypatch):
    import sqlite3

    from clinic_queue.services import repository
    from clinic_queue.services.errors import InfrastructureError

    def _broken(self, data):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(repository.QueueRepository, "insert_appointment", _broken)
    result = services.appointments.book_appointment(patient.id, doctor.id, TODAY, "09:00")
    assert isinstance(result.error, InfrastructureError)
    assert services.appointments.get_doctor_queue(doctor.id, TODAY).unwrap() == []


def test_next_patient_and_call_next(services, clock, doctor, three_booked):
    first = services.appointments.get_next_patient(doctor.id).unwrap()
    assert first.queue_number == 1

    moved = services.appointments.call_next_patient(doctor.id).unwrap()
    assert moved["completed"] is None
    assert moved["current"].queue_number == 1
    assert moved["current"].status is AppointmentStatus.IN_PROGRESS

    clock.advance(10)
    moved = services.appointments.call_next_patient(doctor.id).unwrap()
    assert moved["completed"].queue_number == 1
    assert moved["completed"].status is AppointmentStatus.COMPLETED
    assert moved["current"].queue_number == 2


def test_call_next_on_empty_queue(services, doctor):
    moved = services.appointments.call_next_patient(doctor.id).unwrap()
    assert moved == {"completed": None, "current": None}
    assert services.appointments.get_next_patient(doctor.id).unwrap() is None


def test_doctor_stats(services, clock, doctor, three_booked):
    (p0, a0), (p1, a1), _ = three_booked
    services.appointments.update_status(a0.id, "in-progress").unwrap()
    clock.advance(20)
    services.appointments.update_status(a0.id, "completed").unwrap()
    services.appointments.cancel_appointment(a1.id, p1.id).unwrap()

    stats = services.appointments.get_doctor_stats(doctor.id).unwrap()

    assert stats["total"] == 3
    assert stats["by_status"] == {"waiting": 1, "in-progress": 0, "completed": 1, "cancelled": 1}
    assert stats["average_wait_time"] == 20
    assert stats["start"] == "2024-05-02"

    bad = services.appointments.get_doctor_stats(doctor.id, start="2024-06-02", end="2024-06-01")
    assert bad.error.reason == "invalid_date_range"


def test_list_doctor_appointments_with_today_counts(services, doctor, three_booked):
    _, appt = three_booked[0]
    services.appointments.update_status(appt.id, "in-progress").unwrap()

    listing = services.appointments.list_doctor_appointments(doctor.id, status="waiting").unwrap()

    assert listing["page"].total == 2
    assert listing["today"]["in-progress"] == 1
    assert listing["today"]["waiting"] == 2


def test_unknown_doctor_queries(services):
    assert isinstance(services.appointments.get_doctor_queue("ghost").error, NotFoundError)
    assert isinstance(services.appointments.get_doctor_stats("ghost").error, NotFoundError)
    assert isinstance(services.appointments.get_available_slots("ghost", "2024-06-01").error, NotFoundError)


def test_status_value_error_surfaces_as_validation(services):
    result = services.appointments.update_status("whatever", None)
    assert isinstance(result.error, ValidationError)
