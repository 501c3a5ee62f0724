from datetime import date

import pytest

from clinic_queue.services.queue_numbers import average_consult_minutes, estimate_wait, next_queue_number
from clinic_queue.services.repository import QueueRepository

DAY = date(2024, 6, 1)


@pytest.mark.parametrize("queue_number,expected", [(1, 0), (2, 15), (3, 30), (10, 135)])
def test_estimate_wait_uses_fixed_average(queue_number, expected):
    assert estimate_wait(queue_number) == expected


def test_estimate_wait_never_negative():
    for queue_number in range(1, 50):
        for avg in (0, 0.5, 7.5, 15, 42):
            assert estimate_wait(queue_number, avg) >= 0


def test_estimate_wait_rejects_zero():
    with pytest.raises(ValueError):
        estimate_wait(0)


def test_counter_starts_at_one_and_persists(raw_conn, doctor):
    repo = QueueRepository(raw_conn)
    assert next_queue_number(repo, doctor.id, DAY) == 1
    assert next_queue_number(repo, doctor.id, DAY) == 2
    assert next_queue_number(repo, doctor.id, date(2024, 6, 2)) == 1
    raw_conn.commit()
    row = raw_conn.execute(
        "SELECT last_queue_number FROM queue_counters WHERE doctor_id=? AND appointment_date=?",
        (doctor.id, DAY.isoformat()),
    ).fetchone()
    assert row["last_queue_number"] == 2


def test_counter_respects_existing_cancelled_numbers(services, clock, doctor, make_patient, raw_conn):
    first = make_patient("First")
    appt = services.appointments.book_appointment(first.id, doctor.id, DAY, "09:00").unwrap()
    services.appointments.cancel_appointment(appt.id, first.id).unwrap()
    raw_conn.execute("DELETE FROM queue_counters")
    raw_conn.commit()

    assert next_queue_number(QueueRepository(raw_conn), doctor.id, DAY) == 2


def test_average_consult_defaults_without_history(raw_conn, doctor):
    assert average_consult_minutes(QueueRepository(raw_conn), doctor.id, default=12) == 12


def test_average_consult_uses_recent_completed_visits(services, clock, doctor, make_patient, raw_conn):
    for index, minutes in enumerate((10, 20)):
        patient = make_patient(f"Patient {index}")
        appt = services.appointments.book_appointment(patient.id, doctor.id, DAY, f"09:{index}0").unwrap()
        services.appointments.update_status(appt.id, "in-progress").unwrap()
        clock.advance(minutes)
        services.appointments.update_status(appt.id, "completed").unwrap()

    assert average_consult_minutes(QueueRepository(raw_conn), doctor.id) == pytest.approx(15)
