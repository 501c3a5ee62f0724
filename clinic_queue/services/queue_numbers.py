"""Per-doctor/day queue number allocation and wait estimates."""

from __future__ import annotations

from datetime import date

from clinic_queue.models import parse_timestamp
from clinic_queue.services.repository import QueueRepository

DEFAULT_CONSULT_MINUTES = 15


def next_queue_number(repo: QueueRepository, doctor_id: str, day: date) -> int:
    """Return the next queue number for ``doctor_id`` on ``day``.

    Cancelled bookings keep their numbers, so the floor is the highest number
    ever issued for the day. Callers must hold the write lock (``BEGIN
    IMMEDIATE``) so the read and the counter bump happen atomically.
    """

    floor = repo.max_queue_number(doctor_id, day)
    return repo.bump_queue_counter(doctor_id, day, floor)


def estimate_wait(queue_number: int, avg_service_minutes: float = DEFAULT_CONSULT_MINUTES) -> int:
    if queue_number < 1:
        raise ValueError("queue_number must be >= 1")
    return int(round(max(0.0, (queue_number - 1) * avg_service_minutes)))


def average_consult_minutes(
    repo: QueueRepository,
    doctor_id: str,
    default: float = DEFAULT_CONSULT_MINUTES,
    sample_size: int = 10,
) -> float:
    """Mean consultation length over the doctor's most recent completed visits."""

    durations = []
    for start_raw, end_raw in repo.recent_consult_windows(doctor_id, sample_size):
        start, end = parse_timestamp(start_raw), parse_timestamp(end_raw)
        if start and end and end >= start:
            durations.append((end - start).total_seconds() / 60)
    if not durations:
        return float(default)
    return sum(durations) / len(durations)
