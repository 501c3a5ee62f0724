"""Live queue tracker rows shadowing each active appointment."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
import logging
from typing import Any, Callable

from clinic_queue.models import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    LiveTracker,
)
from clinic_queue.services.database import Connect, connection_scope
from clinic_queue.services.errors import NotFoundError, StateError, ValidationError
from clinic_queue.services.queue_numbers import average_consult_minutes, estimate_wait
from clinic_queue.services.repository import QueueRepository
from clinic_queue.services.results import returns_result
from clinic_queue.services.settings import Clock, SchedulingSettings, local_now
from clinic_queue.services.time_slots import parse_day

logger = logging.getLogger(__name__)


def _keep(tracker: LiveTracker, now: datetime) -> LiveTracker:
    return tracker


def _start(tracker: LiveTracker, now: datetime) -> LiveTracker:
    return replace(tracker, start_time=now)


def _finish(tracker: LiveTracker, now: datetime) -> LiveTracker:
    start = tracker.start_time or now
    waited = max(0, int(round((now - start).total_seconds() / 60)))
    return replace(tracker, end_time=now, is_active=False, actual_wait_time=waited)


_STATUS_EFFECTS: dict[AppointmentStatus, Callable[[LiveTracker, datetime], LiveTracker]] = {
    AppointmentStatus.WAITING: _keep,
    AppointmentStatus.IN_PROGRESS: _start,
    AppointmentStatus.COMPLETED: _finish,
    AppointmentStatus.CANCELLED: _finish,
}


def apply_status(tracker: LiveTracker, new_status: AppointmentStatus, now: datetime) -> LiveTracker:
    """Return ``tracker`` moved to ``new_status`` with its timing fields updated."""

    moved = _STATUS_EFFECTS[new_status](tracker, now)
    return replace(moved, status=new_status, last_updated=now)


def _tracker_patch(tracker: LiveTracker) -> dict[str, Any]:
    return {
        "status": tracker.status,
        "start_time": tracker.start_time,
        "end_time": tracker.end_time,
        "actual_wait_time": tracker.actual_wait_time,
        "is_active": tracker.is_active,
        "last_updated": tracker.last_updated,
        "notes": tracker.notes,
    }


def open_tracker(repo: QueueRepository, appointment: Appointment, now: datetime) -> LiveTracker:
    return repo.insert_tracker(
        {
            "appointment_id": appointment.id,
            "doctor_id": appointment.doctor_id,
            "patient_id": appointment.patient_id,
            "appointment_date": appointment.appointment_date,
            "queue_number": appointment.queue_number,
            "status": appointment.status,
            "estimated_wait_time": appointment.estimated_wait_time,
            "actual_wait_time": 0,
            "start_time": now,
            "last_updated": now,
            "priority": 0,
            "notes": "",
            "is_active": appointment.status.is_active,
            "created_at": now,
        }
    )


def sync_tracker_status(
    repo: QueueRepository,
    appointment: Appointment,
    new_status: AppointmentStatus,
    now: datetime,
    notes: str | None = None,
) -> LiveTracker:
    """Mirror an appointment status change onto its tracker row."""

    tracker = repo.get_tracker_for_appointment(appointment.id)
    if tracker is None:
        logger.warning("appointment %s had no tracker row; opening one", appointment.id)
        tracker = open_tracker(repo, appointment, now)
    moved = apply_status(tracker, new_status, now)
    if notes is not None:
        moved = replace(moved, notes=notes)
    return repo.update_tracker(tracker.id, _tracker_patch(moved))  # type: ignore[return-value]


def current_queue(repo: QueueRepository, doctor_id: str, day: date | None = None) -> list[LiveTracker]:
    filters: dict[str, Any] = {
        "doctor_id": doctor_id,
        "is_active": True,
        "status__in": ACTIVE_STATUSES,
    }
    if day is not None:
        filters["appointment_date"] = day
    return repo.list_trackers(filters, order_by=("appointment_date", "queue_number"))


def next_waiting(repo: QueueRepository, doctor_id: str, day: date | None = None) -> LiveTracker | None:
    filters: dict[str, Any] = {
        "doctor_id": doctor_id,
        "is_active": True,
        "status": AppointmentStatus.WAITING,
    }
    if day is not None:
        filters["appointment_date"] = day
    return repo.find_tracker(order_by=("appointment_date", "-priority", "queue_number"), **filters)


class LiveTrackerService:
    """Queue views and manual adjustments over tracker rows."""

    def __init__(
        self,
        connect: Connect,
        *,
        settings: SchedulingSettings | None = None,
        clock: Clock = local_now,
    ) -> None:
        self._connect = connect
        self._settings = settings or SchedulingSettings()
        self._clock = clock

    @returns_result("get_current_queue", degrade=list)
    def get_current_queue(self, doctor_id: str, day: date | str | None = None) -> list[dict[str, Any]]:
        now = self._clock()
        queue_day = parse_day(day) if day else None
        with connection_scope(self._connect) as conn:
            trackers = current_queue(QueueRepository(conn), doctor_id, queue_day)
        return [tracker.to_dict(now) for tracker in trackers]

    @returns_result("get_next_waiting")
    def get_next_patient(self, doctor_id: str, day: date | str | None = None) -> dict[str, Any] | None:
        queue_day = parse_day(day) if day else None
        with connection_scope(self._connect) as conn:
            tracker = next_waiting(QueueRepository(conn), doctor_id, queue_day)
        return tracker.to_dict(self._clock()) if tracker else None

    @returns_result("update_queue_numbers")
    def update_queue_numbers(
        self, doctor_id: str, removed_queue_number: int, day: date | str | None = None
    ) -> int:
        """Close the gap left by ``removed_queue_number`` in the tracker rows.

        Appointment queue numbers are not touched; only the tracker copy moves.
        """

        if removed_queue_number < 1:
            raise ValidationError("invalid_queue_number", "Queue numbers start at 1")
        with connection_scope(self._connect, immediate=True) as conn:
            shifted = QueueRepository(conn).shift_tracker_queue_numbers(
                doctor_id, removed_queue_number, parse_day(day) if day else None, self._clock()
            )
        logger.info("shifted %s tracker rows for doctor %s", shifted, doctor_id)
        return shifted

    @returns_result("get_live_tracking")
    def get_live_tracking(self, patient_id: str) -> dict[str, Any]:
        now = self._clock()
        with connection_scope(self._connect) as conn:
            repo = QueueRepository(conn)
            tracker = repo.find_tracker(
                order_by=("appointment_date", "queue_number"),
                patient_id=patient_id,
                is_active=True,
                appointment_date__gte=now.date(),
            )
            if tracker is None:
                raise NotFoundError("no_active_tracking", "No active queue tracking found")
            ahead = repo.list_trackers(
                {
                    "doctor_id": tracker.doctor_id,
                    "appointment_date": tracker.appointment_date,
                    "status": AppointmentStatus.WAITING,
                    "is_active": True,
                    "queue_number__lt": tracker.queue_number,
                }
            )
            avg = average_consult_minutes(
                repo,
                tracker.doctor_id,
                self._settings.average_consult_minutes,
                self._settings.consult_sample_size,
            )
        payload = tracker.to_dict(now)
        payload["patients_ahead"] = len(ahead)
        payload["live_wait_estimate"] = estimate_wait(len(ahead) + 1, avg)
        return payload

    @returns_result("set_priority")
    def set_priority(self, appointment_id: str, priority: int) -> dict[str, Any]:
        try:
            priority = int(priority)
        except (TypeError, ValueError) as exc:
            raise ValidationError("invalid_priority", "Priority must be an integer") from exc
        now = self._clock()
        with connection_scope(self._connect, immediate=True) as conn:
            repo = QueueRepository(conn)
            tracker = repo.get_tracker_for_appointment(appointment_id)
            if tracker is None:
                raise NotFoundError("tracker_not_found", "Queue tracker not found")
            if not tracker.is_active:
                raise StateError("tracker_closed", "Cannot reprioritise a finished appointment")
            updated = repo.update_tracker(tracker.id, {"priority": priority, "last_updated": now})
        return updated.to_dict(now)  # type: ignore[union-attr]
