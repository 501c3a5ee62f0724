"""Appointment booking, lifecycle and doctor-side queue operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging
import sqlite3
from typing import Any, Callable

from clinic_queue.models import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    parse_timestamp,
)
from clinic_queue.services.database import Connect, connection_scope
from clinic_queue.services.errors import (
    ConflictError,
    InvalidTransition,
    NotFoundError,
    StateError,
    ValidationError,
)
from clinic_queue.services.live_tracker import next_waiting, open_tracker, sync_tracker_status
from clinic_queue.services.notifications import EventSink, LoggingEventSink, StatusEvent
from clinic_queue.services.queue_numbers import average_consult_minutes, estimate_wait, next_queue_number
from clinic_queue.services.repository import QueueRepository, constraint_reason
from clinic_queue.services.results import returns_result
from clinic_queue.services.settings import Clock, SchedulingSettings, local_now
from clinic_queue.services.time_slots import (
    Slot,
    generate_slots,
    is_within_booking_window,
    normalize_slot,
    parse_day,
    resolve_availability,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
STATS_DEFAULT_DAYS = 30

_STATUS_ORDER: dict[AppointmentStatus, int] = {
    AppointmentStatus.WAITING: 0,
    AppointmentStatus.IN_PROGRESS: 1,
    AppointmentStatus.COMPLETED: 2,
    AppointmentStatus.CANCELLED: 3,
}


def _no_timestamps(appointment: Appointment, now: datetime) -> dict[str, Any]:
    return {}


def _mark_started(appointment: Appointment, now: datetime) -> dict[str, Any]:
    return {} if appointment.actual_start_time else {"actual_start_time": now}


def _mark_finished(appointment: Appointment, now: datetime) -> dict[str, Any]:
    return {} if appointment.actual_end_time else {"actual_end_time": now}


_TIMESTAMP_EFFECTS: dict[AppointmentStatus, Callable[[Appointment, datetime], dict[str, Any]]] = {
    AppointmentStatus.WAITING: _no_timestamps,
    AppointmentStatus.IN_PROGRESS: _mark_started,
    AppointmentStatus.COMPLETED: _mark_finished,
    AppointmentStatus.CANCELLED: _no_timestamps,
}


def check_transition(current: AppointmentStatus, new: AppointmentStatus) -> None:
    """Allow forward (or same-state) moves and cancellation of open appointments."""

    if current.is_terminal:
        raise InvalidTransition("terminal_status", f"Appointment is already {current.value}")
    if new is AppointmentStatus.CANCELLED:
        return
    if _STATUS_ORDER[new] < _STATUS_ORDER[current]:
        raise InvalidTransition(
            "backward_transition", f"Cannot move an appointment from {current.value} to {new.value}"
        )


def parse_status(value: AppointmentStatus | str | None) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    try:
        return AppointmentStatus((value or "").strip())
    except ValueError as exc:
        raise ValidationError("invalid_status", f"Unknown appointment status: {value!r}") from exc


@dataclass(frozen=True)
class Page:
    items: list[Appointment]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.total else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "appointments": [item.to_dict() for item in self.items],
            "pagination": {
                "current": self.page,
                "limit": self.limit,
                "pages": self.pages,
                "total": self.total,
            },
        }


def _paging(page: int, limit: int) -> tuple[int, int]:
    try:
        page, limit = int(page), int(limit)
    except (TypeError, ValueError) as exc:
        raise ValidationError("invalid_pagination", "page and limit must be integers") from exc
    if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError("invalid_pagination", f"page must be >= 1 and limit 1-{MAX_PAGE_SIZE}")
    return page, limit


def _status_filter(status: str | None) -> dict[str, Any]:
    if not status or status == "all":
        return {}
    return {"status": parse_status(status)}


def _require(value: Any, name: str) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("missing_fields", f"{name} is required")


class AppointmentService:
    """Booking and status changes for appointments and their tracker rows."""

    def __init__(
        self,
        connect: Connect,
        *,
        settings: SchedulingSettings | None = None,
        clock: Clock = local_now,
        events: EventSink | None = None,
    ) -> None:
        self._connect = connect
        self._settings = settings or SchedulingSettings()
        self._clock = clock
        self._events = events or LoggingEventSink()

    # -- helpers ---------------------------------------------------------

    def _slots_for(self, day: date, now: datetime) -> list[Slot]:
        return generate_slots(
            day,
            now,
            self._settings.clinic_start,
            self._settings.clinic_end,
            self._settings.slot_minutes,
        )

    def _check_notes(self, notes: str | None) -> None:
        if notes is not None and len(notes) > self._settings.notes_max_length:
            raise ValidationError(
                "notes_too_long", f"Notes cannot exceed {self._settings.notes_max_length} characters"
            )

    def _active_doctor(self, repo: QueueRepository, doctor_id: str):
        doctor = repo.get_doctor(doctor_id)
        if doctor is None:
            raise NotFoundError("doctor_not_found", "Doctor not found")
        if not doctor.is_active:
            raise ValidationError("doctor_inactive", "Doctor is not accepting appointments")
        return doctor

    def _doctor(self, repo: QueueRepository, doctor_id: str):
        doctor = repo.get_doctor(doctor_id)
        if doctor is None:
            raise NotFoundError("doctor_not_found", "Doctor not found")
        return doctor

    def _publish(self, appointment: Appointment, now: datetime) -> None:
        event = StatusEvent(
            appointment_id=appointment.id,
            doctor_id=appointment.doctor_id,
            patient_id=appointment.patient_id,
            new_status=appointment.status,
            timestamp=now,
        )
        try:
            self._events.publish(event)
        except Exception:
            logger.exception("status event for appointment %s was not delivered", appointment.id)

    def _with_summary(self, repo: QueueRepository, appointment: Appointment) -> Appointment:
        return repo.attach_summaries([appointment])[0]

    def _move(
        self,
        repo: QueueRepository,
        appointment: Appointment,
        new_status: AppointmentStatus,
        now: datetime,
        notes: str | None = None,
    ) -> Appointment:
        check_transition(appointment.status, new_status)
        patch: dict[str, Any] = {
            "status": new_status,
            "updated_at": now,
            **_TIMESTAMP_EFFECTS[new_status](appointment, now),
        }
        if notes is not None:
            patch["notes"] = notes
        updated = repo.update_appointment(appointment.id, patch)
        sync_tracker_status(repo, updated, new_status, now, notes)  # type: ignore[arg-type]
        return updated  # type: ignore[return-value]

    # -- patient side ----------------------------------------------------

    @returns_result("book_appointment")
    def book_appointment(
        self,
        patient_id: str,
        doctor_id: str,
        day: date | str,
        time_slot: str,
        notes: str | None = None,
    ) -> Appointment:
        for name, value in (
            ("patient_id", patient_id),
            ("doctor_id", doctor_id),
            ("appointment_date", day),
            ("time_slot", time_slot),
        ):
            _require(value, name)
        booking_day = parse_day(day)
        slot = normalize_slot(time_slot)
        self._check_notes(notes)
        now = self._clock()
        if not is_within_booking_window(booking_day, now.date(), self._settings.booking_window_days):
            raise ValidationError(
                "invalid_booking_date",
                f"Invalid booking date: choose a day within the next {self._settings.booking_window_days} days",
            )

        for attempt in range(1, self._settings.allocation_retries + 1):
            try:
                with connection_scope(self._connect, immediate=True) as conn:
                    appointment = self._book_once(
                        QueueRepository(conn), patient_id, doctor_id, booking_day, slot, notes, now
                    )
            except sqlite3.IntegrityError as exc:
                reason = constraint_reason(exc)
                if reason == "queue_number":
                    logger.warning(
                        "queue number collision for doctor %s on %s (attempt %s)", doctor_id, booking_day, attempt
                    )
                    continue
                if reason == "slot":
                    raise ConflictError("slot_unavailable", "This time slot is no longer available") from exc
                if reason == "patient_day":
                    raise ConflictError(
                        "already_booked_on_date", "You already have an appointment on this date"
                    ) from exc
                raise
            logger.info(
                "booked %s with doctor %s on %s at %s (queue %s)",
                appointment.id,
                doctor_id,
                booking_day,
                slot,
                appointment.queue_number,
            )
            self._publish(appointment, now)
            return appointment
        raise ConflictError("queue_allocation_failed", "Could not allocate a queue number, please retry")

    def _book_once(
        self,
        repo: QueueRepository,
        patient_id: str,
        doctor_id: str,
        day: date,
        slot: str,
        notes: str | None,
        now: datetime,
    ) -> Appointment:
        patient = repo.get_patient(patient_id)
        if patient is None:
            raise NotFoundError("patient_not_found", "Patient not found")
        if not patient.is_verified:
            raise ValidationError("patient_not_verified", "Verify your phone number before booking")
        self._active_doctor(repo, doctor_id)

        slots = {s.time: s for s in resolve_availability(self._slots_for(day, now), repo.booked_slots(doctor_id, day))}
        if slot not in slots:
            raise ValidationError("slot_off_grid", f"{slot} is not a bookable slot")
        if not slots[slot].available:
            raise ConflictError("slot_unavailable", "This time slot is no longer available")
        if repo.find_appointment(
            patient_id=patient_id, appointment_date=day, status__ne=AppointmentStatus.CANCELLED
        ):
            raise ConflictError("already_booked_on_date", "You already have an appointment on this date")

        queue_number = next_queue_number(repo, doctor_id, day)
        appointment = repo.insert_appointment(
            {
                "patient_id": patient_id,
                "doctor_id": doctor_id,
                "appointment_date": day,
                "time_slot": slot,
                "status": AppointmentStatus.WAITING,
                "queue_number": queue_number,
                "estimated_wait_time": estimate_wait(queue_number, self._settings.average_consult_minutes),
                "notes": notes,
                "created_at": now,
                "updated_at": now,
            }
        )
        open_tracker(repo, appointment, now)
        return self._with_summary(repo, appointment)

    @returns_result("cancel_appointment")
    def cancel_appointment(self, appointment_id: str, patient_id: str) -> Appointment:
        now = self._clock()
        with connection_scope(self._connect, immediate=True) as conn:
            repo = QueueRepository(conn)
            appointment = repo.find_appointment(id=appointment_id, patient_id=patient_id)
            if appointment is None:
                raise NotFoundError("appointment_not_found", "Appointment not found")
            if appointment.status.is_terminal:
                raise StateError(
                    f"already_{appointment.status.value}",
                    f"Appointment is already {appointment.status.value}",
                )
            cancelled = self._with_summary(repo, self._move(repo, appointment, AppointmentStatus.CANCELLED, now))
        self._publish(cancelled, now)
        return cancelled

    @returns_result("get_appointment")
    def get_appointment(self, appointment_id: str, patient_id: str) -> Appointment:
        with connection_scope(self._connect) as conn:
            repo = QueueRepository(conn)
            appointment = repo.find_appointment(id=appointment_id, patient_id=patient_id)
            if appointment is None:
                raise NotFoundError("appointment_not_found", "Appointment not found")
            return self._with_summary(repo, appointment)

    @returns_result("list_patient_appointments")
    def list_patient_appointments(
        self, patient_id: str, status: str | None = "all", page: int = 1, limit: int = 10
    ) -> Page:
        page, limit = _paging(page, limit)
        filters = {"patient_id": patient_id, **_status_filter(status)}
        with connection_scope(self._connect) as conn:
            repo = QueueRepository(conn)
            total = repo.count_appointments(**filters)
            items = repo.list_appointments(
                filters,
                order_by=("-appointment_date", "-created_at"),
                limit=limit,
                offset=(page - 1) * limit,
            )
            return Page(repo.attach_summaries(items), page, limit, total)

    @returns_result("get_current_status")
    def get_current_status(self, patient_id: str) -> dict[str, Any]:
        today = self._clock().date()
        with connection_scope(self._connect) as conn:
            repo = QueueRepository(conn)
            appointment = repo.find_appointment(
                patient_id=patient_id,
                appointment_date=today,
                status__ne=AppointmentStatus.CANCELLED,
            )
            if appointment is None:
                return {"has_appointment": False, "appointment": None}
            ahead = repo.count_appointments(
                doctor_id=appointment.doctor_id,
                appointment_date=today,
                status__ne=AppointmentStatus.CANCELLED,
                queue_number__lt=appointment.queue_number,
            )
            avg = average_consult_minutes(
                repo,
                appointment.doctor_id,
                self._settings.average_consult_minutes,
                self._settings.consult_sample_size,
            )
            appointment = self._with_summary(repo, appointment)
        position = ahead + 1
        return {
            "has_appointment": True,
            "appointment": appointment.to_dict(),
            "queue_position": position,
            "patients_ahead": ahead,
            "live_wait_estimate": estimate_wait(position, avg),
        }

    @returns_result("get_available_slots", degrade=list)
    def get_available_slots(self, doctor_id: str, day: date | str) -> list[Slot]:
        _require(doctor_id, "doctor_id")
        _require(day, "date")
        slot_day = parse_day(day)
        now = self._clock()
        if not is_within_booking_window(slot_day, now.date(), self._settings.booking_window_days):
            raise ValidationError("invalid_booking_date", "Slots are only offered inside the booking window")
        with connection_scope(self._connect) as conn:
            repo = QueueRepository(conn)
            self._active_doctor(repo, doctor_id)
            booked = repo.booked_slots(doctor_id, slot_day)
        return resolve_availability(self._slots_for(slot_day, now), booked)

    # -- doctor side -----------------------------------------------------

    @returns_result("update_status")
    def update_status(
        self, appointment_id: str, new_status: AppointmentStatus | str, notes: str | None = None
    ) -> Appointment:
        status = parse_status(new_status)
        self._check_notes(notes)
        now = self._clock()
        with connection_scope(self._connect, immediate=True) as conn:
            repo = QueueRepository(conn)
            appointment = repo.get_appointment(appointment_id)
            if appointment is None:
                raise NotFoundError("appointment_not_found", "Appointment not found")
            updated = self._with_summary(repo, self._move(repo, appointment, status, now, notes))
        logger.info("appointment %s moved to %s", appointment_id, status.value)
        self._publish(updated, now)
        return updated

    @returns_result("get_doctor_queue")
    def get_doctor_queue(self, doctor_id: str, day: date | str | None = None) -> list[Appointment]:
        queue_day = parse_day(day) if day else self._clock().date()
        with connection_scope(self._connect) as conn:
            repo = QueueRepository(conn)
            self._doctor(repo, doctor_id)
            items = repo.list_appointments(
                {"doctor_id": doctor_id, "appointment_date": queue_day, "status__in": ACTIVE_STATUSES},
                order_by=("queue_number",),
            )
            return repo.attach_summaries(items)

    @returns_result("get_next_patient")
    def get_next_patient(self, doctor_id: str, day: date | str | None = None) -> Appointment | None:
        queue_day = parse_day(day) if day else self._clock().date()
        with connection_scope(self._connect) as conn:
            repo = QueueRepository(conn)
            self._doctor(repo, doctor_id)
            tracker = next_waiting(repo, doctor_id, queue_day)
            if tracker is None:
                return None
            appointment = repo.get_appointment(tracker.appointment_id)
            return self._with_summary(repo, appointment) if appointment else None

    @returns_result("call_next_patient")
    def call_next_patient(self, doctor_id: str, day: date | str | None = None) -> dict[str, Any]:
        """Finish the consultation in progress and start the next waiting one."""

        now = self._clock()
        queue_day = parse_day(day) if day else now.date()
        moved: list[Appointment] = []
        with connection_scope(self._connect, immediate=True) as conn:
            repo = QueueRepository(conn)
            self._doctor(repo, doctor_id)
            finished = None
            for current in repo.list_appointments(
                {
                    "doctor_id": doctor_id,
                    "appointment_date": queue_day,
                    "status": AppointmentStatus.IN_PROGRESS,
                }
            ):
                finished = self._move(repo, current, AppointmentStatus.COMPLETED, now)
                moved.append(finished)
            started = None
            tracker = next_waiting(repo, doctor_id, queue_day)
            if tracker is not None:
                waiting = repo.get_appointment(tracker.appointment_id)
                if waiting is not None:
                    started = self._move(repo, waiting, AppointmentStatus.IN_PROGRESS, now)
                    moved.append(started)
            summaries = {a.id: a for a in repo.attach_summaries(moved)}
        for appointment in moved:
            self._publish(appointment, now)
        return {
            "completed": summaries[finished.id] if finished else None,
            "current": summaries[started.id] if started else None,
        }

    @returns_result("get_doctor_stats")
    def get_doctor_stats(
        self, doctor_id: str, start: date | str | None = None, end: date | str | None = None
    ) -> dict[str, Any]:
        end_day = parse_day(end) if end else self._clock().date()
        start_day = parse_day(start) if start else end_day - timedelta(days=STATS_DEFAULT_DAYS)
        if start_day > end_day:
            raise ValidationError("invalid_date_range", "start must not be after end")
        with connection_scope(self._connect) as conn:
            repo = QueueRepository(conn)
            self._doctor(repo, doctor_id)
            counts = repo.status_counts(doctor_id, start_day, end_day)
            windows = repo.consultation_windows(doctor_id, start_day, end_day)
        durations = []
        for start_raw, end_raw in windows:
            started, ended = parse_timestamp(start_raw), parse_timestamp(end_raw)
            if started and ended and ended >= started:
                durations.append((ended - started).total_seconds() / 60)
        by_status = {status.value: counts.get(status.value, 0) for status in AppointmentStatus}
        return {
            "doctor_id": doctor_id,
            "start": start_day.isoformat(),
            "end": end_day.isoformat(),
            "total": sum(by_status.values()),
            "by_status": by_status,
            "average_wait_time": round(sum(durations) / len(durations), 1) if durations else 0,
        }

    @returns_result("list_doctor_appointments")
    def list_doctor_appointments(
        self,
        doctor_id: str,
        day: date | str | None = None,
        status: str | None = "all",
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        page, limit = _paging(page, limit)
        filters: dict[str, Any] = {"doctor_id": doctor_id, **_status_filter(status)}
        if day:
            filters["appointment_date"] = parse_day(day)
        today = self._clock().date()
        with connection_scope(self._connect) as conn:
            repo = QueueRepository(conn)
            self._doctor(repo, doctor_id)
            total = repo.count_appointments(**filters)
            items = repo.list_appointments(
                filters,
                order_by=("-appointment_date", "queue_number"),
                limit=limit,
                offset=(page - 1) * limit,
            )
            counts = repo.status_counts(doctor_id, today, today)
            result = Page(repo.attach_summaries(items), page, limit, total)
        return {
            "page": result,
            "today": {s.value: counts.get(s.value, 0) for s in AppointmentStatus},
        }
