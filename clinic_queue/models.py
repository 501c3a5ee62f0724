"""Row models for doctors, patients, appointments and live queue trackers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

ISO_FMT = "%Y-%m-%dT%H:%M:%S"
DAY_FMT = "%Y-%m-%d"


class AppointmentStatus(str, Enum):
    WAITING = "waiting"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return _TERMINAL[self]

    @property
    def is_active(self) -> bool:
        return not _TERMINAL[self]


# Whether each status closes the appointment.
_TERMINAL: dict[AppointmentStatus, bool] = {
    AppointmentStatus.WAITING: False,
    AppointmentStatus.IN_PROGRESS: False,
    AppointmentStatus.COMPLETED: True,
    AppointmentStatus.CANCELLED: True,
}

ACTIVE_STATUSES = tuple(s for s in AppointmentStatus if s.is_active)
GENDERS = ("male", "female", "other")


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.strptime(value[:19], ISO_FMT)


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.replace(microsecond=0).strftime(ISO_FMT)


def _minutes_between(start: datetime, end: datetime) -> int:
    return int(round((end - start).total_seconds() / 60))


@dataclass(frozen=True)
class Doctor:
    id: str
    name: str
    specialization: str
    phone: str
    email: str
    work_start: str = "09:00"
    work_end: str = "13:00"
    is_active: bool = True
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Doctor":
        return cls(
            id=row["id"],
            name=row["name"],
            specialization=row["specialization"],
            phone=row["phone"],
            email=row["email"],
            work_start=row["work_start"],
            work_end=row["work_end"],
            is_active=bool(row["is_active"]),
            created_at=parse_timestamp(row["created_at"]),
        )

    def summary(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "specialization": self.specialization}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "specialization": self.specialization,
            "phone": self.phone,
            "email": self.email,
            "working_hours": {"start": self.work_start, "end": self.work_end},
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class Patient:
    id: str
    name: str
    phone: str
    age: int | None = None
    gender: str | None = None
    is_verified: bool = False
    otp_hash: str | None = field(default=None, repr=False)
    otp_expires_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Patient":
        return cls(
            id=row["id"],
            name=row["name"],
            phone=row["phone"],
            age=row["age"],
            gender=row["gender"],
            is_verified=bool(row["is_verified"]),
            otp_hash=row["otp_hash"],
            otp_expires_at=parse_timestamp(row["otp_expires_at"]),
            created_at=parse_timestamp(row["created_at"]),
        )

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "age": self.age,
            "gender": self.gender,
            "phone": self.phone,
        }

    def to_dict(self) -> dict[str, Any]:
        return {**self.summary(), "is_verified": self.is_verified}


@dataclass(frozen=True)
class Appointment:
    id: str
    patient_id: str
    doctor_id: str
    appointment_date: date
    time_slot: str
    status: AppointmentStatus
    queue_number: int
    estimated_wait_time: int = 0
    actual_start_time: datetime | None = None
    actual_end_time: datetime | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    patient: dict[str, Any] | None = None
    doctor: dict[str, Any] | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Appointment":
        return cls(
            id=row["id"],
            patient_id=row["patient_id"],
            doctor_id=row["doctor_id"],
            appointment_date=date.fromisoformat(row["appointment_date"]),
            time_slot=row["time_slot"],
            status=AppointmentStatus(row["status"]),
            queue_number=int(row["queue_number"]),
            estimated_wait_time=int(row["estimated_wait_time"] or 0),
            actual_start_time=parse_timestamp(row["actual_start_time"]),
            actual_end_time=parse_timestamp(row["actual_end_time"]),
            notes=row["notes"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )

    @property
    def queue_label(self) -> str:
        return f"A{self.queue_number:02d}"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "patient_id": self.patient_id,
            "doctor_id": self.doctor_id,
            "appointment_date": self.appointment_date.isoformat(),
            "time_slot": self.time_slot,
            "status": self.status.value,
            "queue_number": self.queue_number,
            "queue_label": self.queue_label,
            "estimated_wait_time": self.estimated_wait_time,
            "actual_start_time": format_timestamp(self.actual_start_time),
            "actual_end_time": format_timestamp(self.actual_end_time),
            "duration": appointment_duration(self),
            "notes": self.notes,
            "created_at": format_timestamp(self.created_at),
        }
        if self.patient is not None:
            payload["patient"] = self.patient
        if self.doctor is not None:
            payload["doctor"] = self.doctor
        return payload


@dataclass(frozen=True)
class LiveTracker:
    id: str
    appointment_id: str
    doctor_id: str
    patient_id: str
    appointment_date: date
    queue_number: int
    status: AppointmentStatus = AppointmentStatus.WAITING
    estimated_wait_time: int = 0
    actual_wait_time: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None
    last_updated: datetime | None = None
    priority: int = 0
    notes: str = ""
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LiveTracker":
        return cls(
            id=row["id"],
            appointment_id=row["appointment_id"],
            doctor_id=row["doctor_id"],
            patient_id=row["patient_id"],
            appointment_date=date.fromisoformat(row["appointment_date"]),
            queue_number=int(row["queue_number"]),
            status=AppointmentStatus(row["status"]),
            estimated_wait_time=int(row["estimated_wait_time"] or 0),
            actual_wait_time=int(row["actual_wait_time"] or 0),
            start_time=parse_timestamp(row["start_time"]),
            end_time=parse_timestamp(row["end_time"]),
            last_updated=parse_timestamp(row["last_updated"]),
            priority=int(row["priority"] or 0),
            notes=row["notes"] or "",
            is_active=bool(row["is_active"]),
        )

    def to_dict(self, now: datetime | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "appointment_id": self.appointment_id,
            "doctor_id": self.doctor_id,
            "patient_id": self.patient_id,
            "appointment_date": self.appointment_date.isoformat(),
            "queue_number": self.queue_number,
            "status": self.status.value,
            "estimated_wait_time": self.estimated_wait_time,
            "actual_wait_time": self.actual_wait_time,
            "start_time": format_timestamp(self.start_time),
            "end_time": format_timestamp(self.end_time),
            "priority": self.priority,
            "notes": self.notes,
            "is_active": self.is_active,
        }
        if now is not None:
            payload["current_wait_time"] = current_wait_time(self, now)
        return payload


def appointment_duration(appointment: Appointment) -> int | None:
    """Consultation length in minutes once both timestamps are known."""
    if appointment.actual_start_time and appointment.actual_end_time:
        return _minutes_between(appointment.actual_start_time, appointment.actual_end_time)
    return None


def current_wait_time(tracker: LiveTracker, now: datetime) -> int:
    """Minutes a waiting patient has spent in the queue.

    ``start_time`` defaults to the tracker's creation, so while the patient is
    still ``waiting`` this reads as time since booking.
    """
    if tracker.status is AppointmentStatus.WAITING and tracker.start_time:
        return max(0, _minutes_between(tracker.start_time, now))
    return 0
