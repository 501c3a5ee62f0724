"""Doctor administration: registration, working hours and activation."""

from __future__ import annotations

import logging
import re
from typing import Any

from clinic_queue.models import Doctor
from clinic_queue.services.database import Connect, connection_scope
from clinic_queue.services.errors import ConflictError, NotFoundError, ValidationError
from clinic_queue.services.patients import normalize_name, normalize_phone
from clinic_queue.services.repository import QueueRepository
from clinic_queue.services.results import returns_result
from clinic_queue.services.settings import Clock, local_now
from clinic_queue.services.time_slots import normalize_slot

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DEFAULT_HOURS = ("09:00", "13:00")


def _email(value: str | None) -> str:
    email = (value or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("invalid_email", "A valid email address is required")
    return email


def _hours(start: str | None, end: str | None) -> tuple[str, str]:
    try:
        start_value = normalize_slot(start or DEFAULT_HOURS[0])
        end_value = normalize_slot(end or DEFAULT_HOURS[1])
    except ValidationError as exc:
        raise ValidationError("invalid_working_hours", "Working hours must use HH:MM") from exc
    if start_value >= end_value:
        raise ValidationError("invalid_working_hours", "Working hours must start before they end")
    return start_value, end_value


def _specialization(value: str | None) -> str:
    specialization = (value or "").strip()
    if not specialization:
        raise ValidationError("specialization_required", "Specialization is required")
    return specialization


class DoctorService:
    def __init__(self, connect: Connect, *, clock: Clock = local_now) -> None:
        self._connect = connect
        self._clock = clock

    def _existing(self, repo: QueueRepository, doctor_id: str) -> Doctor:
        doctor = repo.get_doctor(doctor_id)
        if doctor is None:
            raise NotFoundError("doctor_not_found", "Doctor not found")
        return doctor

    @returns_result("register_doctor")
    def register_doctor(
        self,
        name: str,
        specialization: str,
        phone: str,
        email: str,
        work_start: str | None = None,
        work_end: str | None = None,
    ) -> Doctor:
        data: dict[str, Any] = {
            "name": normalize_name(name),
            "specialization": _specialization(specialization),
            "phone": normalize_phone(phone),
            "email": _email(email),
        }
        data["work_start"], data["work_end"] = _hours(work_start, work_end)
        now = self._clock()
        with connection_scope(self._connect, immediate=True) as conn:
            repo = QueueRepository(conn)
            if repo.find_doctor(phone=data["phone"]):
                raise ConflictError("doctor_phone_taken", "A doctor with this phone already exists")
            if repo.find_doctor(email=data["email"]):
                raise ConflictError("doctor_email_taken", "A doctor with this email already exists")
            doctor = repo.insert_doctor({**data, "is_active": True, "created_at": now, "updated_at": now})
        logger.info("registered doctor %s (%s)", doctor.id, doctor.specialization)
        return doctor

    @returns_result("update_doctor")
    def update_doctor(
        self,
        doctor_id: str,
        *,
        name: str | None = None,
        specialization: str | None = None,
        work_start: str | None = None,
        work_end: str | None = None,
    ) -> Doctor:
        now = self._clock()
        with connection_scope(self._connect, immediate=True) as conn:
            repo = QueueRepository(conn)
            doctor = self._existing(repo, doctor_id)
            patch: dict[str, Any] = {"updated_at": now}
            if name is not None:
                patch["name"] = normalize_name(name)
            if specialization is not None:
                patch["specialization"] = _specialization(specialization)
            if work_start is not None or work_end is not None:
                patch["work_start"], patch["work_end"] = _hours(
                    work_start or doctor.work_start, work_end or doctor.work_end
                )
            return repo.update_doctor(doctor_id, patch)  # type: ignore[return-value]

    @returns_result("set_doctor_active")
    def set_active(self, doctor_id: str, active: bool) -> Doctor:
        now = self._clock()
        with connection_scope(self._connect, immediate=True) as conn:
            repo = QueueRepository(conn)
            self._existing(repo, doctor_id)
            doctor = repo.update_doctor(doctor_id, {"is_active": bool(active), "updated_at": now})
        logger.info("doctor %s active=%s", doctor_id, bool(active))
        return doctor  # type: ignore[return-value]

    @returns_result("get_doctor")
    def get_doctor(self, doctor_id: str) -> Doctor:
        with connection_scope(self._connect) as conn:
            return self._existing(QueueRepository(conn), doctor_id)

    @returns_result("list_doctors", degrade=list)
    def list_doctors(self, specialization: str | None = None, active_only: bool = False) -> list[Doctor]:
        filters: dict[str, Any] = {}
        if specialization:
            filters["specialization"] = specialization.strip()
        if active_only:
            filters["is_active"] = True
        with connection_scope(self._connect) as conn:
            return QueueRepository(conn).list_doctors(filters)
