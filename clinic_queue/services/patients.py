"""Patient registration through phone OTP."""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
import re
import secrets
from typing import Any

from werkzeug.security import check_password_hash, generate_password_hash

from clinic_queue.models import GENDERS, Patient
from clinic_queue.services.database import Connect, connection_scope
from clinic_queue.services.errors import NotFoundError, ValidationError
from clinic_queue.services.notifications import LoggingOtpSender, OtpSender
from clinic_queue.services.repository import QueueRepository
from clinic_queue.services.results import returns_result
from clinic_queue.services.settings import Clock, SchedulingSettings, local_now

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^[0-9]{10}$")
NAME_MAX_LENGTH = 50
OTP_DIGITS = 6


def normalize_phone(value: str | None) -> str:
    phone = (value or "").strip()
    if not PHONE_RE.match(phone):
        raise ValidationError("invalid_phone", "Phone number must be exactly 10 digits")
    return phone


def normalize_name(value: str | None) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError("name_required", "Name is required")
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError("name_too_long", f"Name cannot exceed {NAME_MAX_LENGTH} characters")
    return name


def validate_profile(age: Any, gender: str | None) -> tuple[int, str]:
    """Age and gender are mandatory for a verified patient."""

    if age in (None, ""):
        raise ValidationError("age_required", "Age is required")
    try:
        age_value = int(age)
    except (TypeError, ValueError) as exc:
        raise ValidationError("invalid_age", "Age must be a whole number") from exc
    if not 1 <= age_value <= 120:
        raise ValidationError("invalid_age", "Age must be between 1 and 120")
    gender_value = (gender or "").strip().lower()
    if not gender_value:
        raise ValidationError("gender_required", "Gender is required")
    if gender_value not in GENDERS:
        raise ValidationError("invalid_gender", f"Gender must be one of: {', '.join(GENDERS)}")
    return age_value, gender_value


def generate_otp() -> str:
    return f"{secrets.randbelow(10**OTP_DIGITS):0{OTP_DIGITS}d}"


class PatientService:
    def __init__(
        self,
        connect: Connect,
        *,
        settings: SchedulingSettings | None = None,
        clock: Clock = local_now,
        otp_sender: OtpSender | None = None,
    ) -> None:
        self._connect = connect
        self._settings = settings or SchedulingSettings()
        self._clock = clock
        self._otp_sender = otp_sender or LoggingOtpSender()

    def _issue_code(self, now: datetime) -> tuple[str, dict[str, Any]]:
        code = generate_otp()
        expires = now + timedelta(minutes=self._settings.otp_ttl_minutes)
        return code, {"otp_hash": generate_password_hash(code), "otp_expires_at": expires, "updated_at": now}

    def _deliver(self, patient: Patient, code: str) -> dict[str, Any]:
        self._otp_sender.send(patient.phone, code)
        return {
            "patient_id": patient.id,
            "phone": patient.phone,
            "is_verified": patient.is_verified,
            "expires_in_minutes": self._settings.otp_ttl_minutes,
        }

    @returns_result("request_otp")
    def request_otp(self, name: str, phone: str) -> dict[str, Any]:
        name = normalize_name(name)
        phone = normalize_phone(phone)
        now = self._clock()
        code, otp_fields = self._issue_code(now)
        with connection_scope(self._connect, immediate=True) as conn:
            repo = QueueRepository(conn)
            patient = repo.find_patient(phone=phone)
            if patient is None:
                patient = repo.insert_patient({"name": name, "phone": phone, "created_at": now, **otp_fields})
                logger.info("registered patient %s", patient.id)
            else:
                patient = repo.update_patient(patient.id, {"name": name, **otp_fields})
        return self._deliver(patient, code)  # type: ignore[arg-type]

    @returns_result("resend_otp")
    def resend_otp(self, phone: str) -> dict[str, Any]:
        phone = normalize_phone(phone)
        now = self._clock()
        code, otp_fields = self._issue_code(now)
        with connection_scope(self._connect, immediate=True) as conn:
            repo = QueueRepository(conn)
            patient = repo.find_patient(phone=phone)
            if patient is None:
                raise NotFoundError("patient_not_found", "No patient registered with this phone")
            patient = repo.update_patient(patient.id, otp_fields)
        return self._deliver(patient, code)  # type: ignore[arg-type]

    @returns_result("verify_otp")
    def verify_otp(self, phone: str, code: str, age: Any = None, gender: str | None = None) -> Patient:
        phone = normalize_phone(phone)
        code = (code or "").strip()
        if not code:
            raise ValidationError("otp_required", "OTP is required")
        now = self._clock()
        with connection_scope(self._connect, immediate=True) as conn:
            repo = QueueRepository(conn)
            patient = repo.find_patient(phone=phone)
            if patient is None:
                raise NotFoundError("patient_not_found", "No patient registered with this phone")
            if not patient.otp_hash or patient.otp_expires_at is None:
                raise ValidationError("otp_missing", "Request a new OTP first")
            if now > patient.otp_expires_at:
                raise ValidationError("otp_expired", "OTP has expired")
            if not check_password_hash(patient.otp_hash, code):
                raise ValidationError("otp_invalid", "Invalid OTP")
            age_value, gender_value = validate_profile(
                age if age not in (None, "") else patient.age,
                gender or patient.gender,
            )
            verified = repo.update_patient(
                patient.id,
                {
                    "age": age_value,
                    "gender": gender_value,
                    "is_verified": True,
                    "otp_hash": None,
                    "otp_expires_at": None,
                    "updated_at": now,
                },
            )
        logger.info("patient %s verified", patient.id)
        return verified  # type: ignore[return-value]

    @returns_result("get_profile")
    def get_profile(self, patient_id: str) -> Patient:
        with connection_scope(self._connect) as conn:
            patient = QueueRepository(conn).get_patient(patient_id)
        if patient is None:
            raise NotFoundError("patient_not_found", "Patient not found")
        return patient
