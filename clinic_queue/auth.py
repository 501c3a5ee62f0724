"""Flask-Login wiring for OTP-verified patients."""

from __future__ import annotations

from dataclasses import dataclass

from flask import jsonify
from flask_login import LoginManager, UserMixin

from clinic_queue.extensions import queue_services
from clinic_queue.models import Patient

login_manager = LoginManager()


@dataclass
class PatientUser(UserMixin):
    patient: Patient

    def get_id(self) -> str:
        return self.patient.id

    @property
    def is_active(self) -> bool:
        return self.patient.is_verified


@login_manager.user_loader
def load_user(patient_id: str) -> PatientUser | None:
    result = queue_services().patients.get_profile(patient_id)
    if not result.ok or not result.value.is_verified:
        return None
    return PatientUser(result.value)


@login_manager.unauthorized_handler
def unauthorized():
    return (
        jsonify(
            {
                "success": False,
                "error": "unauthorized",
                "reason": "login_required",
                "message": "Verify your phone number to continue",
            }
        ),
        401,
    )
