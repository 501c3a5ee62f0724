"""Outbound collaborators: status events and OTP delivery."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from clinic_queue.models import AppointmentStatus, format_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusEvent:
    appointment_id: str
    doctor_id: str
    patient_id: str
    new_status: AppointmentStatus
    timestamp: datetime

    def to_dict(self) -> dict[str, str | None]:
        return {
            "appointment_id": self.appointment_id,
            "doctor_id": self.doctor_id,
            "patient_id": self.patient_id,
            "new_status": self.new_status.value,
            "timestamp": format_timestamp(self.timestamp),
        }


class EventSink(Protocol):
    def publish(self, event: StatusEvent) -> None: ...


class OtpSender(Protocol):
    def send(self, phone: str, code: str) -> None: ...


class LoggingEventSink:
    """Default sink; writes each status change to the application log."""

    def publish(self, event: StatusEvent) -> None:
        logger.info(
            "appointment %s for doctor %s is now %s",
            event.appointment_id,
            event.doctor_id,
            event.new_status.value,
        )


class LoggingOtpSender:
    """Development sender; SMS delivery is handled outside this service."""

    def send(self, phone: str, code: str) -> None:
        logger.info("OTP for %s: %s", phone, code)
