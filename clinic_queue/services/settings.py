"""Scheduling settings resolved from the Flask config."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Clinic-local wall clock, second precision."""

    return datetime.now().replace(microsecond=0)


@dataclass(frozen=True)
class SchedulingSettings:
    clinic_start: str = "09:00"
    clinic_end: str = "12:00"
    slot_minutes: int = 10
    booking_window_days: int = 30
    average_consult_minutes: int = 15
    consult_sample_size: int = 10
    allocation_retries: int = 3
    notes_max_length: int = 500
    otp_ttl_minutes: int = 10

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SchedulingSettings":
        return cls(
            clinic_start=config.get("CLINIC_OPENS_AT", cls.clinic_start),
            clinic_end=config.get("CLINIC_CLOSES_AT", cls.clinic_end),
            slot_minutes=int(config.get("APPOINTMENT_SLOT_MINUTES", cls.slot_minutes)),
            booking_window_days=int(config.get("BOOKING_WINDOW_DAYS", cls.booking_window_days)),
            average_consult_minutes=int(config.get("AVERAGE_CONSULT_MINUTES", cls.average_consult_minutes)),
            consult_sample_size=int(config.get("CONSULT_SAMPLE_SIZE", cls.consult_sample_size)),
            allocation_retries=max(1, int(config.get("QUEUE_ALLOCATION_RETRIES", cls.allocation_retries))),
            notes_max_length=int(config.get("NOTES_MAX_LENGTH", cls.notes_max_length)),
            otp_ttl_minutes=int(config.get("OTP_TTL_MINUTES", cls.otp_ttl_minutes)),
        )
