"""Daily slot grid, availability and booking-window helpers."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
import re
from typing import Iterable, Sequence

from clinic_queue.services.errors import ValidationError

CLOCK_FMT = "%H:%M"
_CLOCK_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


@dataclass(frozen=True)
class Slot:
    time: str
    display_time: str
    available: bool

    def to_dict(self) -> dict[str, object]:
        return {"time": self.time, "display_time": self.display_time, "available": self.available}


def format_clock_label(dt: datetime | time) -> str:
    hour = dt.hour % 12 or 12
    minute = dt.strftime("%M")
    ampm = "PM" if dt.hour >= 12 else "AM"
    return f"{hour}:{minute} {ampm}"


def parse_clock(value: str) -> time:
    """Parse ``H:MM``/``HH:MM`` into a time, rejecting anything else."""

    cleaned = (value or "").strip()
    if not _CLOCK_RE.match(cleaned):
        raise ValidationError("invalid_time_slot", "Time slot must use the HH:MM format")
    hour, minute = cleaned.split(":")
    return time(int(hour), int(minute))


def normalize_slot(value: str) -> str:
    return parse_clock(value).strftime(CLOCK_FMT)


def parse_day(value: date | str | None) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = (value or "").strip()
    try:
        if "T" in text:
            return datetime.fromisoformat(text).date()
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError("invalid_date", "Dates must use the YYYY-MM-DD format") from exc


def generate_slots(
    day: date,
    now: datetime,
    clinic_start: str = "09:00",
    clinic_end: str = "12:00",
    interval_minutes: int = 10,
) -> list[Slot]:
    """Return the fixed slot grid for ``day``.

    Slots start at ``clinic_start`` and stop before ``clinic_end``. A slot is
    only marked unavailable when ``day`` is today and ``now`` is already past
    its start; bookings are applied separately by ``resolve_availability``.
    """

    if interval_minutes <= 0:
        raise ValueError("interval_minutes must be positive")
    current = datetime.combine(day, parse_clock(clinic_start))
    end = datetime.combine(day, parse_clock(clinic_end))
    step = timedelta(minutes=interval_minutes)
    is_today = day == now.date()

    slots: list[Slot] = []
    while current < end:
        slots.append(
            Slot(
                time=current.strftime(CLOCK_FMT),
                display_time=format_clock_label(current),
                available=not (is_today and now > current),
            )
        )
        current += step
    return slots


def resolve_availability(slots: Sequence[Slot], booked_slots: Iterable[str]) -> list[Slot]:
    """Mark slots already booked for the doctor/day as unavailable."""

    booked = set(booked_slots)
    return [replace(slot, available=slot.available and slot.time not in booked) for slot in slots]


def is_within_booking_window(day: date, today: date, window_days: int = 30) -> bool:
    return today <= day <= today + timedelta(days=window_days)
