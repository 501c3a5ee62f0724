"""SQL access for doctors, patients, appointments, trackers and queue counters.

Every method runs on the connection handed in by the caller, so a service can
group several calls into one transaction (see ``connection_scope``).
"""

from __future__ import annotations

import sqlite3
import uuid
from dataclasses import replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from clinic_queue.models import (
    Appointment,
    AppointmentStatus,
    Doctor,
    LiveTracker,
    Patient,
    format_timestamp,
)

_OPERATORS = {
    "": "=",
    "ne": "!=",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
    "in": "IN",
    "not_in": "NOT IN",
}

DOCTOR_COLUMNS = frozenset(
    {"id", "name", "specialization", "phone", "email", "work_start", "work_end", "is_active", "created_at", "updated_at"}
)
PATIENT_COLUMNS = frozenset(
    {
        "id",
        "name",
        "phone",
        "age",
        "gender",
        "is_verified",
        "otp_hash",
        "otp_expires_at",
        "created_at",
        "updated_at",
    }
)
APPOINTMENT_COLUMNS = frozenset(
    {
        "id",
        "patient_id",
        "doctor_id",
        "appointment_date",
        "time_slot",
        "status",
        "queue_number",
        "estimated_wait_time",
        "actual_start_time",
        "actual_end_time",
        "notes",
        "created_at",
        "updated_at",
    }
)
TRACKER_COLUMNS = frozenset(
    {
        "id",
        "appointment_id",
        "doctor_id",
        "patient_id",
        "appointment_date",
        "queue_number",
        "status",
        "estimated_wait_time",
        "actual_wait_time",
        "start_time",
        "end_time",
        "last_updated",
        "priority",
        "notes",
        "is_active",
        "created_at",
    }
)


def _db_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


def _where(columns: frozenset[str], filters: Mapping[str, Any]) -> tuple[str, list[Any]]:
    """Build a WHERE clause from ``column__op`` style filters."""

    clauses: list[str] = []
    params: list[Any] = []
    for key, value in filters.items():
        column, _, op = key.partition("__")
        if column not in columns or op not in _OPERATORS:
            raise ValueError(f"unsupported filter: {key}")
        sql_op = _OPERATORS[op]
        if op in ("in", "not_in"):
            values = [_db_value(v) for v in value]
            placeholders = ",".join("?" * len(values))
            clauses.append(f"{column} {sql_op} ({placeholders})")
            params.extend(values)
        elif value is None and op in ("", "ne"):
            clauses.append(f"{column} IS {'NOT ' if op == 'ne' else ''}NULL")
        else:
            clauses.append(f"{column} {sql_op} ?")
            params.append(_db_value(value))
    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


def _order(columns: frozenset[str], order_by: Sequence[str]) -> str:
    parts = []
    for item in order_by:
        column = item.lstrip("-")
        if column not in columns:
            raise ValueError(f"unsupported sort column: {item}")
        parts.append(f"{column} {'DESC' if item.startswith('-') else 'ASC'}")
    return " ORDER BY " + ", ".join(parts) if parts else ""


def _assignments(columns: frozenset[str], patch: Mapping[str, Any]) -> tuple[str, list[Any]]:
    unknown = set(patch) - columns
    if unknown:
        raise ValueError(f"unsupported columns: {sorted(unknown)}")
    keys = list(patch)
    return ", ".join(f"{key}=?" for key in keys), [_db_value(patch[key]) for key in keys]


def constraint_reason(exc: sqlite3.IntegrityError) -> str:
    """Name the uniqueness rule an IntegrityError tripped over."""

    message = str(exc)
    if "queue_number" in message:
        return "queue_number"
    if "time_slot" in message:
        return "slot"
    if "appointments.patient_id" in message:
        return "patient_day"
    return "integrity"


class QueueRepository:
    """Persistence collaborator over a raw sqlite3 connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # -- generic helpers -------------------------------------------------

    def _select(
        self,
        table: str,
        columns: frozenset[str],
        filters: Mapping[str, Any],
        order_by: Sequence[str] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[sqlite3.Row]:
        where, params = _where(columns, filters)
        sql = f"SELECT * FROM {table}{where}{_order(columns, order_by)}"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        return self.conn.execute(sql, params).fetchall()

    def _count(self, table: str, columns: frozenset[str], filters: Mapping[str, Any]) -> int:
        where, params = _where(columns, filters)
        return int(self.conn.execute(f"SELECT COUNT(*) FROM {table}{where}", params).fetchone()[0])

    def _insert(self, table: str, columns: frozenset[str], data: Mapping[str, Any]) -> str:
        row = dict(data)
        row.setdefault("id", str(uuid.uuid4()))
        unknown = set(row) - columns
        if unknown:
            raise ValueError(f"unsupported columns: {sorted(unknown)}")
        keys = list(row)
        self.conn.execute(
            f"INSERT INTO {table}({', '.join(keys)}) VALUES ({', '.join('?' * len(keys))})",
            [_db_value(row[key]) for key in keys],
        )
        return row["id"]

    def _update(self, table: str, columns: frozenset[str], row_id: str, patch: Mapping[str, Any]) -> None:
        sets, params = _assignments(columns, patch)
        self.conn.execute(f"UPDATE {table} SET {sets} WHERE id=?", [*params, row_id])

    # -- doctors ---------------------------------------------------------

    def get_doctor(self, doctor_id: str) -> Doctor | None:
        rows = self._select("doctors", DOCTOR_COLUMNS, {"id": doctor_id})
        return Doctor.from_row(rows[0]) if rows else None

    def find_doctor(self, **filters: Any) -> Doctor | None:
        rows = self._select("doctors", DOCTOR_COLUMNS, filters, limit=1)
        return Doctor.from_row(rows[0]) if rows else None

    def list_doctors(self, filters: Mapping[str, Any] | None = None) -> list[Doctor]:
        rows = self._select("doctors", DOCTOR_COLUMNS, filters or {}, order_by=("name",))
        return [Doctor.from_row(row) for row in rows]

    def insert_doctor(self, data: Mapping[str, Any]) -> Doctor:
        doctor_id = self._insert("doctors", DOCTOR_COLUMNS, data)
        return self.get_doctor(doctor_id)  # type: ignore[return-value]

    def update_doctor(self, doctor_id: str, patch: Mapping[str, Any]) -> Doctor | None:
        self._update("doctors", DOCTOR_COLUMNS, doctor_id, patch)
        return self.get_doctor(doctor_id)

    # -- patients --------------------------------------------------------

    def get_patient(self, patient_id: str) -> Patient | None:
        rows = self._select("patients", PATIENT_COLUMNS, {"id": patient_id})
        return Patient.from_row(rows[0]) if rows else None

    def find_patient(self, **filters: Any) -> Patient | None:
        rows = self._select("patients", PATIENT_COLUMNS, filters, limit=1)
        return Patient.from_row(rows[0]) if rows else None

    def insert_patient(self, data: Mapping[str, Any]) -> Patient:
        patient_id = self._insert("patients", PATIENT_COLUMNS, data)
        return self.get_patient(patient_id)  # type: ignore[return-value]

    def update_patient(self, patient_id: str, patch: Mapping[str, Any]) -> Patient | None:
        self._update("patients", PATIENT_COLUMNS, patient_id, patch)
        return self.get_patient(patient_id)

    # -- appointments ----------------------------------------------------

    def get_appointment(self, appointment_id: str) -> Appointment | None:
        return self.find_appointment(id=appointment_id)

    def find_appointment(self, order_by: Sequence[str] = (), **filters: Any) -> Appointment | None:
        rows = self._select("appointments", APPOINTMENT_COLUMNS, filters, order_by=order_by, limit=1)
        return Appointment.from_row(rows[0]) if rows else None

    def list_appointments(
        self,
        filters: Mapping[str, Any],
        order_by: Sequence[str] = ("queue_number",),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Appointment]:
        rows = self._select("appointments", APPOINTMENT_COLUMNS, filters, order_by, limit, offset)
        return [Appointment.from_row(row) for row in rows]

    def count_appointments(self, **filters: Any) -> int:
        return self._count("appointments", APPOINTMENT_COLUMNS, filters)

    def insert_appointment(self, data: Mapping[str, Any]) -> Appointment:
        appointment_id = self._insert("appointments", APPOINTMENT_COLUMNS, data)
        return self.get_appointment(appointment_id)  # type: ignore[return-value]

    def update_appointment(self, appointment_id: str, patch: Mapping[str, Any]) -> Appointment | None:
        self._update("appointments", APPOINTMENT_COLUMNS, appointment_id, patch)
        return self.get_appointment(appointment_id)

    def booked_slots(self, doctor_id: str, day: date) -> set[str]:
        rows = self.conn.execute(
            """
            SELECT time_slot
            FROM appointments
            WHERE doctor_id = ? AND appointment_date = ? AND status != ?
            """,
            (doctor_id, day.isoformat(), AppointmentStatus.CANCELLED.value),
        ).fetchall()
        return {row["time_slot"] for row in rows}

    def max_queue_number(self, doctor_id: str, day: date) -> int:
        row = self.conn.execute(
            "SELECT MAX(queue_number) FROM appointments WHERE doctor_id = ? AND appointment_date = ?",
            (doctor_id, day.isoformat()),
        ).fetchone()
        return int(row[0] or 0)

    def status_counts(self, doctor_id: str, start: date, end: date) -> dict[str, int]:
        rows = self.conn.execute(
            """
            SELECT status, COUNT(*) AS total
            FROM appointments
            WHERE doctor_id = ? AND appointment_date BETWEEN ? AND ?
            GROUP BY status
            """,
            (doctor_id, start.isoformat(), end.isoformat()),
        ).fetchall()
        return {row["status"]: int(row["total"]) for row in rows}

    def consultation_windows(self, doctor_id: str, start: date, end: date) -> list[tuple[str, str]]:
        rows = self.conn.execute(
            """
            SELECT actual_start_time, actual_end_time
            FROM appointments
            WHERE doctor_id = ?
              AND appointment_date BETWEEN ? AND ?
              AND actual_start_time IS NOT NULL
              AND actual_end_time IS NOT NULL
            """,
            (doctor_id, start.isoformat(), end.isoformat()),
        ).fetchall()
        return [(row["actual_start_time"], row["actual_end_time"]) for row in rows]

    # -- queue counters --------------------------------------------------

    def bump_queue_counter(self, doctor_id: str, day: date, floor: int) -> int:
        """Advance the per-doctor/day counter past ``floor`` and return the new value."""

        row = self.conn.execute(
            "SELECT last_queue_number FROM queue_counters WHERE doctor_id=? AND appointment_date=?",
            (doctor_id, day.isoformat()),
        ).fetchone()
        if row:
            next_num = max(int(row["last_queue_number"]), floor) + 1
            self.conn.execute(
                "UPDATE queue_counters SET last_queue_number=? WHERE doctor_id=? AND appointment_date=?",
                (next_num, doctor_id, day.isoformat()),
            )
        else:
            next_num = floor + 1
            self.conn.execute(
                "INSERT INTO queue_counters(doctor_id, appointment_date, last_queue_number) VALUES (?, ?, ?)",
                (doctor_id, day.isoformat(), next_num),
            )
        return next_num

    # -- live trackers ---------------------------------------------------

    def get_tracker_for_appointment(self, appointment_id: str) -> LiveTracker | None:
        rows = self._select("live_trackers", TRACKER_COLUMNS, {"appointment_id": appointment_id})
        return LiveTracker.from_row(rows[0]) if rows else None

    def find_tracker(self, order_by: Sequence[str] = (), **filters: Any) -> LiveTracker | None:
        rows = self._select("live_trackers", TRACKER_COLUMNS, filters, order_by=order_by, limit=1)
        return LiveTracker.from_row(rows[0]) if rows else None

    def list_trackers(
        self,
        filters: Mapping[str, Any],
        order_by: Sequence[str] = ("queue_number",),
        limit: int | None = None,
    ) -> list[LiveTracker]:
        rows = self._select("live_trackers", TRACKER_COLUMNS, filters, order_by, limit)
        return [LiveTracker.from_row(row) for row in rows]

    def insert_tracker(self, data: Mapping[str, Any]) -> LiveTracker:
        tracker_id = self._insert("live_trackers", TRACKER_COLUMNS, data)
        return self.find_tracker(id=tracker_id)  # type: ignore[return-value]

    def update_tracker(self, tracker_id: str, patch: Mapping[str, Any]) -> LiveTracker | None:
        self._update("live_trackers", TRACKER_COLUMNS, tracker_id, patch)
        return self.find_tracker(id=tracker_id)

    def shift_tracker_queue_numbers(
        self, doctor_id: str, removed_queue_number: int, day: date | None, now: datetime
    ) -> int:
        sql = """
            UPDATE live_trackers
            SET queue_number = queue_number - 1, last_updated = ?
            WHERE doctor_id = ?
              AND queue_number > ?
              AND status = ?
              AND is_active = 1
        """
        params: list[Any] = [
            format_timestamp(now),
            doctor_id,
            removed_queue_number,
            AppointmentStatus.WAITING.value,
        ]
        if day is not None:
            sql += " AND appointment_date = ?"
            params.append(day.isoformat())
        return self.conn.execute(sql, params).rowcount

    def recent_consult_windows(self, doctor_id: str, limit: int) -> list[tuple[str, str]]:
        rows = self.conn.execute(
            """
            SELECT start_time, end_time
            FROM live_trackers
            WHERE doctor_id = ?
              AND status = ?
              AND start_time IS NOT NULL
              AND end_time IS NOT NULL
            ORDER BY end_time DESC
            LIMIT ?
            """,
            (doctor_id, AppointmentStatus.COMPLETED.value, limit),
        ).fetchall()
        return [(row["start_time"], row["end_time"]) for row in rows]

    # -- summaries -------------------------------------------------------

    def attach_summaries(self, appointments: Iterable[Appointment]) -> list[Appointment]:
        """Populate patient/doctor summary fields on each appointment."""

        appointments = list(appointments)
        patient_ids = sorted({a.patient_id for a in appointments})
        doctor_ids = sorted({a.doctor_id for a in appointments})
        patients = {p.id: p.summary() for p in self._by_ids("patients", patient_ids, Patient)}
        doctors = {d.id: d.summary() for d in self._by_ids("doctors", doctor_ids, Doctor)}
        return [
            replace(a, patient=patients.get(a.patient_id), doctor=doctors.get(a.doctor_id))
            for a in appointments
        ]

    def _by_ids(self, table: str, ids: Sequence[str], model):
        if not ids:
            return []
        placeholders = ",".join("?" * len(ids))
        rows = self.conn.execute(f"SELECT * FROM {table} WHERE id IN ({placeholders})", list(ids)).fetchall()
        return [model.from_row(row) for row in rows]
