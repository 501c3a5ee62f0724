"""Bootstrap helper to ensure the queue tables exist for first-time runs."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Iterable

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS doctors (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        specialization TEXT NOT NULL,
        phone TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL UNIQUE,
        work_start TEXT NOT NULL DEFAULT '09:00',
        work_end TEXT NOT NULL DEFAULT '13:00',
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL DEFAULT (datetime('now')),
        updated_at TEXT NOT NULL DEFAULT (datetime('now')),
        CHECK(length(name) <= 50),
        CHECK(work_start < work_end)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS patients (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        phone TEXT NOT NULL UNIQUE,
        age INTEGER,
        gender TEXT,
        is_verified INTEGER NOT NULL DEFAULT 0,
        otp_hash TEXT,
        otp_expires_at TEXT,
        created_at TEXT NOT NULL DEFAULT (datetime('now')),
        updated_at TEXT NOT NULL DEFAULT (datetime('now')),
        CHECK(length(name) <= 50),
        CHECK(age IS NULL OR age BETWEEN 1 AND 120),
        CHECK(gender IS NULL OR gender IN ('male','female','other'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS appointments (
        id TEXT PRIMARY KEY,
        patient_id TEXT NOT NULL,
        doctor_id TEXT NOT NULL,
        appointment_date TEXT NOT NULL,
        time_slot TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'waiting',
        queue_number INTEGER NOT NULL,
        estimated_wait_time INTEGER NOT NULL DEFAULT 0,
        actual_start_time TEXT,
        actual_end_time TEXT,
        notes TEXT,
        created_at TEXT NOT NULL DEFAULT (datetime('now')),
        updated_at TEXT NOT NULL DEFAULT (datetime('now')),
        FOREIGN KEY(patient_id) REFERENCES patients(id),
        FOREIGN KEY(doctor_id) REFERENCES doctors(id),
        CHECK(status IN ('waiting','in-progress','completed','cancelled')),
        CHECK(queue_number > 0),
        CHECK(notes IS NULL OR length(notes) <= 500)
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_doctor_slot
    ON appointments(doctor_id, appointment_date, time_slot)
    WHERE status != 'cancelled'
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_patient_day
    ON appointments(patient_id, appointment_date)
    WHERE status != 'cancelled'
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_queue_number
    ON appointments(doctor_id, appointment_date, queue_number)
    """,
    "CREATE INDEX IF NOT EXISTS idx_appointments_status ON appointments(status)",
    "CREATE INDEX IF NOT EXISTS idx_appointments_doctor_day ON appointments(doctor_id, appointment_date)",
    "CREATE INDEX IF NOT EXISTS idx_appointments_patient ON appointments(patient_id)",
    "CREATE INDEX IF NOT EXISTS idx_appointments_created ON appointments(created_at)",
    """
    CREATE TABLE IF NOT EXISTS live_trackers (
        id TEXT PRIMARY KEY,
        appointment_id TEXT NOT NULL UNIQUE,
        doctor_id TEXT NOT NULL,
        patient_id TEXT NOT NULL,
        appointment_date TEXT NOT NULL,
        queue_number INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'waiting',
        estimated_wait_time INTEGER NOT NULL DEFAULT 0,
        actual_wait_time INTEGER NOT NULL DEFAULT 0,
        start_time TEXT,
        end_time TEXT,
        last_updated TEXT,
        priority INTEGER NOT NULL DEFAULT 0,
        notes TEXT NOT NULL DEFAULT '',
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL DEFAULT (datetime('now')),
        FOREIGN KEY(appointment_id) REFERENCES appointments(id),
        CHECK(status IN ('waiting','in-progress','completed','cancelled'))
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_trackers_doctor_status ON live_trackers(doctor_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_trackers_doctor_queue ON live_trackers(doctor_id, queue_number)",
    "CREATE INDEX IF NOT EXISTS idx_trackers_patient ON live_trackers(patient_id)",
    "CREATE INDEX IF NOT EXISTS idx_trackers_active ON live_trackers(is_active)",
    """
    CREATE TABLE IF NOT EXISTS queue_counters (
        doctor_id TEXT NOT NULL,
        appointment_date TEXT NOT NULL,
        last_queue_number INTEGER NOT NULL,
        PRIMARY KEY (doctor_id, appointment_date)
    )
    """,
)


def _execute_statements(conn: sqlite3.Connection, statements: Iterable[str]) -> None:
    for stmt in statements:
        conn.execute(stmt)


def ensure_base_tables(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA foreign_keys=ON")
    try:
        _execute_statements(conn, SCHEMA_STATEMENTS)
        conn.commit()
    finally:
        conn.close()
