"""Doctors, patients, appointments, live trackers and queue counters."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

STATUS_CHECK = "status IN ('waiting','in-progress','completed','cancelled')"


def upgrade() -> None:
    bind = op.get_bind()
    existing = set(sa.inspect(bind).get_table_names())

    if "doctors" not in existing:
        op.create_table(
            "doctors",
            sa.Column("id", sa.Text(), primary_key=True),
            sa.Column("name", sa.Text(), nullable=False),
            sa.Column("specialization", sa.Text(), nullable=False),
            sa.Column("phone", sa.Text(), nullable=False, unique=True),
            sa.Column("email", sa.Text(), nullable=False, unique=True),
            sa.Column("work_start", sa.Text(), nullable=False, server_default="09:00"),
            sa.Column("work_end", sa.Text(), nullable=False, server_default="13:00"),
            sa.Column("is_active", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.Text(), server_default=sa.text("(datetime('now'))"), nullable=False),
            sa.Column("updated_at", sa.Text(), server_default=sa.text("(datetime('now'))"), nullable=False),
            sa.CheckConstraint("length(name) <= 50", name="ck_doctors_name"),
            sa.CheckConstraint("work_start < work_end", name="ck_doctors_hours"),
        )

    if "patients" not in existing:
        op.create_table(
            "patients",
            sa.Column("id", sa.Text(), primary_key=True),
            sa.Column("name", sa.Text(), nullable=False),
            sa.Column("phone", sa.Text(), nullable=False, unique=True),
            sa.Column("age", sa.Integer(), nullable=True),
            sa.Column("gender", sa.Text(), nullable=True),
            sa.Column("is_verified", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("otp_hash", sa.Text(), nullable=True),
            sa.Column("otp_expires_at", sa.Text(), nullable=True),
            sa.Column("created_at", sa.Text(), server_default=sa.text("(datetime('now'))"), nullable=False),
            sa.Column("updated_at", sa.Text(), server_default=sa.text("(datetime('now'))"), nullable=False),
            sa.CheckConstraint("length(name) <= 50", name="ck_patients_name"),
            sa.CheckConstraint("age IS NULL OR age BETWEEN 1 AND 120", name="ck_patients_age"),
            sa.CheckConstraint("gender IS NULL OR gender IN ('male','female','other')", name="ck_patients_gender"),
        )

    if "appointments" not in existing:
        op.create_table(
            "appointments",
            sa.Column("id", sa.Text(), primary_key=True),
            sa.Column("patient_id", sa.Text(), nullable=False),
            sa.Column("doctor_id", sa.Text(), nullable=False),
            sa.Column("appointment_date", sa.Text(), nullable=False),
            sa.Column("time_slot", sa.Text(), nullable=False),
            sa.Column("status", sa.Text(), nullable=False, server_default="waiting"),
            sa.Column("queue_number", sa.Integer(), nullable=False),
            sa.Column("estimated_wait_time", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("actual_start_time", sa.Text(), nullable=True),
            sa.Column("actual_end_time", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.Text(), server_default=sa.text("(datetime('now'))"), nullable=False),
            sa.Column("updated_at", sa.Text(), server_default=sa.text("(datetime('now'))"), nullable=False),
            sa.ForeignKeyConstraint(["patient_id"], ["patients.id"]),
            sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"]),
            sa.CheckConstraint(STATUS_CHECK, name="ck_appointments_status"),
            sa.CheckConstraint("queue_number > 0", name="ck_appointments_queue_number"),
            sa.CheckConstraint("notes IS NULL OR length(notes) <= 500", name="ck_appointments_notes"),
        )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_doctor_slot "
        "ON appointments(doctor_id, appointment_date, time_slot) WHERE status != 'cancelled'"
    )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_patient_day "
        "ON appointments(patient_id, appointment_date) WHERE status != 'cancelled'"
    )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_queue_number "
        "ON appointments(doctor_id, appointment_date, queue_number)"
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_appointments_status ON appointments(status)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_appointments_doctor_day ON appointments(doctor_id, appointment_date)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_appointments_patient ON appointments(patient_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_appointments_created ON appointments(created_at)")

    if "live_trackers" not in existing:
        op.create_table(
            "live_trackers",
            sa.Column("id", sa.Text(), primary_key=True),
            sa.Column("appointment_id", sa.Text(), nullable=False, unique=True),
            sa.Column("doctor_id", sa.Text(), nullable=False),
            sa.Column("patient_id", sa.Text(), nullable=False),
            sa.Column("appointment_date", sa.Text(), nullable=False),
            sa.Column("queue_number", sa.Integer(), nullable=False),
            sa.Column("status", sa.Text(), nullable=False, server_default="waiting"),
            sa.Column("estimated_wait_time", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("actual_wait_time", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("start_time", sa.Text(), nullable=True),
            sa.Column("end_time", sa.Text(), nullable=True),
            sa.Column("last_updated", sa.Text(), nullable=True),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("notes", sa.Text(), nullable=False, server_default=""),
            sa.Column("is_active", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.Text(), server_default=sa.text("(datetime('now'))"), nullable=False),
            sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"]),
            sa.CheckConstraint(STATUS_CHECK, name="ck_live_trackers_status"),
        )
    op.execute("CREATE INDEX IF NOT EXISTS idx_trackers_doctor_status ON live_trackers(doctor_id, status)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_trackers_doctor_queue ON live_trackers(doctor_id, queue_number)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_trackers_patient ON live_trackers(patient_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_trackers_active ON live_trackers(is_active)")

    if "queue_counters" not in existing:
        op.create_table(
            "queue_counters",
            sa.Column("doctor_id", sa.Text(), nullable=False),
            sa.Column("appointment_date", sa.Text(), nullable=False),
            sa.Column("last_queue_number", sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint("doctor_id", "appointment_date"),
        )


def downgrade() -> None:
    op.drop_table("queue_counters")
    op.drop_table("live_trackers")
    op.drop_table("appointments")
    op.drop_table("patients")
    op.drop_table("doctors")
