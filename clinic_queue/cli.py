"""Flask CLI commands for migrations and doctor administration."""

from __future__ import annotations

import click
from alembic import command
from flask import current_app
from flask.cli import AppGroup, with_appcontext

from clinic_queue.extensions import queue_services
from clinic_queue.services.migrations import alembic_config

SEED_DOCTORS = (
    ("Dr. Asha Rao", "General Medicine", "9000000001", "asha.rao@clinic.local"),
    ("Dr. Vikram Shah", "Pediatrics", "9000000002", "vikram.shah@clinic.local"),
    ("Dr. Meera Iyer", "Dermatology", "9000000003", "meera.iyer@clinic.local"),
)


def _unwrap(result):
    if not result.ok:
        raise click.ClickException(f"{result.error.reason}: {result.error.message}")
    return result.value


def register_cli(app) -> None:
    db_group = AppGroup("db")

    @db_group.command("upgrade")
    @with_appcontext
    def upgrade() -> None:
        command.upgrade(alembic_config(current_app._get_current_object()), "head")
        click.echo("Database upgraded.")

    app.cli.add_command(db_group)

    @app.cli.command("add-doctor")
    @click.option("--name", required=True)
    @click.option("--specialization", required=True)
    @click.option("--phone", required=True, help="10-digit phone number")
    @click.option("--email", required=True)
    @click.option("--start", "work_start", default="09:00", show_default=True)
    @click.option("--end", "work_end", default="13:00", show_default=True)
    @with_appcontext
    def add_doctor(name: str, specialization: str, phone: str, email: str, work_start: str, work_end: str) -> None:
        doctor = _unwrap(
            queue_services().doctors.register_doctor(name, specialization, phone, email, work_start, work_end)
        )
        click.echo(f"Doctor '{doctor.name}' registered with id {doctor.id}.")

    @app.cli.command("seed-doctors")
    @with_appcontext
    def seed_doctors() -> None:
        service = queue_services().doctors
        created = 0
        for name, specialization, phone, email in SEED_DOCTORS:
            result = service.register_doctor(name, specialization, phone, email)
            if result.ok:
                created += 1
            elif result.error.reason not in ("doctor_phone_taken", "doctor_email_taken"):
                raise click.ClickException(result.error.message)
        click.echo(f"Seeded {created} doctor(s).")

    @app.cli.command("toggle-doctor")
    @click.argument("doctor_id")
    @click.option("--active/--inactive", default=True, show_default=True)
    @with_appcontext
    def toggle_doctor(doctor_id: str, active: bool) -> None:
        doctor = _unwrap(queue_services().doctors.set_active(doctor_id, active))
        click.echo(f"Doctor '{doctor.name}' is now {'active' if doctor.is_active else 'inactive'}.")

    @app.cli.command("doctor-hours")
    @click.argument("doctor_id")
    @click.option("--start", "work_start", required=True)
    @click.option("--end", "work_end", required=True)
    @with_appcontext
    def doctor_hours(doctor_id: str, work_start: str, work_end: str) -> None:
        doctor = _unwrap(
            queue_services().doctors.update_doctor(doctor_id, work_start=work_start, work_end=work_end)
        )
        click.echo(f"Doctor '{doctor.name}' works {doctor.work_start}-{doctor.work_end}.")
