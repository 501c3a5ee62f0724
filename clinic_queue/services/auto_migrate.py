"""Automatically run Alembic migrations when the app starts."""

from __future__ import annotations

import os

from alembic import command
from flask import Flask

from clinic_queue.services.migrations import alembic_config, migration_files_present


def auto_upgrade(app: Flask) -> None:
    """Run `alembic upgrade head` automatically if enabled."""

    if os.getenv("CLINIC_AUTO_MIGRATE", "1") != "1":
        return
    if not migration_files_present(app):
        app.logger.info("Alembic files not found; relying on bootstrap schema")
        return

    try:
        command.upgrade(alembic_config(app), "head")
    except Exception as exc:  # pragma: no cover - startup must not die on a migration hiccup
        app.logger.warning("Auto migration skipped: %s", exc)
