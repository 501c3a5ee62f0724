"""Clinic queue package exposing the Flask application factory."""

from __future__ import annotations

import os
from pathlib import Path
from datetime import timedelta
from typing import Any

from flask import Flask, jsonify

from .blueprints import register_blueprints
from .extensions import init_extensions, init_queue
from .services.auto_migrate import auto_upgrade
from .services.bootstrap import ensure_base_tables
from .cli import register_cli
from .auth import login_manager

APP_HOST = "127.0.0.1"
APP_PORT = 8080


def _data_root(base_dir: Path, override: Path | None = None) -> Path:
    root = override if override else base_dir / "data"
    (root / "logs").mkdir(parents=True, exist_ok=True)
    return root


def create_app(**service_overrides: Any) -> Flask:
    """Build the app; ``service_overrides`` go to the queue services (clock, sinks)."""

    base_dir = Path(__file__).resolve().parent.parent
    db_override = os.getenv("CLINIC_DB_PATH")
    data_root = _data_root(base_dir, Path(db_override).parent if db_override else None)
    db_path = Path(db_override) if db_override else data_root / "app.db"

    app = Flask(__name__)

    secret_key = os.getenv("CLINIC_SECRET_KEY")
    if not secret_key:
        secret_key = os.urandom(32)

    app.config.update(
        SECRET_KEY=secret_key,
        SESSION_COOKIE_NAME="clinic_queue_session",
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        PERMANENT_SESSION_LIFETIME=timedelta(hours=12),
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{db_path}",
        SQLALCHEMY_ENGINE_OPTIONS={"connect_args": {"check_same_thread": False}},
        RATELIMIT_STORAGE_URI=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
        RATELIMIT_ENABLED=os.getenv("RATELIMIT_ENABLED", "1") == "1",
        DATA_ROOT=str(data_root),
        CLINIC_DB=str(db_path),
        CLINIC_OPENS_AT=os.getenv("CLINIC_OPENS_AT", "09:00"),
        CLINIC_CLOSES_AT=os.getenv("CLINIC_CLOSES_AT", "12:00"),
        APPOINTMENT_SLOT_MINUTES=int(os.getenv("APPOINTMENT_SLOT_MINUTES", "10")),
        BOOKING_WINDOW_DAYS=int(os.getenv("BOOKING_WINDOW_DAYS", "30")),
        AVERAGE_CONSULT_MINUTES=int(os.getenv("AVERAGE_CONSULT_MINUTES", "15")),
        QUEUE_ALLOCATION_RETRIES=int(os.getenv("QUEUE_ALLOCATION_RETRIES", "3")),
        OTP_TTL_MINUTES=int(os.getenv("OTP_TTL_MINUTES", "10")),
    )

    init_extensions(app)
    login_manager.init_app(app)
    init_queue(app, **service_overrides)
    register_blueprints(app)
    auto_upgrade(app)
    ensure_base_tables(Path(app.config["CLINIC_DB"]))
    register_cli(app)

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({"success": False, "error": "not_found", "reason": "no_route", "message": "Route not found"}), 404

    @app.errorhandler(429)
    def handle_rate_limited(e):
        return (
            jsonify({"success": False, "error": "rate_limited", "reason": "too_many_requests", "message": str(e.description)}),
            429,
        )

    return app


__all__ = ["create_app", "APP_HOST", "APP_PORT"]
