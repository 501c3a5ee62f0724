"""Queue error kinds and lightweight error logging for in-app diagnostics."""

from __future__ import annotations

from datetime import datetime, UTC
from pathlib import Path
import traceback

from flask import current_app


class QueueError(Exception):
    """Base exception for queue and appointment operations."""

    kind = "error"
    http_status = 400

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message or reason)
        self.reason = reason
        self.message = message or reason

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "reason": self.reason, "message": self.message}


class ValidationError(QueueError):
    """Input is malformed or breaks a booking rule."""

    kind = "validation_error"
    http_status = 400


class NotFoundError(QueueError):
    """Referenced record is missing or not visible to the requester."""

    kind = "not_found"
    http_status = 404


class ConflictError(QueueError):
    """The request lost a race or collides with an existing booking."""

    kind = "conflict"
    http_status = 409


class StateError(QueueError):
    kind = "state_error"
    http_status = 400


class InvalidTransition(StateError):
    """Raised when a status change is not allowed from the current status."""


class InfrastructureError(QueueError):
    """The store could not be reached or failed mid-operation."""

    kind = "infrastructure_error"
    http_status = 500


def record_exception(context: str, exc: BaseException) -> None:
    """Append exception details to data/logs/app_errors.log for offline inspection."""

    try:
        root = Path(current_app.config["DATA_ROOT"]) / "logs"
        root.mkdir(parents=True, exist_ok=True)
        log_path = root / "app_errors.log"
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(f"[{datetime.now(UTC).isoformat()}Z] {context}\n")
            handle.write("".join(traceback.format_exception(exc)))
            handle.write("\n")
    except OSError as log_exc:
        current_app.logger.warning("Could not write error log for %s: %s", context, log_exc)
