"""JSON response helpers shared by the API blueprints."""

from __future__ import annotations

from typing import Any, Callable

from flask import jsonify, request

from clinic_queue.services.errors import QueueError, ValidationError, record_exception
from clinic_queue.services.results import Result


def error_response(error: QueueError):
    return jsonify({"success": False, **error.to_dict()}), error.http_status


def server_error(context: str, exc: Exception):
    record_exception(context, exc)
    return jsonify({"success": False, "error": "server_error", "reason": "unexpected", "message": "Internal server error"}), 500


def respond(result: Result, render: Callable[[Any], dict[str, Any]], status: int = 200):
    """Render a service ``Result`` as the API's JSON envelope."""

    if not result.ok:
        return error_response(result.error)  # type: ignore[arg-type]
    return jsonify({"success": True, **render(result.value)}), status


def json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form.to_dict()
    if not isinstance(payload, dict):
        raise ValidationError("invalid_body", "Request body must be a JSON object")
    return payload
