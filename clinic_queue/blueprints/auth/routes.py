"""Patient OTP authentication blueprint."""

from __future__ import annotations

from flask import Blueprint, current_app, request
from flask_login import current_user, login_required, login_user, logout_user

from clinic_queue.auth import PatientUser
from clinic_queue.blueprints.responses import error_response, json_body, respond, server_error
from clinic_queue.extensions import limiter, queue_services
from clinic_queue.services.errors import QueueError

bp = Blueprint("auth", __name__, url_prefix="/auth")


def _otp_rate_key() -> str:
    payload = request.get_json(silent=True) or {}
    return f"{request.remote_addr}:{payload.get('phone', '')}"


@bp.route("/send-otp", methods=["POST"])
@limiter.limit("5 per 15 minutes", key_func=_otp_rate_key)
def send_otp():
    try:
        payload = json_body()
        result = queue_services().patients.request_otp(payload.get("name"), payload.get("phone"))
        return respond(result, lambda sent: {"message": "OTP sent successfully", **sent})
    except QueueError as exc:
        return error_response(exc)
    except Exception as exc:
        return server_error("auth.send_otp", exc)


@bp.route("/resend-otp", methods=["POST"])
@limiter.limit("5 per 15 minutes", key_func=_otp_rate_key)
def resend_otp():
    try:
        payload = json_body()
        result = queue_services().patients.resend_otp(payload.get("phone"))
        return respond(result, lambda sent: {"message": "OTP resent successfully", **sent})
    except QueueError as exc:
        return error_response(exc)
    except Exception as exc:
        return server_error("auth.resend_otp", exc)


@bp.route("/verify-otp", methods=["POST"])
@limiter.limit("10 per 15 minutes", key_func=_otp_rate_key)
def verify_otp():
    try:
        payload = json_body()
        result = queue_services().patients.verify_otp(
            payload.get("phone"),
            payload.get("otp"),
            age=payload.get("age"),
            gender=payload.get("gender"),
        )
        if result.ok:
            login_user(PatientUser(result.value))
            current_app.logger.info("patient %s logged in", result.value.id)
        return respond(result, lambda patient: {"message": "Phone verified", "patient": patient.to_dict()})
    except QueueError as exc:
        return error_response(exc)
    except Exception as exc:
        return server_error("auth.verify_otp", exc)


@bp.route("/profile", methods=["GET"])
@login_required
def profile():
    try:
        result = queue_services().patients.get_profile(current_user.get_id())
        return respond(result, lambda patient: {"patient": patient.to_dict()})
    except Exception as exc:
        return server_error("auth.profile", exc)


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return {"success": True, "message": "Logged out"}
