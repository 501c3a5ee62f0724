"""Patient-facing slot, booking and queue status API."""

from __future__ import annotations

from flask import Blueprint, request
from flask_login import current_user, login_required

from clinic_queue.blueprints.responses import error_response, json_body, respond, server_error
from clinic_queue.extensions import limiter, queue_services
from clinic_queue.services.errors import QueueError

bp = Blueprint("appointments", __name__, url_prefix="/api")


@bp.route("/slots/available", methods=["GET"])
def available_slots():
    """Slot grid for one doctor and day with availability flags."""
    try:
        doctor_id = request.args.get("doctor_id", "")
        day = request.args.get("date", "")
        result = queue_services().appointments.get_available_slots(doctor_id, day)
        return respond(
            result,
            lambda slots: {"doctor_id": doctor_id, "date": day, "slots": [slot.to_dict() for slot in slots]},
        )
    except Exception as exc:
        return server_error("api.available_slots", exc)


@bp.route("/appointments/book", methods=["POST"])
@login_required
@limiter.limit("20 per hour")
def book():
    try:
        payload = json_body()
        result = queue_services().appointments.book_appointment(
            current_user.get_id(),
            payload.get("doctor_id"),
            payload.get("appointment_date"),
            payload.get("time_slot"),
            notes=payload.get("notes"),
        )
        return respond(
            result,
            lambda appointment: {"message": "Appointment booked", "appointment": appointment.to_dict()},
            status=201,
        )
    except QueueError as exc:
        return error_response(exc)
    except Exception as exc:
        return server_error("api.book_appointment", exc)


@bp.route("/appointments/mine", methods=["GET"])
@login_required
def my_appointments():
    try:
        result = queue_services().appointments.list_patient_appointments(
            current_user.get_id(),
            status=request.args.get("status", "all"),
            page=request.args.get("page", 1),
            limit=request.args.get("limit", 10),
        )
        return respond(result, lambda page: page.to_dict())
    except Exception as exc:
        return server_error("api.my_appointments", exc)


@bp.route("/appointments/current", methods=["GET"])
@login_required
def current_status():
    try:
        result = queue_services().appointments.get_current_status(current_user.get_id())
        return respond(result, lambda status: status)
    except Exception as exc:
        return server_error("api.current_status", exc)


@bp.route("/appointments/live", methods=["GET"])
@login_required
def live_tracking():
    try:
        result = queue_services().trackers.get_live_tracking(current_user.get_id())
        return respond(result, lambda tracker: {"tracker": tracker})
    except Exception as exc:
        return server_error("api.live_tracking", exc)


@bp.route("/appointments/<appointment_id>", methods=["GET"])
@login_required
def appointment_detail(appointment_id: str):
    try:
        result = queue_services().appointments.get_appointment(appointment_id, current_user.get_id())
        return respond(result, lambda appointment: {"appointment": appointment.to_dict()})
    except Exception as exc:
        return server_error("api.appointment_detail", exc)


@bp.route("/appointments/<appointment_id>/cancel", methods=["POST"])
@login_required
def cancel(appointment_id: str):
    try:
        result = queue_services().appointments.cancel_appointment(appointment_id, current_user.get_id())
        return respond(
            result,
            lambda appointment: {"message": "Appointment cancelled", "appointment": appointment.to_dict()},
        )
    except Exception as exc:
        return server_error("api.cancel_appointment", exc)
