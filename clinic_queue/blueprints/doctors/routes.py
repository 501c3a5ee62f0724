"""Doctor directory and doctor-side queue API."""

from __future__ import annotations

from flask import Blueprint, request

from clinic_queue.blueprints.responses import error_response, json_body, respond, server_error
from clinic_queue.extensions import queue_services
from clinic_queue.services.errors import QueueError, ValidationError

bp = Blueprint("doctors", __name__, url_prefix="/api/doctors")


def _appointment(appointment):
    return appointment.to_dict() if appointment is not None else None


@bp.route("", methods=["GET"])
def list_doctors():
    try:
        result = queue_services().doctors.list_doctors(
            specialization=request.args.get("specialization"),
            active_only=request.args.get("active_only", "1") == "1",
        )
        return respond(result, lambda doctors: {"doctors": [doctor.to_dict() for doctor in doctors]})
    except Exception as exc:
        return server_error("api.list_doctors", exc)


@bp.route("/<doctor_id>", methods=["GET"])
def doctor_detail(doctor_id: str):
    try:
        result = queue_services().doctors.get_doctor(doctor_id)
        return respond(result, lambda doctor: {"doctor": doctor.to_dict()})
    except Exception as exc:
        return server_error("api.doctor_detail", exc)


@bp.route("/<doctor_id>/queue", methods=["GET"])
def doctor_queue(doctor_id: str):
    try:
        result = queue_services().appointments.get_doctor_queue(doctor_id, request.args.get("date"))
        return respond(
            result,
            lambda queue: {"queue": [a.to_dict() for a in queue], "count": len(queue)},
        )
    except Exception as exc:
        return server_error("api.doctor_queue", exc)


@bp.route("/<doctor_id>/queue/live", methods=["GET"])
def doctor_live_queue(doctor_id: str):
    try:
        result = queue_services().trackers.get_current_queue(doctor_id, request.args.get("date") or None)
        return respond(result, lambda trackers: {"trackers": trackers})
    except Exception as exc:
        return server_error("api.doctor_live_queue", exc)


@bp.route("/<doctor_id>/next-patient", methods=["GET"])
def next_patient(doctor_id: str):
    try:
        result = queue_services().appointments.get_next_patient(doctor_id, request.args.get("date"))
        return respond(result, lambda appointment: {"next_patient": _appointment(appointment)})
    except Exception as exc:
        return server_error("api.next_patient", exc)


@bp.route("/<doctor_id>/queue/call-next", methods=["POST"])
def call_next(doctor_id: str):
    try:
        result = queue_services().appointments.call_next_patient(doctor_id)
        return respond(
            result,
            lambda moved: {"completed": _appointment(moved["completed"]), "current": _appointment(moved["current"])},
        )
    except Exception as exc:
        return server_error("api.call_next", exc)


@bp.route("/<doctor_id>/queue/compact", methods=["POST"])
def compact_queue(doctor_id: str):
    try:
        payload = json_body()
        try:
            removed = int(payload.get("removed_queue_number"))
        except (TypeError, ValueError) as exc:
            raise ValidationError("invalid_queue_number", "removed_queue_number must be an integer") from exc
        result = queue_services().trackers.update_queue_numbers(doctor_id, removed, payload.get("date"))
        return respond(result, lambda shifted: {"shifted": shifted})
    except QueueError as exc:
        return error_response(exc)
    except Exception as exc:
        return server_error("api.compact_queue", exc)


@bp.route("/<doctor_id>/stats", methods=["GET"])
def doctor_stats(doctor_id: str):
    try:
        result = queue_services().appointments.get_doctor_stats(
            doctor_id, request.args.get("start"), request.args.get("end")
        )
        return respond(result, lambda stats: {"stats": stats})
    except Exception as exc:
        return server_error("api.doctor_stats", exc)


@bp.route("/<doctor_id>/appointments", methods=["GET"])
def doctor_appointments(doctor_id: str):
    try:
        result = queue_services().appointments.list_doctor_appointments(
            doctor_id,
            day=request.args.get("date"),
            status=request.args.get("status", "all"),
            page=request.args.get("page", 1),
            limit=request.args.get("limit", 20),
        )
        return respond(result, lambda listing: {**listing["page"].to_dict(), "today": listing["today"]})
    except Exception as exc:
        return server_error("api.doctor_appointments", exc)


@bp.route("/appointments/<appointment_id>/status", methods=["PATCH", "POST"])
def update_status(appointment_id: str):
    try:
        payload = json_body()
        result = queue_services().appointments.update_status(
            appointment_id, payload.get("status"), notes=payload.get("notes")
        )
        return respond(result, lambda appointment: {"appointment": appointment.to_dict()})
    except QueueError as exc:
        return error_response(exc)
    except Exception as exc:
        return server_error("api.update_status", exc)


@bp.route("/appointments/<appointment_id>/priority", methods=["POST"])
def set_priority(appointment_id: str):
    try:
        payload = json_body()
        result = queue_services().trackers.set_priority(appointment_id, payload.get("priority"))
        return respond(result, lambda tracker: {"tracker": tracker})
    except QueueError as exc:
        return error_response(exc)
    except Exception as exc:
        return server_error("api.set_priority", exc)
