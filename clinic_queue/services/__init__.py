"""Queue services wired together over one connection factory."""

from __future__ import annotations

from dataclasses import dataclass

from clinic_queue.services.appointments import AppointmentService
from clinic_queue.services.database import Connect
from clinic_queue.services.doctors import DoctorService
from clinic_queue.services.live_tracker import LiveTrackerService
from clinic_queue.services.notifications import EventSink, OtpSender
from clinic_queue.services.patients import PatientService
from clinic_queue.services.settings import Clock, SchedulingSettings, local_now


@dataclass(frozen=True)
class QueueServices:
    appointments: AppointmentService
    trackers: LiveTrackerService
    patients: PatientService
    doctors: DoctorService
    settings: SchedulingSettings


def build_services(
    connect: Connect,
    settings: SchedulingSettings | None = None,
    clock: Clock = local_now,
    events: EventSink | None = None,
    otp_sender: OtpSender | None = None,
) -> QueueServices:
    settings = settings or SchedulingSettings()
    return QueueServices(
        appointments=AppointmentService(connect, settings=settings, clock=clock, events=events),
        trackers=LiveTrackerService(connect, settings=settings, clock=clock),
        patients=PatientService(connect, settings=settings, clock=clock, otp_sender=otp_sender),
        doctors=DoctorService(connect, clock=clock),
        settings=settings,
    )


__all__ = ["QueueServices", "build_services"]
