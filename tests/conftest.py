import pathlib
import sys
from datetime import datetime, timedelta

import pytest

root = pathlib.Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

from clinic_queue import create_app
from clinic_queue.services.database import db as raw_db

TODAY = datetime(2024, 6, 1, 8, 0, 0)


class FixedClock:
    """Settable stand-in for the wall clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, minutes: int) -> None:
        self.now += timedelta(minutes=minutes)


class RecordingEventSink:
    def __init__(self) -> None:
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)


class RecordingOtpSender:
    def __init__(self) -> None:
        self.codes = {}

    def send(self, phone: str, code: str) -> None:
        self.codes[phone] = code


@pytest.fixture
def clock():
    return FixedClock(TODAY)


@pytest.fixture
def events():
    return RecordingEventSink()


@pytest.fixture
def otp_sender():
    return RecordingOtpSender()


@pytest.fixture
def app(tmp_path, monkeypatch, clock, events, otp_sender):
    db_path = tmp_path / "app.db"
    monkeypatch.setenv("CLINIC_DB_PATH", str(db_path))
    monkeypatch.setenv("CLINIC_SECRET_KEY", "test-secret")
    monkeypatch.setenv("CLINIC_AUTO_MIGRATE", "0")
    monkeypatch.setenv("RATELIMIT_ENABLED", "0")
    app = create_app(clock=clock, events=events, otp_sender=otp_sender)
    app.config.update(TESTING=True)
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["queue"]


@pytest.fixture
def make_doctor(services):
    counter = {"n": 0}

    def _make(name: str = "Dr. House", specialization: str = "General Medicine", **kwargs):
        counter["n"] += 1
        n = counter["n"]
        return services.doctors.register_doctor(
            name,
            specialization,
            kwargs.pop("phone", f"98000000{n:02d}"),
            kwargs.pop("email", f"doctor{n}@clinic.test"),
            **kwargs,
        ).unwrap()

    return _make


@pytest.fixture
def doctor(make_doctor):
    return make_doctor()


@pytest.fixture
def make_patient(services, otp_sender):
    counter = {"n": 0}

    def _make(name: str = "Test Patient", *, verified: bool = True, age: int = 30, gender: str = "female"):
        counter["n"] += 1
        phone = f"91000000{counter['n']:02d}"
        sent = services.patients.request_otp(name, phone).unwrap()
        if verified:
            return services.patients.verify_otp(phone, otp_sender.codes[phone], age=age, gender=gender).unwrap()
        return services.patients.get_profile(sent["patient_id"]).unwrap()

    return _make


@pytest.fixture
def patient(make_patient):
    return make_patient()


@pytest.fixture
def login(client, otp_sender):
    """Register and verify a patient through the API, leaving ``client`` logged in."""

    def _login(phone: str = "9123456789", name: str = "Api Patient"):
        resp = client.post("/auth/send-otp", json={"name": name, "phone": phone})
        assert resp.status_code == 200
        resp = client.post(
            "/auth/verify-otp",
            json={"phone": phone, "otp": otp_sender.codes[phone], "age": 41, "gender": "male"},
        )
        assert resp.status_code == 200
        return resp.get_json()["patient"]

    return _login


@pytest.fixture
def raw_conn(app):
    conn = raw_db()
    try:
        yield conn
    finally:
        conn.close()
