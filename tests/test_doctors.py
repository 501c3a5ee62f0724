import pytest

from clinic_queue.services.errors import ConflictError, NotFoundError, ValidationError


def test_register_applies_default_hours(services):
    doctor = services.doctors.register_doctor("Dr. Rao", "Cardiology", "9811111111", "Rao@Clinic.test").unwrap()

    assert doctor.work_start == "09:00"
    assert doctor.work_end == "13:00"
    assert doctor.email == "rao@clinic.test"
    assert doctor.is_active
    assert doctor.to_dict()["working_hours"] == {"start": "09:00", "end": "13:00"}


def test_phone_and_email_are_unique(services, doctor):
    same_phone = services.doctors.register_doctor("Dr. X", "ENT", doctor.phone, "x@clinic.test")
    assert isinstance(same_phone.error, ConflictError)
    assert same_phone.error.reason == "doctor_phone_taken"

    same_email = services.doctors.register_doctor("Dr. Y", "ENT", "9822222222", doctor.email)
    assert same_email.error.reason == "doctor_email_taken"


@pytest.mark.parametrize(
    "kwargs,reason",
    [
        ({"email": "not-an-email"}, "invalid_email"),
        ({"specialization": " "}, "specialization_required"),
        ({"work_start": "14:00", "work_end": "10:00"}, "invalid_working_hours"),
        ({"work_start": "9am"}, "invalid_working_hours"),
        ({"phone": "12345"}, "invalid_phone"),
    ],
)
def test_register_validation(services, kwargs, reason):
    args = {
        "name": "Dr. Valid",
        "specialization": "ENT",
        "phone": "9833333333",
        "email": "valid@clinic.test",
        **kwargs,
    }
    result = services.doctors.register_doctor(**args)
    assert isinstance(result.error, ValidationError)
    assert result.error.reason == reason


def test_update_hours_and_toggle(services, doctor):
    updated = services.doctors.update_doctor(doctor.id, work_end="17:00").unwrap()
    assert (updated.work_start, updated.work_end) == ("09:00", "17:00")

    inactive = services.doctors.set_active(doctor.id, False).unwrap()
    assert inactive.is_active is False
    assert services.doctors.list_doctors(active_only=True).unwrap() == []
    assert [d.id for d in services.doctors.list_doctors().unwrap()] == [doctor.id]


def test_filter_by_specialization(services, make_doctor):
    make_doctor("Dr. Skin", "Dermatology")
    make_doctor("Dr. Kid", "Pediatrics")
    names = [d.name for d in services.doctors.list_doctors(specialization="Pediatrics").unwrap()]
    assert names == ["Dr. Kid"]


def test_unknown_doctor(services):
    assert isinstance(services.doctors.get_doctor("ghost").error, NotFoundError)
    assert isinstance(services.doctors.set_active("ghost", True).error, NotFoundError)
    assert isinstance(services.doctors.update_doctor("ghost", name="X").error, NotFoundError)


def test_cli_seed_and_toggle(app, services):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["seed-doctors"])
    assert "Seeded 3 doctor(s)." in result.output
    again = runner.invoke(args=["seed-doctors"])
    assert "Seeded 0 doctor(s)." in again.output

    doctor = services.doctors.list_doctors().unwrap()[0]
    result = runner.invoke(args=["toggle-doctor", doctor.id, "--inactive"])
    assert "is now inactive" in result.output
    assert services.doctors.get_doctor(doctor.id).unwrap().is_active is False


def test_cli_add_doctor_reports_errors(app):
    runner = app.test_cli_runner()
    ok = runner.invoke(
        args=["add-doctor", "--name", "Dr. Cli", "--specialization", "ENT", "--phone", "9844444444", "--email", "cli@clinic.test"]
    )
    assert "registered" in ok.output
    bad = runner.invoke(
        args=["add-doctor", "--name", "Dr. Cli", "--specialization", "ENT", "--phone", "123", "--email", "c2@clinic.test"]
    )
    assert bad.exit_code != 0
    assert "invalid_phone" in bad.output
