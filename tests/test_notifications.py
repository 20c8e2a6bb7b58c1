import pytest

from medication.exceptions import AuthorizationError, NotFoundError
from medication.models import NudgeLog
from medication.services.notifications import send_nudge

pytestmark = pytest.mark.django_db


def test_default_nudge_message(doctor, patient, link, now):
    nudge = send_nudge(doctor, patient.pk, now=now)

    assert nudge.doctor == doctor
    assert nudge.patient == patient
    assert nudge.message == (
        "Hi Aisyah Rahman, please remember to take your medications on time. Your health matters!"
    )


def test_custom_message_is_kept(doctor, patient, link, now):
    nudge = send_nudge(doctor, patient.pk, message='  Refill due Friday  ', now=now)
    assert nudge.message == 'Refill due Friday'


def test_unlinked_doctor_cannot_nudge(other_doctor, patient, link, now):
    with pytest.raises(AuthorizationError) as excinfo:
        send_nudge(other_doctor, patient.pk, now=now)

    assert excinfo.value.stage == 'patient'
    assert NudgeLog.objects.count() == 0


def test_patients_cannot_nudge(patient, other_patient, now):
    with pytest.raises(AuthorizationError) as excinfo:
        send_nudge(patient, other_patient.pk, now=now)
    assert excinfo.value.stage == 'doctor'


def test_nudge_unknown_patient(doctor, now):
    with pytest.raises(NotFoundError):
        send_nudge(doctor, 31337, now=now)
