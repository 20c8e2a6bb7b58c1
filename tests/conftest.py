from datetime import date, datetime, timedelta, timezone
from unittest import mock

import pytest
from rest_framework.test import APIClient

from users.models import User, PatientDoctorLink
from medication.models import MedicationPlan, Medication

CLINIC_TZ = timezone(timedelta(hours=8))


@pytest.fixture
def now() -> datetime:
    """
    A fixed clinic-local instant: 2026-02-14 10:00 UTC+8.
    """
    return datetime(2026, 2, 14, 10, 0, tzinfo=CLINIC_TZ)


@pytest.fixture
def frozen_clock(now):
    """Pin the engine clock for code paths that read the current time themselves."""
    with mock.patch('medication.services.clock.now', return_value=now):
        yield now


@pytest.fixture
def doctor(db) -> User:
    return User.objects.create_user(
        username='dr.lim@medtrack.my',
        email='dr.lim@medtrack.my',
        password='pass1234',
        full_name='Dr. Lim Wei',
        role=User.Role.DOCTOR,
    )


@pytest.fixture
def other_doctor(db) -> User:
    return User.objects.create_user(
        username='dr.tan@medtrack.my',
        email='dr.tan@medtrack.my',
        password='pass1234',
        full_name='Dr. Tan Mei',
        role=User.Role.DOCTOR,
    )


@pytest.fixture
def patient(db) -> User:
    return User.objects.create_user(
        username='aisyah@example.com',
        email='aisyah@example.com',
        password='pass1234',
        full_name='Aisyah Rahman',
        role=User.Role.PATIENT,
        date_of_birth=date(1958, 6, 1),
        mrn='MRN-0001',
    )


@pytest.fixture
def other_patient(db) -> User:
    return User.objects.create_user(
        username='kumar@example.com',
        email='kumar@example.com',
        password='pass1234',
        full_name='Kumar Raj',
        role=User.Role.PATIENT,
        date_of_birth=date(1990, 3, 20),
    )


@pytest.fixture
def link(doctor, patient) -> PatientDoctorLink:
    return PatientDoctorLink.objects.create(doctor=doctor, patient=patient)


@pytest.fixture
def plan(doctor, patient) -> MedicationPlan:
    return MedicationPlan.objects.create(
        patient=patient,
        prescribed_by=doctor,
        prescription_number='RX-20260210-5555',
        start_date=date(2026, 2, 10),
        end_date=date(2026, 2, 20),
    )


@pytest.fixture
def medication(plan) -> Medication:
    return Medication.objects.create(
        plan=plan,
        name='amlodipine 5mg',
        dose='5mg',
        route=Medication.Route.ORAL,
        frequency='OD',
        times=['08:00'],
        critical=False,
        start_date=plan.start_date,
        end_date=plan.end_date,
    )


@pytest.fixture
def critical_medication(plan) -> Medication:
    return Medication.objects.create(
        plan=plan,
        name='warfarin 3mg',
        dose='3mg',
        route=Medication.Route.ORAL,
        frequency='OD',
        times=['20:00'],
        critical=True,
        start_date=plan.start_date,
        end_date=plan.end_date,
    )


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture
def doctor_client(api_client, doctor) -> APIClient:
    api_client.force_authenticate(user=doctor)
    return api_client


@pytest.fixture
def patient_client(api_client, patient) -> APIClient:
    api_client.force_authenticate(user=patient)
    return api_client
