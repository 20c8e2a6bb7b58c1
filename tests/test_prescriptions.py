from datetime import date
from unittest import mock

import pytest
from django.db import DatabaseError

from medication.exceptions import (
    AuthorizationError, GenerationExhaustedError, NotFoundError, PartialWriteError,
    ValidationError,
)
from medication.models import Medication, MedicationPlan, ScheduledDose
from medication.services import clock
from medication.services.prescriptions import (
    PRESCRIPTION_NUMBER_MAX_ATTEMPTS, MedicationRequest, create_plan, create_prescription,
    generate_prescription_number, validate_medications,
)

pytestmark = pytest.mark.django_db

NUMBER_GENERATOR = 'medication.services.prescriptions.generate_prescription_number'


def metformin(**overrides):
    fields = dict(
        name='metformin 500mg tab',
        dose='500mg',
        route='oral',
        frequency='BD',
        times=['06:00', '18:00'],
        critical=False,
        start_date='2026-02-14',
        end_date='2026-02-14',
    )
    fields.update(overrides)
    return MedicationRequest(**fields)


def test_prescription_number_format():
    number = generate_prescription_number(date(2026, 2, 14))
    prefix, day, suffix = number.split('-')
    assert prefix == 'RX'
    assert day == '20260214'
    assert 1000 <= int(suffix) <= 9999


def test_single_day_metformin_prescription(doctor, patient, link, now):
    result = create_prescription(patient.pk, doctor, [metformin()], now=now)

    assert result.medication_count == 1
    assert result.dose_count == 2
    assert result.prescription_number.startswith('RX-20260214-')

    plan = MedicationPlan.objects.get(prescription_number=result.prescription_number)
    assert plan.start_date == date(2026, 2, 14)
    assert plan.end_date == date(2026, 2, 14)
    assert plan.prescribed_by == doctor
    assert plan.source == MedicationPlan.Source.PRESCRIBED

    medication = plan.medications.get()
    assert medication.name == 'METFORMIN 500MG TAB'

    doses = list(ScheduledDose.objects.filter(medication=medication).order_by('scheduled_at'))
    assert [dose.status for dose in doses] == ['pending', 'pending']
    assert [dose.local_time for dose in doses] == ['06:00', '18:00']
    assert {dose.local_date for dose in doses} == {date(2026, 2, 14)}
    assert {dose.patient_id for dose in doses} == {patient.pk}


def test_dose_count_sums_over_medications(doctor, patient, link, now):
    requests = [
        metformin(start_date='2026-02-14', end_date='2026-02-20'),
        metformin(name='lisinopril 10mg', times=['08:00'], start_date='2026-02-15', end_date='2026-03-01'),
        metformin(name='insulin glargine', route='Subcutaneous', times=['07:00', '13:00', '21:00'],
                  start_date='2026-02-10', end_date='2026-02-12', critical=True),
    ]
    result = create_prescription(patient.pk, doctor, requests, now=now)

    assert result.dose_count == 2 * 7 + 1 * 15 + 3 * 3
    assert ScheduledDose.objects.filter(patient=patient).count() == result.dose_count

    plan = result.plan
    assert plan.start_date == date(2026, 2, 10)
    assert plan.end_date == date(2026, 3, 1)
    assert plan.medications.get(name='INSULIN GLARGINE').route == Medication.Route.SUBCUTANEOUS


def test_duplicate_times_are_collapsed():
    [request] = validate_medications([metformin(times=['18:00', '06:00', '18:00'])])
    assert request.times == ['06:00', '18:00']


@pytest.mark.parametrize('request_factory, message', [
    (lambda: [], 'At least one medication'),
    (lambda: [metformin(name='   ')], 'must have a name'),
    (lambda: [metformin(times=[])], 'Select at least one time'),
    (lambda: [metformin(times=['6pm'])], 'Invalid time'),
    (lambda: [metformin(end_date=None)], 'Set start and end date'),
    (lambda: [metformin(start_date='2026-02-15', end_date='2026-02-14')], 'End date must be after'),
    (lambda: [metformin(route='nasal-ish')], 'Unknown route'),
])
def test_invalid_requests_write_nothing(doctor, patient, link, now, request_factory, message):
    with pytest.raises(ValidationError) as excinfo:
        create_prescription(patient.pk, doctor, request_factory(), now=now)

    assert message in excinfo.value.message
    assert excinfo.value.stage == 'validation'
    assert MedicationPlan.objects.count() == 0


def test_unlinked_doctor_is_an_authorization_failure(other_doctor, patient, link, now):
    with pytest.raises(AuthorizationError) as excinfo:
        create_prescription(patient.pk, other_doctor, [metformin()], now=now)

    assert excinfo.value.stage == 'patient'
    assert MedicationPlan.objects.count() == 0


def test_only_doctors_prescribe(patient, other_patient, now):
    with pytest.raises(AuthorizationError) as excinfo:
        create_prescription(other_patient.pk, patient, [metformin()], now=now)
    assert excinfo.value.stage == 'doctor'


def test_unknown_patient(doctor, now):
    with pytest.raises(NotFoundError) as excinfo:
        create_prescription(999999, doctor, [metformin()], now=now)
    assert excinfo.value.stage == 'patient'


def test_collision_retries_with_new_number(doctor, patient, link, plan, now):
    taken = plan.prescription_number
    with mock.patch(NUMBER_GENERATOR, side_effect=[taken, 'RX-20260214-2468']) as generator:
        result = create_prescription(patient.pk, doctor, [metformin()], now=now)

    assert generator.call_count == 2
    assert result.prescription_number == 'RX-20260214-2468'
    assert MedicationPlan.objects.count() == 2


def test_collision_budget_exhausted(doctor, patient, link, plan, now):
    with mock.patch(NUMBER_GENERATOR, return_value=plan.prescription_number) as generator:
        with pytest.raises(GenerationExhaustedError) as excinfo:
            create_prescription(patient.pk, doctor, [metformin()], now=now)

    assert generator.call_count == PRESCRIPTION_NUMBER_MAX_ATTEMPTS
    assert excinfo.value.stage == 'plan'
    assert MedicationPlan.objects.count() == 1
    assert Medication.objects.count() == 0


def test_insert_race_on_number_is_retried(doctor, patient, plan):
    """A number that passes the pre-check but loses the insert is retried like a collision."""
    taken = plan.prescription_number
    numbers = [taken, 'RX-20260214-7777']
    # pre-check lies once, post-failure check sees the row, second pre-check is clean
    prechecks = [False, True, False]

    with mock.patch(NUMBER_GENERATOR, side_effect=numbers), \
            mock.patch('django.db.models.query.QuerySet.exists', side_effect=prechecks):
        new_plan = create_plan(
            patient, doctor, date(2026, 2, 14), date(2026, 2, 14),
            MedicationPlan.Source.PRESCRIBED, date(2026, 2, 14),
        )

    assert new_plan.prescription_number == 'RX-20260214-7777'


def test_dose_failure_leaves_plan_and_medications(doctor, patient, link, now):
    with mock.patch.object(ScheduledDose.objects, 'bulk_create', side_effect=DatabaseError('disk full')):
        with pytest.raises(PartialWriteError) as excinfo:
            create_prescription(patient.pk, doctor, [metformin()], now=now)

    error = excinfo.value
    assert error.stage == 'doses'
    assert error.to_dict()['prescription_number'] == error.prescription_number
    plan = MedicationPlan.objects.get(prescription_number=error.prescription_number)
    assert plan.medications.count() == 1
    assert ScheduledDose.objects.count() == 0


def test_medication_failure_leaves_plan(doctor, patient, link, now):
    with mock.patch.object(Medication.objects, 'create', side_effect=DatabaseError('constraint')):
        with pytest.raises(PartialWriteError) as excinfo:
            create_prescription(patient.pk, doctor, [metformin()], now=now)

    assert excinfo.value.stage == 'medications'
    assert MedicationPlan.objects.filter(prescription_number=excinfo.value.prescription_number).exists()
    assert ScheduledDose.objects.count() == 0


def test_result_message_names_patient(doctor, patient, link, now):
    result = create_prescription(patient.pk, doctor, [metformin()], now=now)
    data = result.to_dict()

    assert data['success'] is True
    assert data['dose_count'] == 2
    assert 'Aisyah Rahman' in data['message']
    assert clock.today(now).strftime('%Y%m%d') in data['prescription_number']
