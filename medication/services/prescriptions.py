# medication/services/prescriptions.py
"""
Prescription building: validation, prescription-number allocation and the
plan -> medications -> doses write sequence.

The three writes are best-effort sequential. Each stage is atomic on its own,
but a failure in a later stage does not roll back earlier ones; the caller
gets a ``PartialWriteError`` naming the failed stage and the prescription
number so the leftover rows can be inspected.
"""
import logging
import random
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, List, Mapping, Optional, Sequence, Union

from django.db import DatabaseError, IntegrityError, transaction

from users.models import User, PatientDoctorLink
from ..exceptions import (
    GenerationExhaustedError, NotFoundError, PartialWriteError, PersistenceError,
    ValidationError,
)
from ..models import Medication, MedicationPlan, ScheduledDose
from ..permissions import authorization_policy
from . import clock
from .schedule import (
    IMPORT_WINDOW_DAYS, ExactRangeStrategy, RollingWindowStrategy, generate_doses,
)

logger = logging.getLogger(__name__)

PRESCRIPTION_NUMBER_MAX_ATTEMPTS = 5
DOSE_BATCH_SIZE = 500
IMPORT_EMAIL_DOMAIN = 'medtrack.my'


@dataclass
class MedicationRequest:
    """One medication entry of a prescribing request."""
    name: str
    dose: str = ''
    route: str = Medication.Route.ORAL
    frequency: str = ''
    times: List[str] = field(default_factory=list)
    critical: bool = False
    start_date: Optional[Union[date, str]] = None
    end_date: Optional[Union[date, str]] = None


@dataclass
class ImportRecord:
    """The external intake payload: patient demographics, one plan, its medications."""
    full_name: str
    mrn: str
    start_date: Union[date, str]
    medications: List[MedicationRequest]
    phone: str = ''
    dob: Optional[Union[date, str]] = None
    end_date: Optional[Union[date, str]] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> 'ImportRecord':
        """
        Build a record from the intake JSON shape::

            {"patient": {"full_name", "mrn", "phone", "dob"},
             "plan": {"start_date", "end_date"},
             "meds": [{"med_name", "dose", "route", "times", "freq", "critical"}]}
        """
        if not isinstance(payload, Mapping):
            raise ValidationError("Invalid payload: expected a JSON object.")
        patient = payload.get('patient')
        plan = payload.get('plan')
        meds = payload.get('meds')
        if not isinstance(patient, Mapping) or not isinstance(plan, Mapping) or not meds:
            raise ValidationError("Invalid payload: missing patient, plan, or meds.")
        if not all(isinstance(med, Mapping) for med in meds):
            raise ValidationError("Invalid payload: every entry in meds must be an object.")

        return cls(
            full_name=patient.get('full_name'),
            mrn=patient.get('mrn'),
            phone=patient.get('phone'),
            dob=patient.get('dob') or None,
            start_date=plan.get('start_date'),
            end_date=plan.get('end_date') or None,
            medications=[
                MedicationRequest(
                    name=med.get('med_name'),
                    dose=med.get('dose'),
                    route=med.get('route') or Medication.Route.ORAL,
                    frequency=med.get('freq'),
                    times=med.get('times') or [],
                    critical=bool(med.get('critical', False)),
                )
                for med in meds
            ],
        )


@dataclass
class PrescriptionResult:
    plan: MedicationPlan
    patient: User
    medication_count: int
    dose_count: int

    @property
    def prescription_number(self):
        return self.plan.prescription_number

    @property
    def message(self):
        if self.plan.source == MedicationPlan.Source.IMPORTED:
            return (
                f"Successfully imported {self.medication_count} medication(s) for "
                f"{self.patient.display_name}. Created {self.dose_count} scheduled doses "
                f"for the next {IMPORT_WINDOW_DAYS} days."
            )
        return (
            f"Prescription {self.prescription_number}\n"
            f"Prescribed {self.medication_count} medication(s) for {self.patient.display_name}.\n"
            f"Generated {self.dose_count} doses."
        )

    def to_dict(self):
        return {
            'success': True,
            'prescription_number': self.prescription_number,
            'plan_id': self.plan.pk,
            'patient_id': self.patient.pk,
            'medication_count': self.medication_count,
            'dose_count': self.dose_count,
            'message': self.message,
        }


def generate_prescription_number(today: date) -> str:
    """RX-YYYYMMDD-NNNN with a random NNNN in [1000, 9999]."""
    return f"RX-{today:%Y%m%d}-{random.randint(1000, 9999)}"


def _as_text(value, label):
    """Strip a free-text field; numbers are accepted and stringified, other types are rejected."""
    if value is None:
        return ''
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValidationError(f"Invalid {label} {value!r}; expected text.")
    return str(value).strip()


def _parse_date_field(value, label, name):
    if value in (None, ''):
        return None
    try:
        return clock.parse_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label} {value!r} for {name}; use YYYY-MM-DD.")


def validate_medications(medications: Sequence[MedicationRequest],
                         require_end_date: bool = True) -> List[MedicationRequest]:
    """
    Check every precondition on the medication list and return normalized copies.

    Normalization parses dates, lower-cases the route and turns the clock times
    into a sorted list without duplicates.
    """
    if not medications:
        raise ValidationError("At least one medication is required.")

    routes = set(Medication.Route.values)
    normalized = []
    for med in medications:
        name = _as_text(med.name, 'medication name')
        if not name:
            raise ValidationError("All medications must have a name.")

        if not isinstance(med.times, (list, tuple)) or not med.times:
            raise ValidationError(f"Select at least one time for {name}.")
        for time_str in med.times:
            if not clock.is_valid_time(time_str):
                raise ValidationError(f"Invalid time {time_str!r} for {name}; use 24-hour HH:MM.")

        route = _as_text(med.route, f'route for {name}').lower()
        if route not in routes:
            raise ValidationError(f"Unknown route {med.route!r} for {name}.")

        start_date = _parse_date_field(med.start_date, 'start date', name)
        end_date = _parse_date_field(med.end_date, 'end date', name)
        if start_date is None or (require_end_date and end_date is None):
            raise ValidationError(f"Set start and end date for {name}.")
        if end_date is not None and end_date < start_date:
            raise ValidationError(f"End date must be after start date for {name}.")

        normalized.append(replace(
            med,
            name=name,
            dose=_as_text(med.dose, f'dose for {name}'),
            route=route,
            frequency=_as_text(med.frequency, f'frequency for {name}'),
            times=sorted(set(med.times)),
            start_date=start_date,
            end_date=end_date,
        ))
    return normalized


def plan_date_range(medications: Sequence[MedicationRequest]):
    """Earliest start; latest end, or None when any medication is open-ended."""
    start_date = min(med.start_date for med in medications)
    end_dates = [med.end_date for med in medications]
    end_date = None if any(end is None for end in end_dates) else max(end_dates)
    return start_date, end_date


def _get_patient(patient_id) -> User:
    if patient_id in (None, ''):
        raise ValidationError("Please select a patient.")
    try:
        patient = User.objects.filter(pk=patient_id, role=User.Role.PATIENT).first()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid patient id {patient_id!r}.")
    if patient is None:
        raise NotFoundError("Patient not found.", stage='patient')
    return patient


def create_plan(patient, prescribed_by, start_date, end_date, source, today) -> MedicationPlan:
    """
    Insert a plan under a fresh prescription number.

    A candidate that already exists, or that loses a concurrent insert race on
    the unique column, is replaced by a new one up to the attempt budget.
    """
    for attempt in range(1, PRESCRIPTION_NUMBER_MAX_ATTEMPTS + 1):
        candidate = generate_prescription_number(today)
        if MedicationPlan.objects.filter(prescription_number=candidate).exists():
            logger.warning(f"Prescription number {candidate} already in use (attempt {attempt})")
            continue

        try:
            with transaction.atomic():
                return MedicationPlan.objects.create(
                    patient=patient,
                    prescribed_by=prescribed_by,
                    prescription_number=candidate,
                    start_date=start_date,
                    end_date=end_date,
                    source=source,
                )
        except IntegrityError as e:
            if MedicationPlan.objects.filter(prescription_number=candidate).exists():
                logger.warning(f"Prescription number {candidate} taken concurrently (attempt {attempt})")
                continue
            logger.exception("Failed to create medication plan")
            raise PersistenceError(f"Failed to create plan: {e}", stage='plan')
        except DatabaseError as e:
            logger.exception("Failed to create medication plan")
            raise PersistenceError(f"Failed to create plan: {e}", stage='plan')

    raise GenerationExhaustedError(
        f"Could not allocate a unique prescription number after "
        f"{PRESCRIPTION_NUMBER_MAX_ATTEMPTS} attempts."
    )


def _create_medications(plan, requests) -> List[Medication]:
    try:
        with transaction.atomic():
            return [
                Medication.objects.create(
                    plan=plan,
                    name=med.name,
                    dose=med.dose,
                    route=med.route,
                    frequency=med.frequency,
                    times=med.times,
                    critical=med.critical,
                    start_date=med.start_date,
                    end_date=med.end_date,
                )
                for med in requests
            ]
    except DatabaseError as e:
        logger.exception(f"Failed to create medications for {plan.prescription_number}")
        raise PartialWriteError(
            f"Plan {plan.prescription_number} was created but its medications failed: {e}",
            stage='medications',
            prescription_number=plan.prescription_number,
        )


def _create_doses(plan, doses) -> int:
    try:
        with transaction.atomic():
            ScheduledDose.objects.bulk_create(doses, batch_size=DOSE_BATCH_SIZE)
    except DatabaseError as e:
        logger.exception(f"Failed to create doses for {plan.prescription_number}")
        raise PartialWriteError(
            f"Plan {plan.prescription_number} and its medications were created "
            f"but dose generation failed: {e}",
            stage='doses',
            prescription_number=plan.prescription_number,
        )
    return len(doses)


def create_prescription(patient_id, doctor, medications: Sequence[MedicationRequest],
                        now: Optional[datetime] = None, policy=None) -> PrescriptionResult:
    """
    Prescribe one or more medications for a linked patient.

    Each medication gets one pending dose per day of its own inclusive date
    range per clock time.
    """
    now = now or clock.now()
    policy = policy or authorization_policy
    today = clock.today(now)

    policy.require_doctor(doctor)
    requests = validate_medications(medications)
    patient = _get_patient(patient_id)
    policy.require_prescribe(doctor, patient)

    start_date, end_date = plan_date_range(requests)
    plan = create_plan(patient, doctor, start_date, end_date, MedicationPlan.Source.PRESCRIBED, today)
    created = _create_medications(plan, requests)
    dose_count = _create_doses(plan, generate_doses(created, patient, ExactRangeStrategy(), today))

    logger.info(
        f"Prescription {plan.prescription_number} by doctor {doctor.pk} for patient {patient.pk}: "
        f"{len(created)} medication(s), {dose_count} doses"
    )
    return PrescriptionResult(plan=plan, patient=patient, medication_count=len(created), dose_count=dose_count)


def validate_import_record(record: ImportRecord) -> ImportRecord:
    full_name = _as_text(record.full_name, 'patient full_name')
    mrn = _as_text(record.mrn, 'patient mrn')
    if not full_name or not mrn:
        raise ValidationError("Invalid payload: patient full_name and mrn are required.")

    try:
        start_date = clock.parse_date(record.start_date)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid plan start_date {record.start_date!r}; use YYYY-MM-DD.")
    end_date = _parse_date_field(record.end_date, 'plan end date', mrn)
    dob = _parse_date_field(record.dob, 'date of birth', mrn)

    # Imported medications share the plan's range
    medications = validate_medications(
        [replace(med, start_date=start_date, end_date=end_date) for med in record.medications],
        require_end_date=False,
    )
    return replace(
        record,
        full_name=full_name,
        mrn=mrn,
        phone=_as_text(record.phone, 'patient phone'),
        dob=dob,
        start_date=start_date,
        end_date=end_date,
        medications=medications,
    )


def _find_or_create_patient(record: ImportRecord) -> User:
    email = f"patient-{record.mrn.lower()}@{IMPORT_EMAIL_DOMAIN}"
    try:
        patient = User.objects.filter(mrn=record.mrn).first() or User.objects.filter(email=email).first()
        if patient is not None:
            if patient.role != User.Role.PATIENT:
                raise ValidationError(
                    f"MRN {record.mrn} belongs to a non-patient account.", stage='patient'
                )
            patient.full_name = record.full_name
            patient.mrn = record.mrn
            patient.phone_number = record.phone
            patient.date_of_birth = record.dob
            patient.save(update_fields=['full_name', 'mrn', 'phone_number', 'date_of_birth'])
            return patient

        # Credentials are issued elsewhere; the account starts without a usable password
        return User.objects.create_user(
            username=email,
            email=email,
            full_name=record.full_name,
            role=User.Role.PATIENT,
            mrn=record.mrn,
            phone_number=record.phone,
            date_of_birth=record.dob,
        )
    except DatabaseError as e:
        logger.exception(f"Failed to find or create patient with MRN {record.mrn}")
        raise PersistenceError(f"Failed to create patient: {e}", stage='patient')


def _ensure_link(doctor, patient):
    try:
        PatientDoctorLink.objects.get_or_create(doctor=doctor, patient=patient)
    except DatabaseError as e:
        logger.exception(f"Failed to link doctor {doctor.pk} to patient {patient.pk}")
        raise PersistenceError(f"Failed to link doctor to patient: {e}", stage='doctor')


def import_from_external_record(doctor, record: Union[ImportRecord, Mapping[str, Any]],
                                now: Optional[datetime] = None, policy=None) -> PrescriptionResult:
    """
    Bulk intake from an external system.

    Finds or creates the patient by MRN, links the importing doctor, and
    generates doses for a fixed window starting at the later of the plan start
    date and today. The plan's own end date does not limit the window.
    """
    now = now or clock.now()
    policy = policy or authorization_policy
    today = clock.today(now)

    policy.require_import(doctor)
    if not isinstance(record, ImportRecord):
        record = ImportRecord.from_payload(record)
    record = validate_import_record(record)

    patient = _find_or_create_patient(record)
    _ensure_link(doctor, patient)

    plan = create_plan(patient, doctor, record.start_date, record.end_date, MedicationPlan.Source.IMPORTED, today)
    created = _create_medications(plan, record.medications)
    strategy = RollingWindowStrategy(record.start_date, IMPORT_WINDOW_DAYS)
    dose_count = _create_doses(plan, generate_doses(created, patient, strategy, today))

    logger.info(
        f"Imported {plan.prescription_number} for MRN {record.mrn} by doctor {doctor.pk}: "
        f"{len(created)} medication(s), {dose_count} doses over {IMPORT_WINDOW_DAYS} days"
    )
    return PrescriptionResult(plan=plan, patient=patient, medication_count=len(created), dose_count=dose_count)
