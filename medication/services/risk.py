# medication/services/risk.py
"""
Per-patient risk scoring from recent dose outcomes.

Weights and thresholds are fixed policy values; changing them changes how
existing patients are triaged.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from django.db import models
from django.utils.translation import gettext_lazy as _

from users.models import User
from ..models import Medication, MedicationPlan, ScheduledDose
from . import clock

logger = logging.getLogger(__name__)

RISK_WINDOW = timedelta(hours=48)

MISSED_DOSE_WEIGHT = 10
CRITICAL_MISSED_WEIGHT = 25
POLYPHARMACY_MEDS = 5
POLYPHARMACY_WEIGHT = 10
ELDERLY_AGE = 60
ELDERLY_WEIGHT = 10

RED_THRESHOLD = 40
YELLOW_THRESHOLD = 20


class RiskLevel(models.TextChoices):
    RED = 'RED', _('High risk')
    YELLOW = 'YELLOW', _('Moderate risk')
    GREEN = 'GREEN', _('Low risk')


def calculate_risk_score(missed_last_48h: int, critical_missed: int, meds_count: int, age: int) -> int:
    score = missed_last_48h * MISSED_DOSE_WEIGHT
    score += critical_missed * CRITICAL_MISSED_WEIGHT
    if meds_count >= POLYPHARMACY_MEDS:
        score += POLYPHARMACY_WEIGHT
    if age >= ELDERLY_AGE:
        score += ELDERLY_WEIGHT
    return score


def get_risk_level(score: int) -> str:
    if score >= RED_THRESHOLD:
        return RiskLevel.RED
    if score >= YELLOW_THRESHOLD:
        return RiskLevel.YELLOW
    return RiskLevel.GREEN


@dataclass
class PatientRisk:
    patient: User
    score: int
    level: str
    missed_last_48h: int
    critical_missed: int
    meds_count: int
    age: int
    prescription_numbers: List[str] = field(default_factory=list)


def assess_patient(patient: User, now: Optional[datetime] = None) -> PatientRisk:
    """Score one patient from missed doses in the trailing window."""
    now = now or clock.now()

    missed = ScheduledDose.objects.filter(
        patient=patient,
        status=ScheduledDose.Status.MISSED,
        scheduled_at__gte=now - RISK_WINDOW,
        scheduled_at__lte=now,
    )
    missed_last_48h = missed.count()
    critical_missed = missed.filter(medication__critical=True).count()

    # Distinct medications across all of the patient's plans, not doses
    meds_count = Medication.objects.filter(plan__patient=patient).count()
    age = clock.age(patient.date_of_birth, clock.today(now)) if patient.date_of_birth else 0

    score = calculate_risk_score(missed_last_48h, critical_missed, meds_count, age)
    prescription_numbers = list(
        MedicationPlan.objects.filter(patient=patient)
        .order_by('created_at')
        .values_list('prescription_number', flat=True)
    )
    return PatientRisk(
        patient=patient,
        score=score,
        level=get_risk_level(score),
        missed_last_48h=missed_last_48h,
        critical_missed=critical_missed,
        meds_count=meds_count,
        age=age,
        prescription_numbers=prescription_numbers,
    )


def assess_patients_for_doctor(doctor: User, now: Optional[datetime] = None) -> List[PatientRisk]:
    """Risk for every patient linked to the doctor, highest score first."""
    now = now or clock.now()
    patients = User.objects.filter(doctor_links__doctor=doctor).distinct().order_by('full_name', 'pk')

    assessments = [assess_patient(patient, now) for patient in patients]
    assessments.sort(key=lambda risk: risk.score, reverse=True)

    flagged = sum(1 for risk in assessments if risk.level == RiskLevel.RED)
    logger.info(f"Assessed {len(assessments)} patient(s) for doctor {doctor.pk}; {flagged} at RED")
    return assessments
