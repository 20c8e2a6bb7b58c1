# medication/services/adherence.py
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional
import logging

from users.models import User
from ..models import Medication, NudgeLog, ScheduledDose
from ..permissions import authorization_policy
from ..exceptions import NotFoundError
from . import clock
from .risk import PatientRisk, assess_patient

logger = logging.getLogger(__name__)

WEEKLY_WINDOW_DAYS = 7
TIMELINE_WINDOW_DAYS = 30
SCHEDULE_GRID_DAYS = 7
RECENT_NUDGE_LIMIT = 5

# Worst first: a day cell shows the first of these present among its doses
STATUS_PRECEDENCE = (
    ScheduledDose.Status.MISSED,
    ScheduledDose.Status.SKIPPED,
    ScheduledDose.Status.PENDING,
    ScheduledDose.Status.TAKEN,
)


def rounded_percentage(part: int, total: int) -> int:
    """part/total as a whole percentage, rounding halves up. 0 when total is 0."""
    if total <= 0:
        return 0
    return (part * 200 + total) // (2 * total)


@dataclass
class DayAdherence:
    day: date
    taken: int = 0
    total: int = 0

    @property
    def percentage(self) -> int:
        return rounded_percentage(self.taken, self.total)

    @property
    def label(self) -> str:
        return f"{self.day.day} {self.day:%b}"


@dataclass
class AdherenceSummary:
    days: List[DayAdherence]
    streak: int
    total: int
    taken: int
    missed: int
    skipped: int

    @property
    def adherence_percentage(self) -> int:
        return rounded_percentage(self.taken, self.total)


@dataclass
class MedicationDayStatus:
    """One grid row: a medication and its worst status per day (None when nothing was scheduled)."""
    medication: Medication
    statuses: List[Optional[str]]


@dataclass
class DayStatusCounts:
    day: date
    taken: int = 0
    skipped: int = 0
    missed: int = 0
    pending: int = 0

    @property
    def total(self) -> int:
        return self.taken + self.skipped + self.missed + self.pending

    def add(self, status: str):
        if status == ScheduledDose.Status.TAKEN:
            self.taken += 1
        elif status == ScheduledDose.Status.SKIPPED:
            self.skipped += 1
        elif status == ScheduledDose.Status.MISSED:
            self.missed += 1
        else:
            self.pending += 1


@dataclass
class ScheduleGrid:
    days: List[date]
    medications: List[MedicationDayStatus]
    counts: List[DayStatusCounts]


@dataclass
class PatientOverview:
    risk: PatientRisk
    total: int
    taken: int
    missed: int
    critical_medications: List[Medication]
    timeline: List[tuple] = field(default_factory=list)
    schedule: Optional[ScheduleGrid] = None
    recent_nudges: List[NudgeLog] = field(default_factory=list)

    @property
    def adherence_percentage(self) -> int:
        return rounded_percentage(self.taken, self.total)


def summarize_days(doses: Iterable[ScheduledDose], days: List[date]) -> List[DayAdherence]:
    """
    One entry per requested day, oldest first. A day without doses is still
    present with total 0 (and 0%).
    """
    by_day = {day: DayAdherence(day=day) for day in days}
    for dose in doses:
        entry = by_day.get(clock.local_date(dose.scheduled_at))
        if entry is None:
            continue
        entry.total += 1
        if dose.status == ScheduledDose.Status.TAKEN:
            entry.taken += 1
    return [by_day[day] for day in days]


def calculate_streak(days: List[DayAdherence]) -> int:
    """
    Consecutive fully-taken days counting back from the newest.

    Days with no doses are passed over without breaking or extending the
    streak; the first day with doses below 100% ends it.
    """
    streak = 0
    for entry in reversed(days):
        if entry.total == 0:
            continue
        if entry.percentage == 100:
            streak += 1
        else:
            break
    return streak


def _window_days(today: date, length: int) -> List[date]:
    return [today - timedelta(days=offset) for offset in range(length - 1, -1, -1)]


def weekly_adherence(patient: User, now: Optional[datetime] = None,
                     window_days: int = WEEKLY_WINDOW_DAYS) -> AdherenceSummary:
    """Daily taken/total bars, streak and totals for the trailing window ending today."""
    now = now or clock.now()
    days = _window_days(clock.today(now), window_days)

    doses = list(
        ScheduledDose.objects.filter(
            patient=patient,
            scheduled_at__gte=clock.start_of_day(days[0]),
            scheduled_at__lte=clock.end_of_day(days[-1]),
        ).only('scheduled_at', 'status')
    )
    daily = summarize_days(doses, days)
    statuses = [dose.status for dose in doses]

    return AdherenceSummary(
        days=daily,
        streak=calculate_streak(daily),
        total=len(statuses),
        taken=statuses.count(ScheduledDose.Status.TAKEN),
        missed=statuses.count(ScheduledDose.Status.MISSED),
        skipped=statuses.count(ScheduledDose.Status.SKIPPED),
    )


def doses_for_day(patient: User, day: date) -> Dict[str, List[ScheduledDose]]:
    """The patient's doses on one civil day, grouped by local HH:MM in time order."""
    doses = ScheduledDose.objects.filter(
        patient=patient,
        scheduled_at__gte=clock.start_of_day(day),
        scheduled_at__lte=clock.end_of_day(day),
    ).select_related('medication').order_by('scheduled_at', 'medication__name')

    grouped = defaultdict(list)
    for dose in doses:
        grouped[clock.extract_local_time(dose.scheduled_at)].append(dose)
    return dict(sorted(grouped.items()))


def worst_status(statuses: Iterable[str]) -> Optional[str]:
    """
    The most severe status present: missed, then skipped, then pending, then
    taken. Unknown statuses rank as pending. None when there are no statuses.
    """
    pending = STATUS_PRECEDENCE.index(ScheduledDose.Status.PENDING)
    ranks = [
        STATUS_PRECEDENCE.index(status) if status in STATUS_PRECEDENCE else pending
        for status in statuses
    ]
    return STATUS_PRECEDENCE[min(ranks)] if ranks else None


def schedule_grid(patient: User, now: Optional[datetime] = None,
                  window_days: int = SCHEDULE_GRID_DAYS) -> ScheduleGrid:
    """Every medication of the patient against the trailing days, plus per-day status counts."""
    now = now or clock.now()
    days = _window_days(clock.today(now), window_days)
    medications = list(Medication.objects.filter(plan__patient=patient).order_by('name', 'pk'))

    doses = ScheduledDose.objects.filter(
        patient=patient,
        scheduled_at__gte=clock.start_of_day(days[0]),
        scheduled_at__lte=clock.end_of_day(days[-1]),
    ).only('medication', 'scheduled_at', 'status')

    cells = defaultdict(list)
    counts = {day: DayStatusCounts(day=day) for day in days}
    for dose in doses:
        day = clock.local_date(dose.scheduled_at)
        cells[(dose.medication_id, day)].append(dose.status)
        counts[day].add(dose.status)

    rows = [
        MedicationDayStatus(
            medication=medication,
            statuses=[worst_status(cells[(medication.pk, day)]) for day in days],
        )
        for medication in medications
    ]
    return ScheduleGrid(days=days, medications=rows, counts=[counts[day] for day in days])


def recent_nudges(doctor: User, patient: User, limit: int = RECENT_NUDGE_LIMIT) -> List[NudgeLog]:
    """The latest nudges this doctor sent this patient, newest first."""
    return list(
        NudgeLog.objects.filter(doctor=doctor, patient=patient).order_by('-created_at', '-pk')[:limit]
    )


def patient_overview(viewer: User, patient_id, now: Optional[datetime] = None,
                     window_days: int = TIMELINE_WINDOW_DAYS, policy=None) -> PatientOverview:
    """
    Risk, trailing-window totals, critical medications, a dated dose timeline,
    the weekly status grid and the viewer's latest nudges to this patient.
    """
    now = now or clock.now()
    policy = policy or authorization_policy

    try:
        patient = User.objects.filter(pk=patient_id, role=User.Role.PATIENT).first()
    except (TypeError, ValueError):
        patient = None
    if patient is None:
        raise NotFoundError("Patient not found.", stage='patient')
    policy.require_view_patient(viewer, patient)

    doses = list(
        ScheduledDose.objects.filter(
            patient=patient,
            scheduled_at__gte=now - timedelta(days=window_days),
            scheduled_at__lte=now,
        ).select_related('medication').order_by('-scheduled_at')
    )

    timeline = defaultdict(list)
    for dose in doses:
        timeline[clock.local_date(dose.scheduled_at)].append(dose)

    statuses = [dose.status for dose in doses]
    return PatientOverview(
        risk=assess_patient(patient, now),
        total=len(statuses),
        taken=statuses.count(ScheduledDose.Status.TAKEN),
        missed=statuses.count(ScheduledDose.Status.MISSED),
        critical_medications=list(Medication.objects.filter(plan__patient=patient, critical=True)),
        timeline=sorted(timeline.items(), key=lambda item: item[0], reverse=True),
        schedule=schedule_grid(patient, now),
        recent_nudges=recent_nudges(viewer, patient),
    )
