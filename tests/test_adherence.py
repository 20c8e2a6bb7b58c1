from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from medication.exceptions import AuthorizationError, NotFoundError
from medication.models import NudgeLog, ScheduledDose
from medication.services import clock
from medication.services.adherence import (
    DayAdherence, DayStatusCounts, calculate_streak, doses_for_day, patient_overview,
    recent_nudges, rounded_percentage, schedule_grid, summarize_days, weekly_adherence,
    worst_status,
)

TAKEN = ScheduledDose.Status.TAKEN
MISSED = ScheduledDose.Status.MISSED
SKIPPED = ScheduledDose.Status.SKIPPED
PENDING = ScheduledDose.Status.PENDING


def week_of(counts, last_day=date(2026, 2, 14)):
    """DayAdherence entries, oldest first, from (taken, total) pairs."""
    first = last_day - timedelta(days=len(counts) - 1)
    return [
        DayAdherence(day=first + timedelta(days=index), taken=taken, total=total)
        for index, (taken, total) in enumerate(counts)
    ]


def test_streak_skips_empty_days_and_stops_at_partial_day():
    # 100%, 100%, no doses, 100%, 50%, 100%, 100%
    days = week_of([(2, 2), (2, 2), (0, 0), (2, 2), (1, 2), (2, 2), (2, 2)])
    assert [day.percentage for day in days] == [100, 100, 0, 100, 50, 100, 100]
    assert calculate_streak(days) == 2


def test_empty_days_neither_break_nor_extend_streak():
    days = week_of([(1, 2), (3, 3), (0, 0), (0, 0), (2, 2), (0, 0), (0, 0)])
    assert calculate_streak(days) == 2


def test_streak_zero_when_latest_day_incomplete():
    assert calculate_streak(week_of([(2, 2), (2, 2), (0, 1)])) == 0
    assert calculate_streak(week_of([(0, 0), (0, 0)])) == 0


@pytest.mark.parametrize('taken, total, expected', [
    (0, 0, 0),
    (1, 2, 50),
    (1, 3, 33),
    (2, 3, 67),
    (1, 8, 13),
    (7, 8, 88),
    (5, 5, 100),
])
def test_percentage_rounds_half_up(taken, total, expected):
    assert rounded_percentage(taken, total) == expected


def test_summarize_days_groups_by_clinic_date():
    day = date(2026, 2, 14)
    doses = [
        # 06:00 local is still the previous evening in UTC
        SimpleNamespace(scheduled_at=clock.combine(day, '06:00'), status=TAKEN),
        SimpleNamespace(scheduled_at=clock.combine(day, '23:30'), status=MISSED),
        SimpleNamespace(scheduled_at=clock.combine(day - timedelta(days=1), '08:00'), status=TAKEN),
        SimpleNamespace(scheduled_at=clock.combine(day - timedelta(days=30), '08:00'), status=TAKEN),
    ]
    summary = summarize_days(doses, [day - timedelta(days=1), day])

    assert [(entry.taken, entry.total) for entry in summary] == [(1, 1), (1, 2)]
    assert summary[1].label == '14 Feb'


@pytest.mark.django_db
def test_weekly_adherence(patient, medication, critical_medication, now):
    today = clock.today(now)
    rows = [
        (medication, today, '08:00', TAKEN),
        (critical_medication, today, '20:00', ScheduledDose.Status.PENDING),
        (medication, today - timedelta(days=1), '08:00', TAKEN),
        (critical_medication, today - timedelta(days=1), '20:00', TAKEN),
        (medication, today - timedelta(days=3), '08:00', SKIPPED),
        (critical_medication, today - timedelta(days=3), '20:00', MISSED),
        (medication, today - timedelta(days=10), '08:00', MISSED),
    ]
    for med, day, time_str, status in rows:
        ScheduledDose.objects.create(
            medication=med, patient=patient, scheduled_at=clock.combine(day, time_str), status=status
        )

    summary = weekly_adherence(patient, now)

    assert [entry.day for entry in summary.days] == [today - timedelta(days=offset) for offset in range(6, -1, -1)]
    assert [entry.percentage for entry in summary.days] == [0, 0, 0, 0, 0, 100, 50]
    # today's 50% stops the walk immediately
    assert summary.streak == 0
    assert summary.total == 6
    assert summary.taken == 3
    assert summary.missed == 1
    assert summary.skipped == 1
    assert summary.adherence_percentage == 50


@pytest.mark.django_db
def test_doses_for_day_grouped_by_time(patient, medication, critical_medication, now):
    today = clock.today(now)
    for med, time_str in ((medication, '08:00'), (critical_medication, '20:00'), (critical_medication, '08:00')):
        ScheduledDose.objects.create(medication=med, patient=patient, scheduled_at=clock.combine(today, time_str))
    ScheduledDose.objects.create(
        medication=medication, patient=patient, scheduled_at=clock.combine(today + timedelta(days=1), '08:00')
    )

    grouped = doses_for_day(patient, today)

    assert list(grouped) == ['08:00', '20:00']
    assert [dose.medication.name for dose in grouped['08:00']] == ['AMLODIPINE 5MG', 'WARFARIN 3MG']
    assert len(grouped['20:00']) == 1


@pytest.mark.django_db
def test_patient_overview_for_linked_doctor(doctor, patient, link, medication, critical_medication, now):
    today = clock.today(now)
    ScheduledDose.objects.create(
        medication=medication, patient=patient, scheduled_at=clock.combine(today, '08:00'), status=TAKEN
    )
    ScheduledDose.objects.create(
        medication=critical_medication, patient=patient,
        scheduled_at=clock.combine(today - timedelta(days=2), '20:00'), status=MISSED,
    )

    overview = patient_overview(doctor, patient.pk, now)

    assert overview.total == 2
    assert overview.taken == 1
    assert overview.missed == 1
    assert overview.adherence_percentage == 50
    assert [med.name for med in overview.critical_medications] == ['WARFARIN 3MG']
    assert [day for day, _ in overview.timeline] == [today, today - timedelta(days=2)]
    assert overview.risk.critical_missed == 1


@pytest.mark.django_db
def test_patient_overview_requires_link(other_doctor, patient, now):
    with pytest.raises(AuthorizationError):
        patient_overview(other_doctor, patient.pk, now)


@pytest.mark.django_db
def test_patient_overview_unknown_patient(doctor, now):
    with pytest.raises(NotFoundError):
        patient_overview(doctor, 987654, now)


@pytest.mark.parametrize('statuses, expected', [
    ([], None),
    ([TAKEN, TAKEN], TAKEN),
    ([TAKEN, PENDING], PENDING),
    ([PENDING, SKIPPED, TAKEN], SKIPPED),
    ([SKIPPED, MISSED, PENDING, TAKEN], MISSED),
    ([TAKEN, 'paused'], PENDING),
])
def test_worst_status_precedence(statuses, expected):
    assert worst_status(statuses) == expected


def test_day_counts_treat_other_statuses_as_pending():
    counts = DayStatusCounts(day=date(2026, 2, 14))
    for status in (TAKEN, SKIPPED, MISSED, PENDING, 'paused'):
        counts.add(status)

    assert (counts.taken, counts.skipped, counts.missed, counts.pending) == (1, 1, 1, 2)
    assert counts.total == 5


@pytest.mark.django_db
def test_schedule_grid_shows_worst_status_per_day(patient, medication, critical_medication, now):
    today = clock.today(now)
    yesterday = today - timedelta(days=1)
    rows = [
        (medication, today, '08:00', TAKEN),
        (medication, today, '09:00', PENDING),
        (critical_medication, today, '20:00', MISSED),
        (medication, yesterday, '08:00', TAKEN),
        (medication, yesterday, '09:00', SKIPPED),
        (critical_medication, today - timedelta(days=8), '20:00', MISSED),
    ]
    for med, day, time_str, status in rows:
        ScheduledDose.objects.create(
            medication=med, patient=patient, scheduled_at=clock.combine(day, time_str), status=status
        )

    grid = schedule_grid(patient, now)

    assert grid.days == [today - timedelta(days=offset) for offset in range(6, -1, -1)]
    assert [row.medication.name for row in grid.medications] == ['AMLODIPINE 5MG', 'WARFARIN 3MG']
    assert grid.medications[0].statuses == [None] * 5 + [SKIPPED, PENDING]
    assert grid.medications[1].statuses == [None] * 6 + [MISSED]

    by_day = {counts.day: counts for counts in grid.counts}
    assert (by_day[today].taken, by_day[today].pending, by_day[today].missed) == (1, 1, 1)
    assert (by_day[yesterday].taken, by_day[yesterday].skipped, by_day[yesterday].total) == (1, 1, 2)
    assert sum(counts.total for counts in grid.counts) == 5


@pytest.mark.django_db
def test_recent_nudges_newest_first_for_this_doctor(doctor, other_doctor, patient, other_patient, link, now):
    for index in range(1, 7):
        NudgeLog.objects.create(doctor=doctor, patient=patient, message=f'nudge {index}')
    NudgeLog.objects.create(doctor=other_doctor, patient=patient, message='from colleague')
    NudgeLog.objects.create(doctor=doctor, patient=other_patient, message='other patient')

    nudges = recent_nudges(doctor, patient)
    assert [nudge.message for nudge in nudges] == ['nudge 6', 'nudge 5', 'nudge 4', 'nudge 3', 'nudge 2']

    overview = patient_overview(doctor, patient.pk, now)
    assert [nudge.message for nudge in overview.recent_nudges] == [nudge.message for nudge in nudges]
    assert overview.schedule.medications == []
