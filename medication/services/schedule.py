# medication/services/schedule.py
"""
Expansion of a medication's daily clock times into concrete dose rows.

Two generation policies coexist:

* ``ExactRangeStrategy`` covers the medication's own inclusive
  ``[start_date, end_date]`` range. Used when a doctor prescribes.
* ``RollingWindowStrategy`` covers a fixed number of days starting at the later
  of the plan start date and today, whatever the plan's end date says. Used by
  external intake.

Unifying the two needs a product decision, so both stay available behind the
same ``expand`` interface.
"""
import logging
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from ..models import Medication, ScheduledDose
from . import clock

logger = logging.getLogger(__name__)

IMPORT_WINDOW_DAYS = 7


class ScheduleStrategy:
    """Base class for dose generation policies."""
    name = None

    def date_range(self, medication: Medication, today: date) -> Tuple[date, date]:
        raise NotImplementedError

    def expand(self, medication: Medication, patient, today: date) -> List[ScheduledDose]:
        """Build unsaved pending doses: one per (day, clock time) in the range."""
        start, end = self.date_range(medication, today)
        return [
            ScheduledDose(
                medication=medication,
                patient=patient,
                scheduled_at=clock.combine(day, time_str),
                status=ScheduledDose.Status.PENDING,
            )
            for day in clock.iter_days(start, end)
            for time_str in medication.times
        ]


class ExactRangeStrategy(ScheduleStrategy):
    name = 'exact_range'

    def date_range(self, medication, today):
        if medication.end_date is None:
            raise ValueError(f"Medication {medication.name} has no end date to expand to")
        return medication.start_date, medication.end_date


class RollingWindowStrategy(ScheduleStrategy):
    name = 'rolling_window'

    def __init__(self, start_date: date, window_days: int = IMPORT_WINDOW_DAYS):
        self.start_date = start_date
        self.window_days = window_days

    def date_range(self, medication, today):
        base = max(self.start_date, today)
        return base, base + timedelta(days=self.window_days - 1)


def generate_doses(medications: Iterable[Medication], patient, strategy: ScheduleStrategy,
                   today: Optional[date] = None) -> List[ScheduledDose]:
    """Expand every medication with the given strategy into one flat list."""
    today = today or clock.today()
    doses = []
    for medication in medications:
        medication_doses = strategy.expand(medication, patient, today)
        logger.debug(
            f"{strategy.name}: {len(medication_doses)} doses for {medication.name} "
            f"({len(medication.times)} per day)"
        )
        doses.extend(medication_doses)
    return doses
