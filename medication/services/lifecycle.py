# medication/services/lifecycle.py
import logging
from datetime import datetime, timedelta
from typing import Optional

from ..exceptions import NotFoundError, ValidationError
from ..models import ScheduledDose
from ..permissions import authorization_policy
from . import clock

logger = logging.getLogger(__name__)

MISSED_DOSE_GRACE_PERIOD = timedelta(hours=2)


def record_patient_action(dose_id, patient, status: str, note: Optional[str] = None,
                          now: Optional[datetime] = None, policy=None) -> ScheduledDose:
    """
    Mark a dose taken or skipped on behalf of its patient.

    Repeated calls overwrite the status, note and acted-at time, including on a
    dose that already reached a terminal status.
    """
    now = now or clock.now()
    policy = policy or authorization_policy

    if status not in ScheduledDose.PATIENT_STATUSES:
        raise ValidationError(f"Invalid status {status!r}; expected taken or skipped.", stage='dose')

    try:
        dose = ScheduledDose.objects.select_related('medication').filter(pk=dose_id).first()
    except (TypeError, ValueError):
        dose = None
    if dose is None:
        raise NotFoundError("Dose not found.", stage='dose')

    policy.require_act_on_dose(patient, dose)

    if dose.is_terminal():
        logger.warning(f"Dose {dose.pk} already {dose.status}; overwriting with {status}")

    dose.status = status
    dose.note = note or None
    dose.acted_at = now
    dose.save(update_fields=['status', 'note', 'acted_at'])

    logger.info(f"Patient {patient.pk} marked dose {dose.pk} ({dose.medication.name}) as {status}")
    return dose


def sweep_overdue(now: Optional[datetime] = None) -> int:
    """
    Mark every dose still pending more than the grace period after its
    scheduled time as missed. Returns the number of doses changed.

    Only pending doses are touched, so running it again (or concurrently)
    finds nothing further to change.
    """
    now = now or clock.now()
    cutoff = now - MISSED_DOSE_GRACE_PERIOD

    updated = ScheduledDose.objects.filter(
        status=ScheduledDose.Status.PENDING,
        scheduled_at__lt=cutoff
    ).update(status=ScheduledDose.Status.MISSED)

    logger.info(f"Marked {updated} dose(s) as missed (scheduled before {cutoff.isoformat()})")
    return updated
