# medication/services/notifications.py
import logging
from datetime import datetime
from typing import Optional

from django.db import DatabaseError

from users.models import User
from ..exceptions import NotFoundError, PersistenceError
from ..models import NudgeLog
from ..permissions import authorization_policy
from . import clock

logger = logging.getLogger(__name__)

DEFAULT_NUDGE_MESSAGE = (
    "Hi {name}, please remember to take your medications on time. Your health matters!"
)


def default_nudge_message(patient: User) -> str:
    return DEFAULT_NUDGE_MESSAGE.format(name=patient.display_name)


def send_nudge(doctor: User, patient_id, message: Optional[str] = None,
               now: Optional[datetime] = None, policy=None) -> NudgeLog:
    """
    Send a reminder from a doctor to one of their patients.

    Delivery is not wired to any channel yet; the nudge is recorded and logged.
    """
    now = now or clock.now()
    policy = policy or authorization_policy

    try:
        patient = User.objects.filter(pk=patient_id, role=User.Role.PATIENT).first()
    except (TypeError, ValueError):
        patient = None
    if patient is None:
        raise NotFoundError("Patient not found.", stage='patient')

    policy.require_nudge(doctor, patient)

    text = (message or '').strip() or default_nudge_message(patient)
    try:
        nudge = NudgeLog.objects.create(doctor=doctor, patient=patient, message=text)
    except DatabaseError as e:
        logger.exception(f"Failed to record nudge from doctor {doctor.pk} to patient {patient.pk}")
        raise PersistenceError(f"Failed to send nudge: {e}", stage='patient')

    logger.info(f"Nudge {nudge.pk} sent by doctor {doctor.pk} to patient {patient.pk} at {now.isoformat()}")
    return nudge
