from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def sweep_missed_doses():
    """
    Mark pending doses past the grace window as missed.
    Runs every 5 minutes from Celery beat.
    """
    from .services.lifecycle import sweep_overdue

    logger.info("Checking for missed medication doses")
    updated = sweep_overdue()
    return f"Marked {updated} doses as missed"
