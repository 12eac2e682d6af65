"""
Celery tasks for gradebook app.
Rebuilds season summaries from the grade ledger in the background.
"""
import logging

from celery import shared_task
from django.db import OperationalError

from . import config


logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=config.TASK_MAX_RETRIES,
    default_retry_delay=config.TASK_RETRY_DELAY,
    soft_time_limit=config.TASK_SOFT_TIME_LIMIT,
    time_limit=config.TASK_TIME_LIMIT,
)
def reconcile_grade_summaries(self, subject_id=None, season_id=None, student_id=None):
    """
    Rebuild grade summaries from the ledger, optionally narrowed to one
    subject, season or student.

    Retries on transient database errors (e.g. a locked SQLite file or a
    dropped connection).

    Returns:
        dict with checked, repaired and failed counts
    """
    from .services import reconcile_summaries

    try:
        stats = reconcile_summaries(subject=subject_id, season=season_id, student=student_id)
    except OperationalError as exc:
        logger.warning(
            f"Summary reconciliation hit a database error, retry "
            f"{self.request.retries + 1}/{self.max_retries}: {exc}"
        )
        raise self.retry(exc=exc)

    if stats['repaired']:
        logger.warning(f"Reconciliation repaired {stats['repaired']} drifted grade summaries")
    return stats
