import logging

from celery import shared_task
from django.utils.dateparse import parse_datetime

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,    # first retry delay (s); doubled on each attempt
    acks_late=True,
    reject_on_worker_lost=True,
    ignore_result=True,
)
def record_activity(self, case_id, user_id, user_name, action, details=None, created_at=None):
    """
    Append one ActivityLogEntry.

    Retry policy:
      - up to 3 retries
      - exponential backoff: 5s -> 10s -> 20s
      - after that the entry is dropped and logged; the audited operation
        already committed and is never affected
    """
    from labflow.models import ActivityLogEntry, Case

    logger.debug("[Celery][record_activity] case=%s action=%r (attempt %d/%d)",
                 case_id, action, self.request.retries + 1, self.max_retries + 1)

    try:
        # The case may have been deleted between dispatch and execution.
        if case_id and not Case.objects.filter(id=case_id).exists():
            case_id = None

        entry = ActivityLogEntry(
            case_id=case_id,
            user_id=user_id,
            user_name=user_name or '',
            action=action,
            details=details or {},
        )
        stamped = parse_datetime(created_at) if created_at else None
        if stamped is not None:
            entry.created_at = stamped
        entry.save()
        return str(entry.id)

    except Exception as exc:
        logger.warning("[Celery] activity %r for case %s failed (attempt %d): %s",
                       action, case_id, self.request.retries + 1, exc)

        if self.request.retries < self.max_retries:
            countdown = self.default_retry_delay * (2 ** self.request.retries)
            raise self.retry(exc=exc, countdown=countdown)

        logger.error("[Celery] activity %r for case %s dropped after %d retries",
                     action, case_id, self.max_retries)
        return None
