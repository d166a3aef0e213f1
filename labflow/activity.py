"""
Audit sink.

log_activity() is fire-and-forget: once the surrounding transaction commits it
hands the entry to the Celery task and returns. Entries for work that rolls
back are never sent. A broker outage or any other dispatch failure is logged
and swallowed; it must never fail the operation being audited.
"""

import logging

from django.db import transaction
from django.utils import timezone

from .catalog import STATUS_LABELS

logger = logging.getLogger(__name__)


def log_activity(actor, action, case=None, details=None):
    """Record `action` by `actor`, optionally against `case`, after commit."""
    case_id = str(case.id) if case is not None else None
    args = (
        case_id,
        actor.user_id if actor is not None else None,
        actor.name if actor is not None else '',
        action,
        details or {},
        timezone.now().isoformat(),
    )

    def dispatch():
        from labflow.tasks import record_activity

        try:
            record_activity.delay(*args)
        except Exception:
            logger.warning("[Activity] could not record %r for case %s", action, case_id, exc_info=True)

    transaction.on_commit(dispatch)


def status_change_action(old_status, new_status):
    return (
        f"changed status from {STATUS_LABELS.get(old_status, old_status)} "
        f"to {STATUS_LABELS.get(new_status, new_status)}"
    )
