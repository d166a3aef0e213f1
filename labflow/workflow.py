"""
Case status engine.

    received -> in_progress -> quality_check -> ready -> shipped

advance() moves one step forward, retreat() one step back (only from
quality_check, ready and shipped), set_status() jumps anywhere for manual
corrections. Every write locks the case row, re-reads its status and commits
in one transaction. Shipment fields are kept consistent with the status on
every path:

    shipped_at / shipping_carrier are set  <=>  status == 'shipped'
"""

import logging

from django.db import OperationalError, transaction
from django.utils import timezone

from . import access
from .activity import log_activity, status_change_action
from .catalog import BACKWARD_MOVES, STATUS_FLOW, STATUS_LABELS
from .exceptions import ConcurrencyConflict, InvalidTransition, NotFound, ValidationError
from .models import Case

logger = logging.getLogger(__name__)

SHIPMENT_FIELDS = ['shipping_carrier', 'tracking_number', 'shipped_at']


def next_status(status):
    """Status one step forward, or None at the end of the flow."""
    if status not in STATUS_FLOW:
        return None
    idx = STATUS_FLOW.index(status)
    return STATUS_FLOW[idx + 1] if idx + 1 < len(STATUS_FLOW) else None


def previous_status(status):
    """Status one step back, or None where retreat is not allowed."""
    return BACKWARD_MOVES.get(status)


def available_moves(case):
    """The forward / backward targets offered for `case` (None when unavailable)."""
    return {
        'next': next_status(case.status),
        'back': previous_status(case.status),
    }


def _shipping_required(case):
    return ValidationError(
        message=f'Shipping carrier is required to mark {case.case_number} as shipped.',
        code='SHIPPING_INFO_REQUIRED',
        detail={'errors': [{'field': 'carrier', 'message': 'Carrier is required when shipping a case.'}]},
    )


def normalize_shipment(case, status, shipping_info=None, now=None):
    """
    Bring the shipment fields of `case` in line with `status` (in memory).

    - to 'shipped': apply shipping_info if given; a carrier must end up set;
      shipped_at is stamped if missing
    - anything else: carrier, tracking number and shipped_at are cleared

    Returns the names of fields that changed.
    """
    changed = []

    def _set(name, value):
        if getattr(case, name) != value:
            setattr(case, name, value)
            changed.append(name)

    if status == 'shipped':
        if shipping_info is not None:
            _set('shipping_carrier', shipping_info.carrier)
            _set('tracking_number', shipping_info.tracking_number or None)
        if not case.shipping_carrier:
            raise _shipping_required(case)
        if case.shipped_at is None:
            _set('shipped_at', now or timezone.now())
    else:
        for name in SHIPMENT_FIELDS:
            _set(name, None)

    return changed


def _lock(case_id):
    try:
        return Case.objects.select_for_update().get(id=case_id)
    except Case.DoesNotExist:
        raise NotFound(
            message='Case not found',
            code='CASE_NOT_FOUND',
            detail={'case_id': str(case_id)},
        )


def _write(case, expected_status, apply):
    """
    Lock the row, check it still has `expected_status` (None skips the check),
    run apply(locked) -> update_fields, save. Returns (old_status, locked).
    """
    try:
        with transaction.atomic():
            locked = _lock(case.id)
            if expected_status is not None and locked.status != expected_status:
                raise ConcurrencyConflict(
                    message=(
                        f'{locked.case_number} is now {STATUS_LABELS.get(locked.status, locked.status)}; '
                        f'reload and try again.'
                    ),
                    detail={
                        'case_id': str(locked.id),
                        'expected_status': expected_status,
                        'current_status': locked.status,
                    },
                )
            old_status = locked.status
            fields = apply(locked)
            if fields:
                locked.save(update_fields=list(dict.fromkeys(fields + ['updated_at'])))
            return old_status, locked
    except OperationalError as exc:
        logger.warning("[Workflow] store rejected write to case %s: %s", case.id, exc)
        raise ConcurrencyConflict(
            message='The case is being changed by someone else; reload and try again.',
            detail={'case_id': str(case.id)},
        ) from exc


def _after_transition(actor, case, old_status):
    logger.info("[Workflow] %s: %s -> %s", case.case_number, old_status, case.status)
    log_activity(
        actor,
        status_change_action(old_status, case.status),
        case=case,
        details={'from': old_status, 'to': case.status},
    )


def advance(case, shipping_info=None, actor=None):
    """
    Move `case` one step forward.

    Reaching 'shipped' needs shipping_info (a ShippingInfo with a carrier);
    shipped_at is stamped with the current time.

    Raises:
        InvalidTransition:   already shipped
        ValidationError:     next step is 'shipped' and no carrier was given
        ConcurrencyConflict: the stored status is no longer case.status
    """
    if actor is not None:
        access.require_lab_staff(actor, 'change case status')

    current = case.status
    target = next_status(current)
    if target is None:
        raise InvalidTransition(
            message=f'Cannot advance {case.case_number}: it is already {STATUS_LABELS.get(current, current)}.',
            detail={'case_id': str(case.id), 'status': current},
        )
    if target == 'shipped' and (shipping_info is None or not shipping_info.carrier):
        raise _shipping_required(case)

    def apply(locked):
        locked.status = target
        fields = ['status']
        if target == 'shipped':
            locked.shipped_at = None
            fields += normalize_shipment(locked, target, shipping_info)
        return fields

    old_status, updated = _write(case, current, apply)
    _after_transition(actor, updated, old_status)
    return updated


def retreat(case, actor=None):
    """
    Move `case` one step back.

    Allowed from quality_check, ready and shipped. Leaving 'shipped' clears
    carrier, tracking number and shipped_at.

    Raises:
        InvalidTransition:   received / in_progress have no backward move
        ConcurrencyConflict: the stored status is no longer case.status
    """
    if actor is not None:
        access.require_lab_staff(actor, 'change case status')

    current = case.status
    target = previous_status(current)
    if target is None:
        raise InvalidTransition(
            message=f'Cannot move {case.case_number} back from {STATUS_LABELS.get(current, current)}.',
            detail={'case_id': str(case.id), 'status': current},
        )

    def apply(locked):
        locked.status = target
        return ['status'] + normalize_shipment(locked, target)

    old_status, updated = _write(case, current, apply)
    _after_transition(actor, updated, old_status)
    return updated


def set_status(case, status, shipping_info=None, actor=None):
    """
    Jump straight to `status` (manual correction from the edit form).

    Not bound by the forward/backward rules, but shipment fields still go
    through normalize_shipment(): jumping to 'shipped' needs a carrier (given
    or already on the case), jumping anywhere else clears them.
    """
    if actor is not None:
        access.require_lab_staff(actor, 'change case status')
    if status not in STATUS_FLOW:
        raise ValidationError(
            message=f'Unknown status: {status!r}.',
            code='UNKNOWN_STATUS',
            detail={'errors': [{'field': 'status', 'message': f'Must be one of {STATUS_FLOW}.'}]},
        )

    def apply(locked):
        fields = normalize_shipment(locked, status, shipping_info)
        if locked.status != status:
            locked.status = status
            fields.append('status')
        return fields

    old_status, updated = _write(case, None, apply)
    if old_status != updated.status:
        _after_transition(actor, updated, old_status)
    return updated
