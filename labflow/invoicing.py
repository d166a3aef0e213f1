"""
Invoice reconciliation.

`invoiced` is a plain flag, independent of the status flow: a case can be
billed before or after it ships. The aggregates below are the contract the
reporting side reads; amounts are Decimal with two places.
"""

import logging
from decimal import Decimal

from django.db import OperationalError, transaction
from django.db.models import Count, DecimalField, Q, Sum, Value
from django.db.models.functions import Coalesce, TruncMonth

from . import access
from .activity import log_activity
from .exceptions import ConcurrencyConflict
from .models import Case
from .serializers import CENTS

logger = logging.getLogger(__name__)

_AMOUNT = DecimalField(max_digits=14, decimal_places=2)


def _cents(value):
    return Decimal(value or 0).quantize(CENTS)


def toggle_invoiced(case_id, actor=None):
    """Flip `invoiced` on a case. Lab admins only. Returns the updated case."""
    if actor is not None:
        access.require_admin(actor, 'change invoicing')

    access.get_case(case_id)
    try:
        with transaction.atomic():
            case = Case.objects.select_for_update().get(id=case_id)
            case.invoiced = not case.invoiced
            case.save(update_fields=['invoiced', 'updated_at'])
    except OperationalError as exc:
        logger.warning("[Invoicing] toggle on case %s rolled back: %s", case_id, exc)
        raise ConcurrencyConflict(
            message='The case is being changed by someone else; reload and try again.',
            detail={'case_id': str(case_id)},
        ) from exc

    action = 'marked as invoiced' if case.invoiced else 'unmarked as invoiced'
    logger.info("[Invoicing] %s %s", case.case_number, action)
    log_activity(actor, action, case=case)
    return case


def _sums():
    # aliases must not shadow Case fields: filter=Q(invoiced=...) would resolve to the aggregate
    zero = Value(Decimal('0.00'), output_field=_AMOUNT)
    return {
        'pending_amount': Coalesce(Sum('price', filter=Q(invoiced=False)), zero, output_field=_AMOUNT),
        'invoiced_amount': Coalesce(Sum('price', filter=Q(invoiced=True)), zero, output_field=_AMOUNT),
        'pending_count': Count('id', filter=Q(invoiced=False)),
        'invoiced_count': Count('id', filter=Q(invoiced=True)),
    }


def _row(row):
    return {
        'pending': _cents(row['pending_amount']),
        'invoiced': _cents(row['invoiced_amount']),
        'pending_count': row['pending_count'],
        'invoiced_count': row['invoiced_count'],
    }


def invoice_totals(queryset=None):
    """Sum of price over pending (not invoiced) and invoiced cases."""
    qs = Case.objects.all() if queryset is None else queryset
    return _row(qs.aggregate(**_sums()))


def invoice_totals_by_month(queryset=None):
    """Pending / invoiced sums grouped by month of creation, oldest month first."""
    qs = Case.objects.all() if queryset is None else queryset
    rows = (
        qs.annotate(month=TruncMonth('created_at'))
        .values('month')
        .annotate(**_sums())
        .order_by('month')
    )
    return [{'month': row['month'].strftime('%Y-%m'), **_row(row)} for row in rows]


def invoice_totals_by_doctor(queryset=None):
    """Pending / invoiced sums grouped by doctor, by doctor name."""
    qs = Case.objects.all() if queryset is None else queryset
    rows = (
        qs.values('doctor_id', 'doctor__name')
        .annotate(**_sums())
        .order_by('doctor__name', 'doctor_id')
    )
    return [
        {'doctor_id': str(row['doctor_id']), 'doctor_name': row['doctor__name'], **_row(row)}
        for row in rows
    ]
