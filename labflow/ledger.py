"""
Material ledger: stock consumed by cases.

attach() and detach() each run as one transaction with the material row
locked, and apply the stock change as an F() expression so the arithmetic
happens in the database. A changed quantity is modelled as detach + attach,
never an in-place edit, so every stock movement has a matching opposite.
"""

import logging

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import OperationalError, transaction
from django.db.models import F
from django.utils import timezone

from . import access
from .activity import log_activity
from .exceptions import ConcurrencyConflict, ConstraintViolation, NotFound
from .intake import parse_quantity
from .models import Case, CaseMaterial, Material

logger = logging.getLogger(__name__)


def _allow_negative_stock():
    return bool(getattr(settings, 'LABFLOW_ALLOW_NEGATIVE_STOCK', False))


def _fmt_qty(quantity):
    return f"{quantity.normalize():f}"


def _get(queryset, pk, label):
    try:
        return queryset.get(id=pk)
    except (queryset.model.DoesNotExist, ValueError, DjangoValidationError):
        raise NotFound(
            message=f'{label.capitalize()} not found',
            code=f'{label.upper()}_NOT_FOUND',
            detail={f'{label}_id': str(pk)},
        )


def attach(case_id, material_id, quantity, actor=None):
    """
    Record that `quantity` of a material was used on a case and take it out of stock.

    Raises:
        ValidationError:     quantity is not > 0
        NotFound:            case or material id does not resolve
        ConstraintViolation: not enough stock (unless LABFLOW_ALLOW_NEGATIVE_STOCK)
        ConcurrencyConflict: the store aborted the transaction
    """
    if actor is not None:
        access.require_lab_staff(actor, 'record material usage')
    quantity = parse_quantity(quantity)

    try:
        with transaction.atomic():
            case = _get(Case.objects.all(), case_id, 'case')
            material = _get(Material.objects.select_for_update(), material_id, 'material')

            if material.quantity < quantity:
                if not _allow_negative_stock():
                    logger.warning("[Ledger] %s: %s %s of %s requested, %s in stock",
                                   case.case_number, quantity, material.unit, material.name, material.quantity)
                    raise ConstraintViolation(
                        message=(
                            f'Only {_fmt_qty(material.quantity)} {material.unit} of {material.name} in stock; '
                            f'{_fmt_qty(quantity)} requested.'
                        ),
                        code='INSUFFICIENT_STOCK',
                        detail={
                            'material_id': str(material.id),
                            'in_stock': str(material.quantity),
                            'requested': str(quantity),
                        },
                    )
                logger.warning("[Ledger] %s takes %s below zero", case.case_number, material.name)

            link = CaseMaterial.objects.create(case=case, material=material, quantity_used=quantity)
            Material.objects.filter(id=material.id).update(
                quantity=F('quantity') - quantity,
                updated_at=timezone.now(),
            )
    except OperationalError as exc:
        logger.warning("[Ledger] attach to case %s rolled back: %s", case_id, exc)
        raise ConcurrencyConflict(
            message='Stock was being changed by someone else; reload and try again.',
            detail={'case_id': str(case_id), 'material_id': str(material_id)},
        ) from exc

    logger.info("[Ledger] %s used %s %s of %s", case.case_number, quantity, material.unit, material.name)
    log_activity(
        actor,
        f'used {_fmt_qty(quantity)} {material.unit} of {material.name}',
        case=case,
        details={'material_id': str(material.id), 'quantity': str(quantity)},
    )
    return link


def detach(case_material_id, actor=None):
    """
    Remove a usage record and put its exact quantity back into stock.

    An id that does not resolve is a no-op (repeated clicks are harmless).
    """
    if actor is not None:
        access.require_lab_staff(actor, 'record material usage')

    try:
        with transaction.atomic():
            try:
                link = (
                    CaseMaterial.objects.select_for_update()
                    .select_related('case', 'material')
                    .filter(id=case_material_id)
                    .first()
                )
            except (ValueError, DjangoValidationError):
                link = None
            if link is None:
                logger.info("[Ledger] detach %s: already gone", case_material_id)
                return None

            Material.objects.filter(id=link.material_id).update(
                quantity=F('quantity') + link.quantity_used,
                updated_at=timezone.now(),
            )
            link.delete()
    except OperationalError as exc:
        logger.warning("[Ledger] detach %s rolled back: %s", case_material_id, exc)
        raise ConcurrencyConflict(
            message='Stock was being changed by someone else; reload and try again.',
            detail={'case_material_id': str(case_material_id)},
        ) from exc

    logger.info("[Ledger] %s returned %s %s of %s",
                link.case.case_number, link.quantity_used, link.material.unit, link.material.name)
    log_activity(
        actor,
        f'removed {_fmt_qty(link.quantity_used)} {link.material.unit} of {link.material.name}',
        case=link.case,
        details={'material_id': str(link.material_id), 'quantity': str(link.quantity_used)},
    )
    return None


def case_materials(case):
    """Usage rows for a case, oldest first, with their material."""
    return CaseMaterial.objects.filter(case=case).select_related('material').order_by('created_at')
