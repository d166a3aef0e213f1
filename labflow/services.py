import logging
from datetime import timedelta

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models, transaction
from django.db.models import Count, F, Q
from django.db.models.functions import Length
from django.db.models.deletion import ProtectedError
from django.utils import timezone

from . import access, workflow
from .activity import log_activity
from .catalog import STATUS_FLOW
from .exceptions import ConstraintViolation, InsufficientAuthorization, NotFound, ValidationError
from .models import ActivityLogEntry, Case, Doctor, Material

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('patient', 'doctor_id', 'restoration_type', 'shade', 'due', 'price', 'rush', 'notes')

SORT_COLUMNS = {
    'case_number': 'case_number',
    'patient': 'patient',
    'doctor': 'doctor__name',
    'type': 'restoration_type',
    'status': 'status_rank',
    'due': 'due',
    'price': 'price',
}


def get_doctor(doctor_id):
    try:
        return Doctor.objects.get(id=doctor_id)
    except (Doctor.DoesNotExist, ValueError, DjangoValidationError):
        raise NotFound(
            message='Doctor not found',
            code='DOCTOR_NOT_FOUND',
            detail={'doctor_id': str(doctor_id)},
        )


def _check_price_permission(actor, fields):
    if actor is not None and 'price' in fields and not actor.is_admin:
        raise InsufficientAuthorization(
            message='Only lab admins may set case prices.',
            code='PRICE_ADMIN_ONLY',
        )


def create_case(fields, actor=None):
    """
    Create a case from cleaned fields (see intake.parse_case_payload).

    The case starts at 'received'; case_number is issued by the model on
    insert. The referenced doctor must already exist.
    """
    if actor is not None:
        access.require_lab_staff(actor, 'create cases')
    _check_price_permission(actor, fields)

    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(
            message=f'Unexpected fields: {sorted(unknown)}.',
            detail={'errors': [{'field': f, 'message': 'Not accepted on create.'} for f in sorted(unknown)]},
        )

    doctor = get_doctor(fields['doctor_id'])
    values = {k: v for k, v in fields.items() if k != 'doctor_id'}
    case = Case.objects.create(doctor=doctor, status='received', **values)

    logger.info("[Cases] %s created for %s (%s)", case.case_number, doctor.name, case.restoration_type)
    log_activity(actor, f'created case {case.case_number}', case=case)
    return case


def update_case(case_id, changes, shipping_info=None, actor=None):
    """
    Apply an edit-form submission.

    Plain field edits are written directly. A `status` in `changes` goes
    through workflow.set_status(), which also keeps the shipment fields
    consistent; both commit together or not at all.
    """
    if actor is not None:
        access.require_lab_staff(actor, 'edit cases')
    _check_price_permission(actor, changes)

    changes = dict(changes)
    new_status = changes.pop('status', None)
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(
            message=f'Fields cannot be edited: {sorted(unknown)}.',
            detail={'errors': [{'field': f, 'message': 'Not editable.'} for f in sorted(unknown)]},
        )

    case = access.get_case(case_id)
    if 'doctor_id' in changes:
        changes['doctor_id'] = get_doctor(changes['doctor_id']).id

    with transaction.atomic():
        locked = Case.objects.select_for_update().get(id=case.id)
        changed = [name for name, value in changes.items() if getattr(locked, name) != value]
        for name in changed:
            setattr(locked, name, changes[name])
        if changed:
            locked.save(update_fields=changed + ['updated_at'])

        if new_status is not None or shipping_info is not None:
            locked = workflow.set_status(
                locked,
                new_status or locked.status,
                shipping_info=shipping_info,
                actor=actor,
            )

    if changed:
        logger.info("[Cases] %s edited: %s", locked.case_number, ', '.join(changed))
        log_activity(
            actor,
            f'updated case {locked.case_number}',
            case=locked,
            details={'fields': [name.replace('_id', '') for name in changed]},
        )
    return Case.objects.select_related('doctor').get(id=locked.id)


def delete_case(case_id, actor=None):
    """Delete a case. Its material usage rows go with it; activity rows stay, unlinked."""
    if actor is not None:
        access.require_lab_staff(actor, 'delete cases')

    case = access.get_case(case_id)
    case_number = case.case_number
    case.delete()

    logger.info("[Cases] %s deleted", case_number)
    log_activity(actor, f'deleted case {case_number}', details={'case_number': case_number})


def list_cases(actor, status=None, search=None, sort='due', direction='asc'):
    """
    Cases visible to `actor`, filtered and sorted.

    Ordering: rush cases first, then position in the status flow, then the
    chosen column in the chosen direction. Sorting by price is only honoured
    for admins.
    """
    qs = access.scoped_cases(actor, Case.objects.select_related('doctor'))

    if status and status != 'all':
        if status not in STATUS_FLOW:
            raise ValidationError(
                message=f'Unknown status filter: {status!r}.',
                detail={'errors': [{'field': 'status', 'message': f'Must be one of {STATUS_FLOW}.'}]},
            )
        qs = qs.filter(status=status)

    if search:
        q = search.strip()
        qs = qs.filter(
            Q(case_number__icontains=q) |
            Q(patient__icontains=q) |
            Q(restoration_type__icontains=q) |
            Q(doctor__name__icontains=q)
        )

    if sort not in SORT_COLUMNS or (sort == 'price' and not actor.is_admin):
        sort = 'due'
    column = SORT_COLUMNS[sort]
    if direction == 'desc':
        column = f'-{column}'

    qs = qs.annotate(
        status_rank=models.Case(
            *[models.When(status=s, then=models.Value(i + 1)) for i, s in enumerate(STATUS_FLOW)],
            default=models.Value(0),
            output_field=models.IntegerField(),
        ),
    )
    # C-999 sorts before C-1000
    qs = qs.annotate(case_number_length=Length('case_number'))
    if sort == 'case_number':
        length = '-case_number_length' if direction == 'desc' else 'case_number_length'
        return qs.order_by('-rush', 'status_rank', length, column)
    return qs.order_by('-rush', 'status_rank', column, 'case_number_length', 'case_number')


def list_shipments(actor, days=None):
    """Shipped cases, most recent first; `days` limits to the last N days."""
    access.require_lab_staff(actor, 'view shipments')
    qs = Case.objects.select_related('doctor').filter(status='shipped')
    if days:
        qs = qs.filter(shipped_at__gte=timezone.now() - timedelta(days=int(days)))
    return qs.order_by('-shipped_at')


def delete_doctor(doctor_id, actor=None):
    """
    Delete a doctor with no cases.

    Raises:
        ConstraintViolation: cases still reference the doctor
    """
    if actor is not None:
        access.require_lab_staff(actor, 'delete doctors')

    doctor = get_doctor(doctor_id)
    total = doctor.cases.count()
    if total:
        raise ConstraintViolation(
            message=(
                f"Cannot delete {doctor.name}: they have {total} case{'' if total == 1 else 's'} linked. "
                f"Remove or reassign their cases first."
            ),
            code='DOCTOR_HAS_CASES',
            detail={'doctor_id': str(doctor.id), 'total_cases': total},
        )

    try:
        doctor.delete()
    except ProtectedError as exc:
        # a case was attached between the count and the delete
        raise ConstraintViolation(
            message=f'Cannot delete {doctor.name}: cases are linked. Remove or reassign their cases first.',
            code='DOCTOR_HAS_CASES',
            detail={'doctor_id': str(doctor.id)},
        ) from exc

    logger.info("[Doctors] %s deleted", doctor.name)
    log_activity(actor, f'deleted doctor {doctor.name}', details={'doctor_id': str(doctor_id)})


def create_doctor(fields, actor=None):
    """Add a doctor from cleaned fields (see intake.parse_doctor_payload)."""
    if actor is not None:
        access.require_lab_staff(actor, 'add doctors')

    doctor = Doctor.objects.create(**fields)

    logger.info("[Doctors] %s added (%s)", doctor.name, doctor.practice)
    log_activity(actor, f'added doctor {doctor.name}', details={'doctor_id': str(doctor.id)})
    return doctor


def update_doctor(doctor_id, changes, actor=None):
    """
    Apply a doctor edit. Only changed fields are written; the portal link
    (auth_user) is never touched here.
    """
    if actor is not None:
        access.require_lab_staff(actor, 'edit doctors')

    doctor = get_doctor(doctor_id)
    with transaction.atomic():
        locked = Doctor.objects.select_for_update().get(id=doctor.id)
        changed = [name for name, value in changes.items() if getattr(locked, name) != value]
        for name in changed:
            setattr(locked, name, changes[name])
        if changed:
            locked.save(update_fields=changed)

    if changed:
        logger.info("[Doctors] %s edited: %s", locked.name, ', '.join(changed))
        log_activity(
            actor,
            f'updated doctor {locked.name}',
            details={'doctor_id': str(locked.id), 'fields': changed},
        )
    return locked


def doctors_with_case_counts():
    return Doctor.objects.annotate(total_cases=Count('cases')).order_by('name')


def recent_activity(actor, case=None, limit=50):
    """Newest activity first, optionally for one case. Lab staff only."""
    access.require_lab_staff(actor, 'view activity')
    qs = ActivityLogEntry.objects.select_related('case')
    if case is not None:
        qs = qs.filter(case=case)
    return qs.order_by('-created_at')[:limit]


def list_materials(actor, low_stock=False):
    """Inventory by name; `low_stock` keeps only materials at or under their reorder level."""
    access.require_lab_staff(actor, 'view inventory')
    qs = Material.objects.order_by('name')
    if low_stock:
        qs = qs.filter(reorder_level__gt=0, quantity__lte=F('reorder_level'))
    return qs


def get_material(material_id):
    try:
        return Material.objects.get(id=material_id)
    except (Material.DoesNotExist, ValueError, DjangoValidationError):
        raise NotFound(
            message='Material not found',
            code='MATERIAL_NOT_FOUND',
            detail={'material_id': str(material_id)},
        )


def create_material(fields, actor=None):
    """Add an inventory item from cleaned fields (see intake.parse_material_payload)."""
    if actor is not None:
        access.require_lab_staff(actor, 'add materials')

    material = Material.objects.create(**fields)

    logger.info("[Inventory] %s added, %s %s in stock", material.name, material.quantity, material.unit)
    log_activity(actor, f'added material {material.name}', details={'material_id': str(material.id)})
    return material


def update_material(material_id, changes, actor=None):
    """
    Apply an inventory edit, including manual stock corrections.

    The row is locked so a correction cannot interleave with a ledger
    attach/detach on the same material.
    """
    if actor is not None:
        access.require_lab_staff(actor, 'edit materials')

    material = get_material(material_id)
    with transaction.atomic():
        locked = Material.objects.select_for_update().get(id=material.id)
        changed = [name for name, value in changes.items() if getattr(locked, name) != value]
        for name in changed:
            setattr(locked, name, changes[name])
        if changed:
            locked.save(update_fields=changed + ['updated_at'])

    if changed:
        logger.info("[Inventory] %s edited: %s", locked.name, ', '.join(changed))
        details = {'material_id': str(locked.id), 'fields': changed}
        if 'quantity' in changed:
            details['quantity'] = str(locked.quantity)
        log_activity(actor, f'updated material {locked.name}', details=details)
    return locked
