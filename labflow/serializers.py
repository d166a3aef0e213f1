"""
Response serializers: ORM object -> JSON-able dict.

Output formatting only. What a given viewer is allowed to see is decided in
projection.py, which trims these dicts.
"""

from decimal import Decimal

from .catalog import STATUS_LABELS

CENTS = Decimal('0.01')


def _iso(value):
    return value.isoformat() if value is not None else None


def money(value):
    """Two-decimal string, e.g. Decimal('150') -> '150.00'."""
    return str(Decimal(value or 0).quantize(CENTS))


def serialize_case(case):
    """Every field of a case, unfiltered."""
    doctor = case.doctor
    return {
        'id': str(case.id),
        'case_number': case.case_number,
        'patient': case.patient,
        'doctor_id': str(case.doctor_id),
        'doctor': {
            'id': str(doctor.id),
            'name': doctor.name,
            'practice': doctor.practice,
            'email': doctor.email,
            'phone': doctor.phone,
        },
        'type': case.restoration_type,
        'shade': case.shade,
        'status': case.status,
        'status_label': STATUS_LABELS.get(case.status, case.status),
        'rush': case.rush,
        'due': _iso(case.due),
        'overdue': case.is_overdue,
        'notes': case.notes,
        'price': money(case.price),
        'invoiced': case.invoiced,
        'shipping_carrier': case.shipping_carrier,
        'tracking_number': case.tracking_number,
        'shipped_at': _iso(case.shipped_at),
        'created_at': _iso(case.created_at),
        'updated_at': _iso(case.updated_at),
    }


def serialize_doctor(doctor, case_count=None):
    result = {
        'id': str(doctor.id),
        'name': doctor.name,
        'practice': doctor.practice,
        'email': doctor.email,
        'phone': doctor.phone,
        'portal_linked': doctor.auth_user_id is not None,
    }
    if case_count is not None:
        result['total_cases'] = case_count
    return result


def serialize_material(material):
    return {
        'id': str(material.id),
        'name': material.name,
        'sku': material.sku,
        'category': material.category,
        'unit': material.unit,
        'quantity': str(material.quantity),
        'reorder_level': str(material.reorder_level),
        'needs_reorder': material.needs_reorder,
        'unit_cost': money(material.unit_cost),
        'supplier': material.supplier,
        'notes': material.notes,
    }


def serialize_case_material(link):
    return {
        'id': str(link.id),
        'case_id': str(link.case_id),
        'material_id': str(link.material_id),
        'material': {
            'name': link.material.name,
            'unit': link.material.unit,
        },
        'quantity_used': str(link.quantity_used),
        'created_at': _iso(link.created_at),
    }


def serialize_activity(entry):
    return {
        'id': str(entry.id),
        'case_id': str(entry.case_id) if entry.case_id else None,
        'case_number': entry.case.case_number if entry.case_id else None,
        'user_id': entry.user_id,
        'user_name': entry.user_name,
        'action': entry.action,
        'details': entry.details,
        'created_at': _iso(entry.created_at),
    }
