"""
Request payload parsing.

Each parser collects every field problem first, then raises a single
ValidationError with detail={"errors": [{"field", "message"}, ...]}.
Services receive only the cleaned values.
"""

from datetime import date
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email

from .catalog import (
    DEFAULT_MATERIAL_UNIT,
    DEFAULT_RESTORATION_TYPE,
    DEFAULT_SHADE,
    MATERIAL_CATEGORIES,
    MATERIAL_UNITS,
    RESTORATION_TYPES,
    STATUS_FLOW,
)
from .exceptions import ValidationError
from .types import ShippingInfo

CASE_FIELDS = ('patient', 'doctor_id', 'type', 'shade', 'due', 'price', 'rush', 'notes')
CASE_EDIT_FIELDS = CASE_FIELDS + ('status',)
DOCTOR_FIELDS = ('name', 'practice', 'email', 'phone')
MATERIAL_FIELDS = (
    'name', 'sku', 'category', 'unit', 'quantity', 'reorder_level', 'unit_cost', 'supplier', 'notes',
)

# max_digits of the DecimalFields these values land in (two decimal places each)
PRICE_MAX_DIGITS = 10
QUANTITY_MAX_DIGITS = 12


def _raise_if_errors(errors):
    if errors:
        raise ValidationError(
            message="Request validation failed.",
            code="VALIDATION_ERROR",
            detail={"errors": errors},
        )


def _parse_date(value):
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def _parse_money(value):
    amount = Decimal(str(value).strip() or '0')
    if not amount.is_finite():
        raise InvalidOperation
    return amount.quantize(Decimal('0.01'))


def _over_limit(amount, max_digits):
    return abs(amount) >= Decimal(10) ** (max_digits - 2)


def _limit_message(label, max_digits):
    largest = Decimal(10) ** (max_digits - 2) - Decimal('0.01')
    return f"{label} cannot exceed {largest:,}."


def _parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def parse_case_payload(data, partial=False):
    """
    Clean a case create (partial=False) or edit (partial=True) payload.

    Returns a dict keyed by model field names (`type` becomes
    `restoration_type`). On edit only the keys present in `data` are returned.
    """
    data = data or {}
    allowed = CASE_EDIT_FIELDS if partial else CASE_FIELDS
    cleaned = {}
    errors = []

    if not partial:
        for name in ('patient', 'doctor_id', 'due'):
            if not str(data.get(name) or '').strip():
                errors.append({"field": name, "message": f"{name} is required."})

    for name in allowed:
        if name not in data or any(e["field"] == name for e in errors):
            continue
        value = data[name]

        if name == 'patient':
            patient = str(value or '').strip()
            if not patient:
                errors.append({"field": name, "message": "Patient name cannot be blank."})
            cleaned['patient'] = patient
        elif name == 'doctor_id':
            cleaned['doctor_id'] = str(value).strip()
        elif name == 'type':
            rtype = str(value or '').strip() or DEFAULT_RESTORATION_TYPE
            if rtype not in RESTORATION_TYPES:
                errors.append({"field": name, "message": f"Unknown restoration type: {rtype!r}."})
            cleaned['restoration_type'] = rtype
        elif name == 'shade':
            cleaned['shade'] = str(value or '').strip() or DEFAULT_SHADE
        elif name == 'due':
            try:
                cleaned['due'] = _parse_date(value)
            except ValueError:
                errors.append({"field": name, "message": "Due date must be YYYY-MM-DD."})
        elif name == 'price':
            try:
                price = _parse_money(value)
            except (InvalidOperation, ValueError):
                errors.append({"field": name, "message": "Price must be a number."})
                continue
            if price < 0:
                errors.append({"field": name, "message": "Price cannot be negative."})
            elif _over_limit(price, PRICE_MAX_DIGITS):
                errors.append({"field": name, "message": _limit_message("Price", PRICE_MAX_DIGITS)})
            cleaned['price'] = price
        elif name == 'rush':
            cleaned['rush'] = _parse_bool(value)
        elif name == 'notes':
            cleaned['notes'] = str(value or '').strip() or None
        elif name == 'status':
            if value not in STATUS_FLOW:
                errors.append({"field": name, "message": f"Unknown status: {value!r}."})
            cleaned['status'] = value

    if not partial:
        cleaned.setdefault('restoration_type', DEFAULT_RESTORATION_TYPE)
        cleaned.setdefault('shade', DEFAULT_SHADE)

    _raise_if_errors(errors)
    return cleaned


def parse_shipping_info(data):
    """
    Pull {carrier, tracking_number} out of a payload.

    Accepts `carrier` or `shipping_carrier`, and `tracking_number` or
    `trackingNumber`. Returns None when no carrier was sent.
    """
    data = data or {}
    carrier = str(data.get('carrier') or data.get('shipping_carrier') or '').strip()
    tracking = str(data.get('tracking_number') or data.get('trackingNumber') or '').strip()
    if not carrier:
        if tracking:
            _raise_if_errors([{"field": "carrier", "message": "Carrier is required with a tracking number."}])
        return None
    return ShippingInfo(carrier=carrier, tracking_number=tracking)


def parse_quantity(value, field_name='quantity'):
    """Positive decimal quantity, two places."""
    try:
        quantity = _parse_money(value)
    except (InvalidOperation, ValueError, TypeError):
        _raise_if_errors([{"field": field_name, "message": "Quantity must be a number."}])
    if quantity <= 0:
        _raise_if_errors([{"field": field_name, "message": "Quantity must be greater than zero."}])
    if _over_limit(quantity, QUANTITY_MAX_DIGITS):
        _raise_if_errors([{"field": field_name, "message": _limit_message("Quantity", QUANTITY_MAX_DIGITS)}])
    return quantity


def _check_length(errors, name, text, max_length):
    if len(text) > max_length:
        errors.append({"field": name, "message": f"{name} cannot exceed {max_length} characters."})


def parse_doctor_payload(data, partial=False):
    """
    Clean a doctor create (partial=False) or edit (partial=True) payload.

    Name and practice are required on create. Email and phone are optional;
    blank values are stored as None.
    """
    data = data or {}
    cleaned = {}
    errors = []

    if not partial:
        for name in ('name', 'practice'):
            if not str(data.get(name) or '').strip():
                errors.append({"field": name, "message": f"{name} is required."})

    for name in DOCTOR_FIELDS:
        if name not in data or any(e["field"] == name for e in errors):
            continue
        text = str(data[name] or '').strip()

        if name in ('name', 'practice'):
            if not text:
                errors.append({"field": name, "message": f"{name} cannot be blank."})
            _check_length(errors, name, text, 200)
            cleaned[name] = text
        elif name == 'email':
            if text:
                try:
                    validate_email(text)
                except DjangoValidationError:
                    errors.append({"field": name, "message": "Enter a valid email address."})
            cleaned['email'] = text or None
        elif name == 'phone':
            _check_length(errors, name, text, 50)
            cleaned['phone'] = text or None

    _raise_if_errors(errors)
    return cleaned


def parse_material_payload(data, partial=False):
    """
    Clean a material create (partial=False) or edit (partial=True) payload.

    Name is required on create. Blank stock figures count as zero; none may
    be negative. Category and unit must come from the catalog.
    """
    data = data or {}
    cleaned = {}
    errors = []

    if not partial and not str(data.get('name') or '').strip():
        errors.append({"field": "name", "message": "name is required."})

    for name in MATERIAL_FIELDS:
        if name not in data or any(e["field"] == name for e in errors):
            continue
        value = data[name]

        if name in ('quantity', 'reorder_level', 'unit_cost'):
            max_digits = PRICE_MAX_DIGITS if name == 'unit_cost' else QUANTITY_MAX_DIGITS
            label = name.replace('_', ' ').capitalize()
            try:
                amount = _parse_money('' if value is None else value)
            except (InvalidOperation, ValueError):
                errors.append({"field": name, "message": f"{label} must be a number."})
                continue
            if amount < 0:
                errors.append({"field": name, "message": f"{label} cannot be negative."})
            elif _over_limit(amount, max_digits):
                errors.append({"field": name, "message": _limit_message(label, max_digits)})
            cleaned[name] = amount
            continue

        text = str(value or '').strip()
        if name == 'name':
            if not text:
                errors.append({"field": name, "message": "name cannot be blank."})
            _check_length(errors, name, text, 200)
        elif name == 'category':
            if text and text not in MATERIAL_CATEGORIES:
                errors.append({"field": name, "message": f"Unknown category: {text!r}."})
        elif name == 'unit':
            text = text or DEFAULT_MATERIAL_UNIT
            if text not in MATERIAL_UNITS:
                errors.append({"field": name, "message": f"Unknown unit: {text!r}."})
        elif name == 'sku':
            _check_length(errors, name, text, 100)
        elif name == 'supplier':
            _check_length(errors, name, text, 200)
        cleaned[name] = text

    _raise_if_errors(errors)
    return cleaned
