"""
Access-control layer.

Resolves who is acting (role is computed per request from the stored profile,
never taken from the client) and enforces the row scope before data reaches a
caller. A doctor only ever reaches cases whose doctor_id is their own linked
doctor record; reaching for anything else raises InsufficientAuthorization.
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction

from .exceptions import ConstraintViolation, InsufficientAuthorization, NotFound, ValidationError
from .models import Case, Doctor, LabMember
from .types import ROLE_DOCTOR, ROLE_TECH, Actor

logger = logging.getLogger(__name__)


def display_name_for(user):
    """Lab member display name, else linked doctor name, else email local part."""
    profile = LabMember.objects.filter(user=user).only('display_name').first()
    if profile and profile.display_name:
        return profile.display_name
    doctor = Doctor.objects.filter(auth_user=user).only('name').first()
    if doctor and doctor.name:
        return doctor.name
    email = getattr(user, 'email', '') or ''
    return email.split('@')[0] if email else (user.get_username() or 'Unknown')


def resolve_actor(user):
    """
    Classify an authenticated user as admin / tech / doctor.

    Lab members take precedence over a doctor link. Users with neither have
    no role and are refused.
    """
    if user is None or not getattr(user, 'is_authenticated', False):
        raise InsufficientAuthorization(
            message='Authentication required.',
            code='NOT_AUTHENTICATED',
            http_status=401,
        )

    profile = LabMember.objects.filter(user=user).first()
    if profile is not None:
        return Actor(
            user_id=user.pk,
            role=profile.role or ROLE_TECH,
            name=profile.display_name or display_name_for(user),
        )

    doctor = Doctor.objects.filter(auth_user=user).first()
    if doctor is not None:
        return Actor(user_id=user.pk, role=ROLE_DOCTOR, name=doctor.name, doctor_id=doctor.id)

    logger.warning("[Access] user %s has no lab profile and no linked doctor", user.pk)
    raise InsufficientAuthorization(
        message='This account has no role in the lab.',
        code='NO_ROLE',
    )


def require_lab_staff(actor, action='perform this action'):
    if not actor.is_lab_staff:
        logger.warning("[Access] %s (%s) denied: %s", actor.user_id, actor.role, action)
        raise InsufficientAuthorization(
            message=f'Only lab staff may {action}.',
            code='LAB_STAFF_ONLY',
            detail={'role': actor.role},
        )


def require_admin(actor, action='perform this action'):
    if not actor.is_admin:
        logger.warning("[Access] %s (%s) denied: %s", actor.user_id, actor.role, action)
        raise InsufficientAuthorization(
            message=f'Only lab admins may {action}.',
            code='ADMIN_ONLY',
            detail={'role': actor.role},
        )


def scoped_cases(actor, queryset=None):
    """Cases the actor may see. Doctors are narrowed to their own doctor_id."""
    qs = Case.objects.all() if queryset is None else queryset
    if actor.is_lab_staff:
        return qs
    if actor.role == ROLE_DOCTOR and actor.doctor_id is not None:
        return qs.filter(doctor_id=actor.doctor_id)
    raise InsufficientAuthorization(message='No case access for this account.', code='NO_ROLE')


def get_case(case_id):
    try:
        return Case.objects.select_related('doctor').get(id=case_id)
    except (Case.DoesNotExist, ValueError, DjangoValidationError):
        raise NotFound(
            message='Case not found',
            code='CASE_NOT_FOUND',
            detail={'case_id': str(case_id)},
        )


def get_case_for(actor, case_id):
    """
    Load one case on behalf of `actor`.

    A doctor asking for somebody else's case gets InsufficientAuthorization,
    not a NotFound, so the caller can redirect away instead of rendering.
    """
    case = get_case(case_id)
    if actor.is_lab_staff:
        return case
    if actor.role == ROLE_DOCTOR and actor.doctor_id is not None and case.doctor_id == actor.doctor_id:
        return case
    logger.warning("[Access] %s (%s) tried to reach case %s", actor.user_id, actor.role, case.case_number)
    raise InsufficientAuthorization(
        message='You do not have access to this case.',
        code='CASE_OUT_OF_SCOPE',
        detail={'case_id': str(case_id)},
    )


# ── Doctor registration binding ────────────────────────────────────────────

def _normalize_email(email):
    return (email or '').strip()


def is_registrable_email(email):
    """True when `email` exactly matches a doctor record not yet linked to a login."""
    email = _normalize_email(email)
    if not email:
        return False
    return Doctor.objects.filter(email=email, auth_user__isnull=True).exists()


def claim_doctor_account(user, email):
    """
    Link `user` to the unlinked Doctor whose email matches, once.

    The claim is a conditional UPDATE ... WHERE auth_user IS NULL inside a
    transaction, so of two racing claims exactly one wins.

    Raises:
        NotFound:            no doctor has this email
        ConstraintViolation: the doctor is already linked, or the user already
                             owns a doctor record
    """
    email = _normalize_email(email)
    if not email:
        raise ValidationError(
            message='Email is required.',
            detail={'errors': [{'field': 'email', 'message': 'Email is required.'}]},
        )

    with transaction.atomic():
        # Doctor.email is not unique: an unlinked record with this email wins over a linked one.
        matches = Doctor.objects.select_for_update().filter(email=email)
        doctor = (
            matches.filter(auth_user__isnull=True).order_by('created_at', 'id').first()
            or matches.order_by('created_at', 'id').first()
        )
        if doctor is None:
            raise NotFound(
                message='No doctor record found for this email. Please contact your lab to ensure your email is on file.',
                code='DOCTOR_EMAIL_NOT_FOUND',
                detail={'email': email},
            )
        if Doctor.objects.filter(auth_user=user).exclude(id=doctor.id).exists():
            raise ConstraintViolation(
                message='This account is already linked to another doctor record.',
                code='USER_ALREADY_LINKED',
            )

        claimed = Doctor.objects.filter(id=doctor.id, auth_user__isnull=True).update(auth_user=user)
        if claimed != 1:
            raise ConstraintViolation(
                message=f'The doctor record for {email} is already linked to an account.',
                code='DOCTOR_ALREADY_LINKED',
                detail={'doctor_id': str(doctor.id)},
            )

    doctor.refresh_from_db()
    logger.info("[Access] doctor %s linked to user %s", doctor.id, user.pk)
    return doctor
