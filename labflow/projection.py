"""
Role projection: what each viewer role may see of a case.

  admin   every field
  tech    every field except the financial ones (price, invoiced)
  doctor  the portal field set; own cases only, no financial fields and no
          contact data of any doctor

The viewer's role and doctor id are always passed in explicitly.
"""

from .exceptions import InsufficientAuthorization
from .serializers import serialize_case
from .types import ROLE_ADMIN, ROLE_DOCTOR, ROLE_TECH

FINANCIAL_FIELDS = frozenset({'price', 'invoiced'})

DOCTOR_FIELDS = (
    'id',
    'case_number',
    'patient',
    'type',
    'shade',
    'status',
    'status_label',
    'rush',
    'due',
    'overdue',
    'notes',
    'shipping_carrier',
    'tracking_number',
    'shipped_at',
    'created_at',
    'updated_at',
)


def _unknown_role(viewer_role):
    return InsufficientAuthorization(
        message=f'Unknown viewer role: {viewer_role!r}.',
        code='UNKNOWN_ROLE',
    )


def project_case(case, viewer_role):
    """serialize_case() trimmed to what `viewer_role` may see."""
    data = serialize_case(case)
    if viewer_role == ROLE_ADMIN:
        return data
    if viewer_role == ROLE_TECH:
        return {k: v for k, v in data.items() if k not in FINANCIAL_FIELDS}
    if viewer_role == ROLE_DOCTOR:
        return {k: data[k] for k in DOCTOR_FIELDS}
    raise _unknown_role(viewer_role)


def project_case_list(cases, viewer_role, viewer_doctor_id=None):
    """
    Project a list of cases, applying the row scope first.

    For doctors only cases with doctor_id == viewer_doctor_id survive; a doctor
    viewer without a doctor id sees nothing and is refused.
    """
    if viewer_role == ROLE_DOCTOR:
        if viewer_doctor_id is None:
            raise InsufficientAuthorization(
                message='Doctor viewer has no linked doctor record.',
                code='DOCTOR_NOT_LINKED',
            )
        wanted = str(viewer_doctor_id)
        cases = [c for c in cases if str(c.doctor_id) == wanted]
    elif viewer_role not in (ROLE_ADMIN, ROLE_TECH):
        raise _unknown_role(viewer_role)

    return [project_case(c, viewer_role) for c in cases]
