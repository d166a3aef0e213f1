"""
Plain dataclasses passed between views and services.

Services consume these, never raw request payloads.
"""

from dataclasses import dataclass
from typing import Any, Optional

ROLE_ADMIN = 'admin'
ROLE_TECH = 'tech'
ROLE_DOCTOR = 'doctor'

LAB_ROLES = (ROLE_ADMIN, ROLE_TECH)
ROLES = (ROLE_ADMIN, ROLE_TECH, ROLE_DOCTOR)


@dataclass(frozen=True)
class Actor:
    """
    The acting identity, resolved server-side for every request.

    role       admin / tech / doctor
    doctor_id  set only for doctors; the row scope key
    """

    user_id: Any
    role: str
    name: str = ''
    doctor_id: Optional[Any] = None

    @property
    def is_lab_staff(self) -> bool:
        return self.role in LAB_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass
class ShippingInfo:
    carrier: str
    tracking_number: str = ''

