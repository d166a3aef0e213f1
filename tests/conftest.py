"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
"""
import pytest
import uuid
from datetime import timedelta
from decimal import Decimal

import factory
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from rest_framework.test import APIClient

from config.celery import app as celery_app
from labflow.models import Case, CaseMaterial, Doctor, LabMember, Material
from labflow.types import ROLE_ADMIN, ROLE_DOCTOR, ROLE_TECH, Actor


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = get_user_model()

    username = factory.LazyFunction(lambda: f'user-{uuid.uuid4().hex[:12]}')
    email = factory.LazyAttribute(lambda o: f'{o.username}@example.com')
    password = factory.django.Password('secret')


class LabMemberFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = LabMember

    user = factory.SubFactory(UserFactory)
    display_name = factory.Sequence(lambda n: f'Tech {n}')
    role = ROLE_TECH


class DoctorFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Doctor

    name = factory.Sequence(lambda n: f'Dr. Smith {n}')
    practice = 'Smile Dental'
    email = factory.Sequence(lambda n: f'doctor{n}@smile.example.com')
    phone = '555-0100'


class MaterialFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Material

    name = factory.Sequence(lambda n: f'Zirconia Disc {n}')
    category = 'Zirconia'
    unit = 'pcs'
    quantity = Decimal('10.00')
    reorder_level = Decimal('2.00')


class CaseFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Case

    patient = factory.Sequence(lambda n: f'Patient {n}')
    doctor = factory.SubFactory(DoctorFactory)
    restoration_type = 'Zirconia Crown'
    shade = 'A2'
    due = factory.LazyFunction(lambda: timezone.localdate() + timedelta(days=7))
    price = Decimal('150.00')
    status = 'received'


class CaseMaterialFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = CaseMaterial

    case = factory.SubFactory(CaseFactory)
    material = factory.SubFactory(MaterialFactory)
    quantity_used = Decimal('1.00')


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def celery_eager():
    """Run the audit task inline so activity rows exist when the call returns."""
    celery_app.conf.task_always_eager = True
    celery_app.conf.task_eager_propagates = True
    yield
    celery_app.conf.task_always_eager = False


@pytest.fixture(autouse=True)
def immediate_on_commit(request, monkeypatch):
    """
    pytest-django wraps each test in a transaction that never commits, so
    on_commit callbacks (the audit dispatch) would never run. Run them inline
    unless the test is marked defer_on_commit.
    """
    if request.node.get_closest_marker('defer_on_commit') is None:
        monkeypatch.setattr(transaction, 'on_commit', lambda func, using=None, robust=False: func())


@pytest.fixture
def admin_member(db):
    return LabMemberFactory(role=ROLE_ADMIN, display_name='Ada Admin')


@pytest.fixture
def tech_member(db):
    return LabMemberFactory(role=ROLE_TECH, display_name='Tom Tech')


@pytest.fixture
def admin(admin_member):
    return Actor(user_id=admin_member.user.pk, role=ROLE_ADMIN, name=admin_member.display_name)


@pytest.fixture
def tech(tech_member):
    return Actor(user_id=tech_member.user.pk, role=ROLE_TECH, name=tech_member.display_name)


@pytest.fixture
def linked_doctor(db):
    """A doctor record already linked to a login."""
    return DoctorFactory(auth_user=UserFactory())


@pytest.fixture
def doctor_actor(linked_doctor):
    return Actor(
        user_id=linked_doctor.auth_user.pk,
        role=ROLE_DOCTOR,
        name=linked_doctor.name,
        doctor_id=linked_doctor.id,
    )


@pytest.fixture
def api_client():
    """DRF test client for integration tests."""
    return APIClient()
