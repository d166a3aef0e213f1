import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models, transaction
from django.utils import timezone

from .catalog import DEFAULT_SHADE, STATUS_CHOICES


class Doctor(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    practice = models.CharField(max_length=200, blank=True, default='')
    email = models.EmailField(max_length=254, blank=True, null=True)
    phone = models.CharField(max_length=50, blank=True, null=True)
    # Unlinked doctors cannot use the portal.
    auth_user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='doctor_profile',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'doctors'
        ordering = ['name']

    def __str__(self):
        return self.name


class LabMember(models.Model):
    ROLE_CHOICES = [
        ('admin', 'Admin'),
        ('tech', 'Technician'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='lab_profile',
    )
    display_name = models.CharField(max_length=200, blank=True, default='')
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='tech')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'user_profiles'


class Material(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=100, blank=True, default='')
    category = models.CharField(max_length=50, blank=True, default='')
    unit = models.CharField(max_length=20, default='pcs')
    quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    reorder_level = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    unit_cost = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0'))
    supplier = models.CharField(max_length=200, blank=True, default='')
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'materials'
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def needs_reorder(self):
        return self.reorder_level > 0 and self.quantity <= self.reorder_level


class CaseNumberSequence(models.Model):
    """One row per numbering scope; locked while a case number is issued."""

    name = models.CharField(max_length=50, primary_key=True)
    last_value = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'case_number_sequences'

    @classmethod
    def issue(cls, name='case'):
        """
        Next number in the `name` sequence. Call inside a transaction: the
        sequence row stays locked until it commits.
        """
        start = int(getattr(settings, 'LABFLOW_CASE_NUMBER_START', 1))
        seq, _ = cls.objects.select_for_update().get_or_create(
            name=name,
            defaults={'last_value': start - 1},
        )
        seq.last_value += 1
        seq.save(update_fields=['last_value'])
        return seq.last_value


class Case(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    case_number = models.CharField(max_length=20, unique=True, editable=False)
    patient = models.CharField(max_length=200)
    doctor = models.ForeignKey(Doctor, on_delete=models.PROTECT, related_name='cases')
    restoration_type = models.CharField(max_length=100, db_column='type')
    shade = models.CharField(max_length=20, default=DEFAULT_SHADE)
    due = models.DateField()
    rush = models.BooleanField(default=False)
    notes = models.TextField(blank=True, null=True)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
    )
    invoiced = models.BooleanField(default=False)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='received')
    shipping_carrier = models.CharField(max_length=100, blank=True, null=True)
    tracking_number = models.CharField(max_length=100, blank=True, null=True)
    shipped_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'cases'

    def __str__(self):
        return self.case_number or str(self.id)

    def save(self, *args, **kwargs):
        # case_number is issued here, in the same transaction as the INSERT,
        # so concurrent creates can never draw the same number.
        if self._state.adding and not self.case_number:
            with transaction.atomic():
                prefix = getattr(settings, 'LABFLOW_CASE_NUMBER_PREFIX', 'C-')
                self.case_number = f'{prefix}{CaseNumberSequence.issue()}'
                super().save(*args, **kwargs)
            return
        super().save(*args, **kwargs)

    @property
    def is_overdue(self):
        """Past due and not yet shipped."""
        return self.status != 'shipped' and self.due < timezone.localdate()


class CaseMaterial(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    case = models.ForeignKey(Case, on_delete=models.CASCADE, related_name='case_materials')
    material = models.ForeignKey(Material, on_delete=models.PROTECT, related_name='case_materials')
    quantity_used = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'case_materials'
        ordering = ['created_at']


class ActivityLogEntry(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    case = models.ForeignKey(
        Case,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='activity',
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='+',
    )
    user_name = models.CharField(max_length=200, blank=True, default='')
    action = models.CharField(max_length=255)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'activity_log'
        ordering = ['-created_at']
