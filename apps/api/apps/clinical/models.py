"""
Clinical models: patient, appointment.
"""
import uuid
from django.db import models
from django.conf import settings


# ============================================================================
# Enums
# ============================================================================

class SexChoices(models.TextChoices):
    """Patient sex/gender"""
    FEMALE = 'female', 'Female'
    MALE = 'male', 'Male'
    OTHER = 'other', 'Other'
    UNKNOWN = 'unknown', 'Unknown'


class AppointmentTypeChoices(models.TextChoices):
    CONSULTATION = 'consultation', 'Consultation'
    FOLLOW_UP = 'follow_up', 'Follow Up'
    EMERGENCY = 'emergency', 'Emergency'
    PROCEDURE = 'procedure', 'Procedure'
    IMAGING = 'imaging', 'Imaging'
    LABORATORY = 'laboratory', 'Laboratory'
    SURGERY = 'surgery', 'Surgery'
    PHYSIOTHERAPY = 'physiotherapy', 'Physiotherapy'


class AppointmentStatusChoices(models.TextChoices):
    """
    Appointment status with allowed transitions:
    - scheduled -> in_progress | cancelled | no_show
    - in_progress -> completed | cancelled
    - completed, cancelled, no_show are terminal states
    """
    SCHEDULED = 'scheduled', 'Scheduled'
    IN_PROGRESS = 'in_progress', 'In Progress'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'
    NO_SHOW = 'no_show', 'No Show'


class WorkflowStatusChoices(models.TextChoices):
    """Front-desk workflow; mirrors status and adds checked_in."""
    SCHEDULED = 'scheduled', 'Scheduled'
    CHECKED_IN = 'checked_in', 'Checked In'
    IN_CONSULTATION = 'in_consultation', 'In Consultation'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'
    NO_SHOW = 'no_show', 'No Show'


class ClinicalReferenceTypeChoices(models.TextChoices):
    TREATMENT_PLAN = 'treatment_plan', 'Treatment Plan'
    PHYSIO_RECORD = 'physio_record', 'Physiotherapy Record'
    INITIAL_ASSESSMENT = 'initial_assessment', 'Initial Assessment'


# ============================================================================
# Models
# ============================================================================

class Patient(models.Model):
    """
    Patient identity and contact details.

    Appointments, evaluations and treatment plans reference patients with
    PROTECT, so patients are soft deleted.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Name fields
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)

    # Demographics
    birth_date = models.DateField(blank=True, null=True)
    sex = models.CharField(
        max_length=20,
        choices=SexChoices.choices,
        blank=True,
        null=True
    )
    document_number = models.CharField(max_length=50, blank=True, null=True)

    # Contact
    email = models.EmailField(blank=True, null=True)
    phone = models.CharField(max_length=50, blank=True, null=True)
    address_line1 = models.CharField(max_length=255, blank=True, null=True)
    city = models.CharField(max_length=100, blank=True, null=True)

    notes = models.TextField(blank=True, null=True)

    # Concurrency control
    row_version = models.IntegerField(default=1)

    # Soft delete
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(blank=True, null=True)

    # Audit
    created_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='created_patients'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patient'
        verbose_name = 'Patient'
        verbose_name_plural = 'Patients'
        indexes = [
            models.Index(fields=['last_name', 'first_name'], name='idx_patient_name'),
            models.Index(fields=['document_number'], name='idx_patient_document'),
            models.Index(fields=['is_deleted'], name='idx_patient_deleted'),
        ]

    def __str__(self):
        return f"{self.first_name} {self.last_name}"


class Appointment(models.Model):
    """
    Scheduled appointment owned by a department.

    department_code is the effective code resolved at write time and
    department_specific_data holds the payload whose ``variant`` matches
    that code. Status changes go through apps.clinical.services; never
    assign ``status`` directly.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # BUSINESS RULE: Patient is REQUIRED (no appointments without patient)
    patient = models.ForeignKey(
        'Patient',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    doctor = models.ForeignKey(
        'authz.Practitioner',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='appointments'
    )
    department = models.ForeignKey(
        'core.Department',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='appointments'
    )
    room = models.ForeignKey(
        'core.Room',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='appointments'
    )
    appointment_type = models.CharField(
        max_length=20,
        choices=AppointmentTypeChoices.choices,
        default=AppointmentTypeChoices.CONSULTATION
    )
    department_code = models.CharField(max_length=10, default='MG')
    status = models.CharField(
        max_length=20,
        choices=AppointmentStatusChoices.choices,
        default=AppointmentStatusChoices.SCHEDULED
    )
    workflow_status = models.CharField(
        max_length=20,
        choices=WorkflowStatusChoices.choices,
        default=WorkflowStatusChoices.SCHEDULED
    )
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    reason = models.TextField(blank=True, null=True)
    notes = models.TextField(blank=True, null=True)
    department_specific_data = models.JSONField(default=dict, blank=True)

    # Clinical linkage
    clinical_reference_type = models.CharField(
        max_length=30,
        choices=ClinicalReferenceTypeChoices.choices,
        blank=True,
        null=True
    )
    clinical_reference_id = models.UUIDField(blank=True, null=True)
    referring_department = models.ForeignKey(
        'core.Department',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='referred_appointments'
    )

    cancellation_reason = models.TextField(blank=True, null=True)
    no_show_reason = models.TextField(blank=True, null=True)

    # Concurrency control
    row_version = models.IntegerField(default=1)

    # Soft delete
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(blank=True, null=True)
    deleted_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='deleted_appointments'
    )

    # Audit
    created_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='created_appointments'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'appointment'
        verbose_name = 'Appointment'
        verbose_name_plural = 'Appointments'
        ordering = ['start_time']
        indexes = [
            models.Index(fields=['patient'], name='idx_appointment_patient'),
            models.Index(fields=['doctor'], name='idx_appointment_doctor'),
            models.Index(fields=['start_time'], name='idx_appointment_start'),
            models.Index(fields=['status'], name='idx_appointment_status'),
            models.Index(fields=['department_code'], name='idx_appointment_dept_code'),
            models.Index(
                fields=['clinical_reference_type', 'clinical_reference_id'],
                name='idx_appointment_clinical_ref'
            ),
            models.Index(fields=['is_deleted'], name='idx_appointment_deleted'),
        ]

    def __str__(self):
        return f"Appointment {self.start_time.date()} - {self.patient}"

    @property
    def payload_variant(self):
        return (self.department_specific_data or {}).get('variant')

    def clean(self):
        """
        Model-level validation for business rules.

        BUSINESS RULES:
        1. Patient is required
        2. end_time must be after start_time
        3. Payload variant must match the department code
        """
        from django.core.exceptions import ValidationError
        from .department_data import variant_for_code

        errors = {}

        if not self.patient_id:
            errors['patient'] = 'An appointment requires a patient'

        if self.start_time and self.end_time and self.end_time <= self.start_time:
            errors['end_time'] = 'End time must be after start time'

        expected = variant_for_code(self.department_code)
        if self.department_specific_data and self.payload_variant != expected:
            errors['department_specific_data'] = (
                f'Payload variant "{self.payload_variant}" does not match '
                f'department {self.department_code} ({expected})'
            )

        if errors:
            raise ValidationError(errors)
