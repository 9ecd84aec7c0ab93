"""
Physiotherapy models: physio_medical_record (evaluation),
physio_treatment_plan, physio_session (SOAP note), physio_discharge_summary.
"""
import uuid
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.conf import settings

from apps.clinical.department_data import PHYSIO_TECHNIQUES


# ============================================================================
# Enums
# ============================================================================

class EvaluationStatusChoices(models.TextChoices):
    ACTIVE = 'active', 'Active'
    CLOSED = 'closed', 'Closed'


class PlanTypeChoices(models.TextChoices):
    REHABILITATION = 'rehabilitation', 'Rehabilitation'
    MAINTENANCE = 'maintenance', 'Maintenance'
    PREVENTIVE = 'preventive', 'Preventive'
    PERFORMANCE = 'performance', 'Performance'


class PlanStatusChoices(models.TextChoices):
    """
    Treatment plan status:
    - indicated -> active (first counted session) -> completed
    - indicated | active -> discontinued
    """
    INDICATED = 'indicated', 'Indicated'
    ACTIVE = 'active', 'Active'
    COMPLETED = 'completed', 'Completed'
    DISCONTINUED = 'discontinued', 'Discontinued'


ROM_SIDES = ('left', 'right', 'bilateral')


# ============================================================================
# JSON field validators
# ============================================================================

def validate_rom_measurements(value):
    """Each entry: {movement: str, side: left|right|bilateral, degrees: 0-360}."""
    if not isinstance(value, list):
        raise ValidationError('rom_measurements must be a list')
    for index, entry in enumerate(value):
        if not isinstance(entry, dict) or not entry.get('movement'):
            raise ValidationError(f'rom_measurements[{index}]: movement is required')
        if entry.get('side') not in ROM_SIDES:
            raise ValidationError(f'rom_measurements[{index}]: side must be one of {", ".join(ROM_SIDES)}')
        degrees = entry.get('degrees')
        if isinstance(degrees, bool) or not isinstance(degrees, (int, float)) or not 0 <= degrees <= 360:
            raise ValidationError(f'rom_measurements[{index}]: degrees must be between 0 and 360')


def validate_strength_grades(value):
    """Each entry: {muscle_group: str, left: 0-5, right: 0-5} (Daniels scale)."""
    if not isinstance(value, list):
        raise ValidationError('strength_grade must be a list')
    for index, entry in enumerate(value):
        if not isinstance(entry, dict) or not entry.get('muscle_group'):
            raise ValidationError(f'strength_grade[{index}]: muscle_group is required')
        for side in ('left', 'right'):
            grade = entry.get(side)
            if grade is None:
                continue
            if isinstance(grade, bool) or not isinstance(grade, int) or not 0 <= grade <= 5:
                raise ValidationError(f'strength_grade[{index}]: {side} must be an integer between 0 and 5')


def validate_techniques(value):
    """List of technique codes shared with the physiotherapy appointment form."""
    if not isinstance(value, list):
        raise ValidationError('techniques_applied must be a list')
    for index, technique in enumerate(value):
        if technique not in PHYSIO_TECHNIQUES:
            raise ValidationError(f'techniques_applied[{index}]: unknown technique "{technique}"')


# ============================================================================
# Models
# ============================================================================

class PhysioMedicalRecord(models.Model):
    """
    Physiotherapy evaluation.

    Scale scores are validated, never clamped. Clinical fields stay mutable
    until status is closed. An evaluation owns at most one treatment plan.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(
        'clinical.Patient',
        on_delete=models.PROTECT,
        related_name='physio_records'
    )
    therapist = models.ForeignKey(
        'authz.Practitioner',
        on_delete=models.PROTECT,
        related_name='physio_records'
    )
    originating_appointment = models.ForeignKey(
        'clinical.Appointment',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='physio_records'
    )

    chief_complaint = models.TextField(blank=True, null=True)
    diagnosis = models.TextField()

    # Outcome scales
    vas_score = models.IntegerField(
        blank=True, null=True,
        validators=[MinValueValidator(0), MaxValueValidator(10)]
    )
    oswestry_score = models.IntegerField(
        blank=True, null=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    dash_score = models.IntegerField(
        blank=True, null=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    roland_morris_score = models.IntegerField(
        blank=True, null=True,
        validators=[MinValueValidator(0), MaxValueValidator(24)]
    )

    rom_measurements = models.JSONField(default=list, blank=True, validators=[validate_rom_measurements])
    strength_grade = models.JSONField(default=list, blank=True, validators=[validate_strength_grades])

    short_term_goals = models.JSONField(default=list, blank=True)
    long_term_goals = models.JSONField(default=list, blank=True)

    informed_consent_signed = models.BooleanField(default=False)
    informed_consent_date = models.DateField(blank=True, null=True)

    status = models.CharField(
        max_length=10,
        choices=EvaluationStatusChoices.choices,
        default=EvaluationStatusChoices.ACTIVE
    )

    created_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='created_physio_records'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'physio_medical_record'
        verbose_name = 'Physiotherapy Evaluation'
        verbose_name_plural = 'Physiotherapy Evaluations'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['patient'], name='idx_physio_record_patient'),
            models.Index(fields=['status'], name='idx_physio_record_status'),
        ]

    def __str__(self):
        return f"Evaluation {self.created_at:%Y-%m-%d} - {self.patient}"

    @property
    def is_closed(self):
        return self.status == EvaluationStatusChoices.CLOSED


class PhysioTreatmentPlan(models.Model):
    """
    Treatment plan spawned by exactly one evaluation.

    sessions_completed is written only by apps.physio.progress.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(
        'clinical.Patient',
        on_delete=models.PROTECT,
        related_name='physio_treatment_plans'
    )
    medical_record = models.OneToOneField(
        'PhysioMedicalRecord',
        on_delete=models.PROTECT,
        related_name='treatment_plan'
    )
    therapist = models.ForeignKey(
        'authz.Practitioner',
        on_delete=models.PROTECT,
        related_name='physio_treatment_plans'
    )
    plan_type = models.CharField(
        max_length=20,
        choices=PlanTypeChoices.choices,
        default=PlanTypeChoices.REHABILITATION
    )
    clinical_objective = models.TextField(blank=True, null=True)
    sessions_per_week = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(7)]
    )
    total_sessions_prescribed = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(100)]
    )
    sessions_completed = models.PositiveSmallIntegerField(default=0)
    status = models.CharField(
        max_length=20,
        choices=PlanStatusChoices.choices,
        default=PlanStatusChoices.INDICATED
    )
    start_date = models.DateField()
    expected_end_date = models.DateField(blank=True, null=True)
    actual_end_date = models.DateField(blank=True, null=True)
    discontinuation_reason = models.TextField(blank=True, null=True)

    # Concurrency control
    row_version = models.IntegerField(default=1)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'physio_treatment_plan'
        verbose_name = 'Physiotherapy Treatment Plan'
        verbose_name_plural = 'Physiotherapy Treatment Plans'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['patient'], name='idx_physio_plan_patient'),
            models.Index(fields=['status'], name='idx_physio_plan_status'),
        ]

    def __str__(self):
        return f"{self.get_plan_type_display()} plan - {self.patient} ({self.sessions_completed}/{self.total_sessions_prescribed})"

    @property
    def is_closed(self):
        return self.status in (PlanStatusChoices.COMPLETED, PlanStatusChoices.DISCONTINUED)

    def clean(self):
        errors = {}
        if self.expected_end_date and self.start_date and self.expected_end_date < self.start_date:
            errors['expected_end_date'] = 'Expected end date cannot be before start date'
        if self.medical_record_id and self.patient_id and self.medical_record.patient_id != self.patient_id:
            errors['patient'] = 'Plan patient must match the evaluation patient'
        if errors:
            raise ValidationError(errors)


class PhysioSession(models.Model):
    """
    SOAP note for one physiotherapy appointment.

    One note per appointment; it is addressed by appointment_id and
    recorded while the session is in progress or after completion.
    medical_record and treatment_plan are resolved from the appointment's
    clinical reference when the note is written.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    appointment = models.OneToOneField(
        'clinical.Appointment',
        on_delete=models.PROTECT,
        related_name='physio_session'
    )
    patient = models.ForeignKey(
        'clinical.Patient',
        on_delete=models.PROTECT,
        related_name='physio_sessions'
    )
    therapist = models.ForeignKey(
        'authz.Practitioner',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='physio_sessions'
    )
    medical_record = models.ForeignKey(
        'PhysioMedicalRecord',
        on_delete=models.PROTECT,
        blank=True,
        null=True,
        related_name='sessions'
    )
    treatment_plan = models.ForeignKey(
        'PhysioTreatmentPlan',
        on_delete=models.PROTECT,
        blank=True,
        null=True,
        related_name='sessions'
    )
    session_number = models.PositiveSmallIntegerField(blank=True, null=True)
    session_date = models.DateField()
    duration_minutes = models.PositiveSmallIntegerField(
        default=45,
        validators=[MinValueValidator(1), MaxValueValidator(480)]
    )

    # SOAP
    subjective = models.TextField(blank=True, default='')
    objective = models.TextField(blank=True, default='')
    assessment = models.TextField(blank=True, default='')
    plan = models.TextField(blank=True, default='')

    pain_before = models.IntegerField(
        blank=True, null=True,
        validators=[MinValueValidator(0), MaxValueValidator(10)]
    )
    pain_after = models.IntegerField(
        blank=True, null=True,
        validators=[MinValueValidator(0), MaxValueValidator(10)]
    )
    techniques_applied = models.JSONField(default=list, blank=True, validators=[validate_techniques])
    equipment_used = models.JSONField(default=list, blank=True)

    patient_response = models.TextField(blank=True, null=True)
    tolerance = models.TextField(blank=True, null=True)
    adverse_reactions = models.TextField(blank=True, null=True)
    home_exercises = models.TextField(blank=True, null=True)
    next_session_objectives = models.JSONField(default=list, blank=True)
    patient_present = models.BooleanField(default=True)

    signed_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='signed_physio_sessions'
    )
    signed_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'physio_session'
        verbose_name = 'Physiotherapy Session'
        verbose_name_plural = 'Physiotherapy Sessions'
        ordering = ['-session_date', '-created_at']
        indexes = [
            models.Index(fields=['medical_record'], name='idx_physio_session_record'),
            models.Index(fields=['treatment_plan'], name='idx_physio_session_plan'),
        ]

    def __str__(self):
        return f"Session {self.session_date:%Y-%m-%d} - {self.patient}"

    @property
    def pain_reduction(self):
        if self.pain_before is None or self.pain_after is None:
            return None
        return self.pain_before - self.pain_after

    def clean(self):
        if self.appointment_id and self.patient_id and self.appointment.patient_id != self.patient_id:
            raise ValidationError({'patient': 'Session patient must match the appointment patient'})


class PhysioDischargeSummary(models.Model):
    """Discharge report written when a plan is finalized."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    treatment_plan = models.OneToOneField(
        'PhysioTreatmentPlan',
        on_delete=models.PROTECT,
        related_name='discharge_summary'
    )
    initial_vas = models.IntegerField(validators=[MinValueValidator(0), MaxValueValidator(10)])
    final_vas = models.IntegerField(validators=[MinValueValidator(0), MaxValueValidator(10)])
    pain_improvement_percent = models.IntegerField(default=0)
    objectives_achieved = models.JSONField(default=list, blank=True)
    objectives_not_achieved = models.JSONField(default=list, blank=True)
    final_recommendations = models.TextField(blank=True, null=True)
    follow_up_required = models.BooleanField(default=False)
    discharged_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='physio_discharges'
    )
    discharged_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'physio_discharge_summary'
        verbose_name = 'Physiotherapy Discharge Summary'
        verbose_name_plural = 'Physiotherapy Discharge Summaries'

    def __str__(self):
        return f"Discharge {self.discharged_at:%Y-%m-%d} - plan {self.treatment_plan_id}"


def pain_improvement_percent(initial_vas, final_vas):
    """round((initial - final) / initial * 100); 0 when initial is 0."""
    if not initial_vas:
        return 0
    return round((initial_vas - final_vas) / initial_vas * 100)
