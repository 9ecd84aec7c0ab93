"""
Physiotherapy services: evaluations, the treatment plans they spawn and
the SOAP notes written for each physiotherapy appointment.
"""
import logging
from typing import Any, Dict, Tuple

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.clinical.department_data import PayloadVariantChoices, variant_for_code
from apps.clinical.models import Appointment, AppointmentStatusChoices, ClinicalReferenceTypeChoices
from apps.core.observability.events import log_domain_event

from . import linkage, progress
from .models import PhysioMedicalRecord, PhysioSession, PhysioTreatmentPlan

logger = logging.getLogger(__name__)

# Clinical fields editable while the evaluation is open.
EVALUATION_FIELDS = (
    'chief_complaint', 'diagnosis', 'vas_score', 'oswestry_score', 'dash_score',
    'roland_morris_score', 'rom_measurements', 'strength_grade', 'short_term_goals',
    'long_term_goals', 'informed_consent_signed', 'informed_consent_date',
)


def create_evaluation(*, patient, therapist, data: Dict[str, Any], originating_appointment=None,
                      created_by=None) -> PhysioMedicalRecord:
    """
    Record a physiotherapy evaluation.

    Scale scores and ROM/strength entries are validated with full_clean();
    out-of-range values raise ValidationError and nothing is saved.
    """
    if originating_appointment is not None and originating_appointment.patient_id != patient.pk:
        raise ValidationError({'originating_appointment': 'Appointment belongs to a different patient'})

    evaluation = PhysioMedicalRecord(
        patient=patient,
        therapist=therapist,
        originating_appointment=originating_appointment,
        created_by_user=created_by,
        **{name: data[name] for name in EVALUATION_FIELDS if name in data}
    )
    with transaction.atomic():
        evaluation.full_clean()
        evaluation.save()

    log_domain_event(
        'physio_evaluation_created',
        entity_type='PhysioMedicalRecord',
        entity_id=str(evaluation.id),
        entity_ids={'patient_id': str(patient.pk)},
        consent_signed=evaluation.informed_consent_signed,
    )
    return evaluation


def update_evaluation(evaluation_id, data: Dict[str, Any]) -> PhysioMedicalRecord:
    """Edit clinical fields of an open evaluation."""
    with transaction.atomic():
        evaluation = PhysioMedicalRecord.objects.select_for_update().get(pk=evaluation_id)
        if evaluation.is_closed:
            raise ValidationError('Closed evaluations cannot be modified')
        for name in EVALUATION_FIELDS:
            if name in data:
                setattr(evaluation, name, data[name])
        evaluation.full_clean()
        evaluation.save()
    return evaluation


def activate_treatment_plan(evaluation_id, plan_request: Dict[str, Any]) -> PhysioTreatmentPlan:
    """
    Start the treatment plan of an evaluation.

    Raises:
        ConsentRequired, EvaluationAlreadyHasPlan, ValidationError
    """
    evaluation = PhysioMedicalRecord.objects.get(pk=evaluation_id)
    return linkage.link_evaluation_to_plan(evaluation, plan_request)


def discontinue_treatment_plan(plan_id, reason, expected_row_version=None) -> PhysioTreatmentPlan:
    plan = PhysioTreatmentPlan.objects.get(pk=plan_id)
    return progress.discontinue_plan(plan, reason, expected_row_version=expected_row_version)


def finalize_treatment_plan(plan_id, discharge: Dict[str, Any], discharged_by=None, expected_row_version=None):
    """Discharge the patient; returns the PhysioDischargeSummary."""
    plan = PhysioTreatmentPlan.objects.get(pk=plan_id)
    return progress.finalize_plan(
        plan,
        final_vas=discharge['final_vas'],
        initial_vas=discharge.get('initial_vas'),
        objectives_achieved=discharge.get('objectives_achieved'),
        objectives_not_achieved=discharge.get('objectives_not_achieved'),
        final_recommendations=discharge.get('final_recommendations'),
        follow_up_required=discharge.get('follow_up_required', False),
        discharged_by=discharged_by,
        expected_row_version=expected_row_version,
    )


# ============================================================================
# Session notes
# ============================================================================

SESSION_FIELDS = (
    'duration_minutes', 'subjective', 'objective', 'assessment', 'plan',
    'pain_before', 'pain_after', 'techniques_applied', 'equipment_used',
    'patient_response', 'tolerance', 'adverse_reactions', 'home_exercises',
    'next_session_objectives', 'patient_present',
)

SESSION_STATUSES = (AppointmentStatusChoices.IN_PROGRESS, AppointmentStatusChoices.COMPLETED)


def record_session(appointment_id, data: Dict[str, Any], *, therapist=None, user=None) -> Tuple[PhysioSession, bool]:
    """
    Create or amend the SOAP note of a physiotherapy appointment.

    The appointment must be a physiotherapy appointment that has started.
    The evaluation and plan are taken from its clinical reference, or from
    the evaluation it originated, and the session number from its payload.

    Returns:
        (session, created)

    Raises:
        ValidationError: not a physiotherapy appointment, not started,
            unknown field, or a field out of range
    """
    unknown = sorted(set(data) - set(SESSION_FIELDS))
    if unknown:
        raise ValidationError({unknown[0]: 'Unknown session field'})

    with transaction.atomic():
        appointment = Appointment.objects.select_for_update().get(pk=appointment_id, is_deleted=False)
        if variant_for_code(appointment.department_code) != PayloadVariantChoices.PHYSIOTHERAPY:
            raise ValidationError({'appointment': 'Session notes belong to physiotherapy appointments'})
        if appointment.status not in SESSION_STATUSES:
            raise ValidationError(
                {'appointment': f'Session notes cannot be recorded for a {appointment.status} appointment'}
            )

        session = PhysioSession.objects.filter(appointment=appointment).first()
        created = session is None
        if created:
            medical_record, plan = _clinical_context(appointment)
            session = PhysioSession(
                appointment=appointment,
                patient_id=appointment.patient_id,
                therapist=therapist or appointment.doctor,
                medical_record=medical_record,
                treatment_plan=plan,
                session_number=appointment.department_specific_data.get('sessionNumber'),
                session_date=timezone.localdate(appointment.start_time),
                duration_minutes=appointment.department_specific_data.get('estimatedDuration', 45),
            )
        elif therapist is not None:
            session.therapist = therapist

        for name in SESSION_FIELDS:
            if name in data:
                setattr(session, name, data[name])
        session.signed_by_user = user
        session.signed_at = timezone.now()
        session.full_clean()
        session.save()

    log_domain_event(
        'physio_session_recorded',
        entity_type='PhysioSession',
        entity_id=str(session.id),
        entity_ids={
            'appointment_id': str(appointment.id),
            'plan_id': str(session.treatment_plan_id) if session.treatment_plan_id else None,
        },
        created=created,
        session_number=session.session_number,
    )
    return session, created


def get_session_for_appointment(appointment_id) -> PhysioSession:
    """Raises PhysioSession.DoesNotExist when no note was recorded."""
    return PhysioSession.objects.select_related('treatment_plan').get(
        appointment_id=appointment_id, appointment__is_deleted=False
    )


def list_sessions(*, medical_record_id=None, treatment_plan_id=None):
    queryset = PhysioSession.objects.all()
    if medical_record_id:
        queryset = queryset.filter(medical_record_id=medical_record_id)
    if treatment_plan_id:
        queryset = queryset.filter(treatment_plan_id=treatment_plan_id)
    return queryset


def _clinical_context(appointment):
    """(evaluation, plan) an appointment's session note belongs to."""
    reference_type = appointment.clinical_reference_type
    reference_id = appointment.clinical_reference_id
    if reference_type == ClinicalReferenceTypeChoices.TREATMENT_PLAN and reference_id:
        plan = PhysioTreatmentPlan.objects.filter(pk=reference_id).select_related('medical_record').first()
        if plan is not None:
            return plan.medical_record, plan
    if reference_type in (ClinicalReferenceTypeChoices.PHYSIO_RECORD,
                          ClinicalReferenceTypeChoices.INITIAL_ASSESSMENT) and reference_id:
        record = PhysioMedicalRecord.objects.filter(pk=reference_id).first()
        if record is not None:
            return record, PhysioTreatmentPlan.objects.filter(medical_record=record).first()
    record = PhysioMedicalRecord.objects.filter(originating_appointment=appointment).first()
    return record, None
