"""
Clinical linkage between evaluations, treatment plans and appointments.
"""
import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from apps.clinical.department_data import PayloadVariantChoices, variant_for_code
from apps.clinical.exceptions import ConsentRequired, EvaluationAlreadyHasPlan
from apps.clinical.models import Appointment, ClinicalReferenceTypeChoices
from apps.core.concurrency import check_row_version, compare_and_swap
from apps.core.observability import metrics
from apps.core.observability.events import log_domain_event

from .models import PhysioMedicalRecord, PhysioTreatmentPlan, PlanStatusChoices, PlanTypeChoices

logger = logging.getLogger(__name__)

REFERENCE_MODELS = {
    ClinicalReferenceTypeChoices.TREATMENT_PLAN: PhysioTreatmentPlan,
    ClinicalReferenceTypeChoices.PHYSIO_RECORD: PhysioMedicalRecord,
    ClinicalReferenceTypeChoices.INITIAL_ASSESSMENT: PhysioMedicalRecord,
}


def link_evaluation_to_plan(evaluation, plan_request):
    """
    Create the treatment plan owned by ``evaluation``.

    The plan starts as indicated with zero sessions. When the evaluation
    came from a physiotherapy appointment that is not deleted, that
    appointment is back-linked to the plan.

    Args:
        evaluation: PhysioMedicalRecord
        plan_request: dict with plan_type, sessions_per_week,
            total_sessions_prescribed, start_date and optional
            expected_end_date, clinical_objective, therapist

    Raises:
        ConsentRequired: informed consent not signed
        EvaluationAlreadyHasPlan: evaluation already owns a plan
        ValidationError: evaluation closed or plan fields invalid
    """
    with transaction.atomic():
        locked = PhysioMedicalRecord.objects.select_for_update().get(pk=evaluation.pk)

        if not locked.informed_consent_signed:
            metrics.treatment_plans_created_total.labels(result='consent_required').inc()
            log_domain_event(
                'treatment_plan_created',
                entity_type='PhysioMedicalRecord',
                entity_id=str(locked.id),
                result='blocked',
                block_reason='consent_required',
            )
            raise ConsentRequired()

        existing = PhysioTreatmentPlan.objects.filter(medical_record=locked).first()
        if existing is not None:
            metrics.treatment_plans_created_total.labels(result='already_linked').inc()
            raise EvaluationAlreadyHasPlan(locked.id, existing.id)

        if locked.is_closed:
            raise ValidationError('Closed evaluations cannot start a treatment plan')

        plan = PhysioTreatmentPlan(
            patient_id=locked.patient_id,
            medical_record=locked,
            therapist=plan_request.get('therapist') or locked.therapist,
            plan_type=plan_request.get('plan_type') or PlanTypeChoices.REHABILITATION,
            clinical_objective=plan_request.get('clinical_objective'),
            sessions_per_week=plan_request.get('sessions_per_week'),
            total_sessions_prescribed=plan_request.get('total_sessions_prescribed'),
            sessions_completed=0,
            status=PlanStatusChoices.INDICATED,
            start_date=plan_request.get('start_date'),
            expected_end_date=plan_request.get('expected_end_date'),
        )
        plan.full_clean()
        plan.save()

        if locked.originating_appointment_id:
            appointment = Appointment.objects.select_for_update().get(pk=locked.originating_appointment_id)
            if _accepts_clinical_reference(appointment):
                compare_and_swap(
                    appointment, appointment.row_version,
                    clinical_reference_type=ClinicalReferenceTypeChoices.TREATMENT_PLAN,
                    clinical_reference_id=plan.id,
                )
            else:
                logger.info(
                    'Originating appointment not back-linked',
                    extra={'appointment_id': str(appointment.id), 'plan_id': str(plan.id),
                           'department_code': appointment.department_code,
                           'is_deleted': appointment.is_deleted}
                )

    metrics.treatment_plans_created_total.labels(result='success').inc()
    log_domain_event(
        'treatment_plan_created',
        entity_type='PhysioTreatmentPlan',
        entity_id=str(plan.id),
        entity_ids={
            'evaluation_id': str(locked.id),
            'patient_id': str(plan.patient_id),
            'appointment_id': str(locked.originating_appointment_id) if locked.originating_appointment_id else None,
        },
        total_sessions_prescribed=plan.total_sessions_prescribed,
    )
    return plan


def next_session_number(plan):
    """Session number the next therapy appointment against ``plan`` will carry."""
    return plan.sessions_completed + 1


def link_appointment_to_clinical_reference(appointment, reference_type, reference_id,
                                           expected_row_version=None):
    """
    Point a physiotherapy appointment at a plan or evaluation.

    Raises:
        ValidationError: not a physiotherapy appointment, unknown reference
            type, or the reference belongs to another patient
        ConcurrentModification: stale row_version
    """
    model = REFERENCE_MODELS.get(reference_type)
    if model is None:
        raise ValidationError({'reference_type': f'Unknown clinical reference type "{reference_type}"'})

    with transaction.atomic():
        locked = Appointment.objects.select_for_update().get(pk=appointment.pk, is_deleted=False)
        check_row_version(locked, expected_row_version)

        if not _accepts_clinical_reference(locked):
            raise ValidationError(
                {'clinical_reference_type': 'Only physiotherapy appointments can carry a clinical reference'}
            )

        reference = model.objects.filter(pk=reference_id).first()
        if reference is None:
            raise ValidationError({'clinical_reference_id': f'{model.__name__} {reference_id} not found'})
        if reference.patient_id != locked.patient_id:
            raise ValidationError({'clinical_reference_id': 'Reference belongs to a different patient'})

        compare_and_swap(
            locked, locked.row_version,
            clinical_reference_type=reference_type,
            clinical_reference_id=reference.pk,
        )

    log_domain_event(
        'appointment_linked',
        entity_type='Appointment',
        entity_id=str(locked.id),
        entity_ids={'reference_id': str(reference.pk)},
        reference_type=reference_type,
    )
    return locked


def _accepts_clinical_reference(appointment):
    """Only live physiotherapy appointments point at evaluations and plans."""
    return (
        not appointment.is_deleted
        and variant_for_code(appointment.department_code) == PayloadVariantChoices.PHYSIOTHERAPY
    )
