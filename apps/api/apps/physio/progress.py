"""
Treatment plan progress.

The only writer of PhysioTreatmentPlan.sessions_completed. Every write
locks the plan row and goes through compare_and_swap on row_version.
"""
import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.clinical.department_data import THERAPY_SESSION_TYPES
from apps.clinical.models import ClinicalReferenceTypeChoices
from apps.core.concurrency import check_row_version, compare_and_swap
from apps.core.observability import metrics
from apps.core.observability.events import log_consistency_checkpoint, log_domain_event

from .models import (
    PhysioDischargeSummary,
    PhysioTreatmentPlan,
    PlanStatusChoices,
    EvaluationStatusChoices,
    pain_improvement_percent,
)

logger = logging.getLogger(__name__)


def counts_toward_plan(appointment, plan):
    """A completed appointment counts when it is a therapy session booked against this plan."""
    payload = appointment.department_specific_data or {}
    return (
        payload.get('variant') == 'physiotherapy'
        and payload.get('sessionType') in THERAPY_SESSION_TYPES
        and appointment.clinical_reference_type == ClinicalReferenceTypeChoices.TREATMENT_PLAN
        and appointment.clinical_reference_id is not None
        and str(appointment.clinical_reference_id) == str(plan.id)
    )


def on_appointment_completed(appointment, plan):
    """
    Count a completed appointment against its treatment plan.

    indicated -> active on the first counted session; -> completed once
    sessions_completed reaches total_sessions_prescribed. Completed and
    discontinued plans are left untouched.

    Args:
        appointment: appointment that just moved into completed
        plan: plan snapshot; its row_version is the expected version

    Returns:
        (plan, counted: bool)

    Raises:
        ConcurrentModification: plan changed since ``plan`` was read
    """
    if not counts_toward_plan(appointment, plan):
        metrics.treatment_plan_sessions_total.labels(result='skipped').inc()
        return plan, False

    with transaction.atomic():
        locked = PhysioTreatmentPlan.objects.select_for_update().get(pk=plan.pk)
        check_row_version(locked, plan.row_version)

        if locked.is_closed:
            metrics.treatment_plan_sessions_total.labels(result='skipped').inc()
            log_domain_event(
                'treatment_plan_session_ignored',
                entity_type='PhysioTreatmentPlan',
                entity_id=str(locked.id),
                entity_ids={'appointment_id': str(appointment.id)},
                result='warning',
                plan_status=locked.status,
            )
            return locked, False

        sessions_completed = locked.sessions_completed + 1
        fields = {'sessions_completed': sessions_completed}
        if locked.status == PlanStatusChoices.INDICATED:
            fields['status'] = PlanStatusChoices.ACTIVE
        if sessions_completed >= locked.total_sessions_prescribed:
            fields['status'] = PlanStatusChoices.COMPLETED
            fields['actual_end_date'] = timezone.localdate()

        compare_and_swap(locked, plan.row_version, **fields)

    plan_completed = locked.status == PlanStatusChoices.COMPLETED
    metrics.treatment_plan_sessions_total.labels(
        result='plan_completed' if plan_completed else 'counted'
    ).inc()
    log_domain_event(
        'treatment_plan_progressed',
        entity_type='PhysioTreatmentPlan',
        entity_id=str(locked.id),
        entity_ids={'appointment_id': str(appointment.id), 'patient_id': str(locked.patient_id)},
        sessions_completed=locked.sessions_completed,
        total_sessions_prescribed=locked.total_sessions_prescribed,
        plan_status=locked.status,
    )
    log_consistency_checkpoint(
        'treatment_plan_counter',
        entity_ids={'plan_id': str(locked.id)},
        checks_passed={
            'within_prescription': locked.sessions_completed <= locked.total_sessions_prescribed,
            'completed_when_full': (
                locked.sessions_completed < locked.total_sessions_prescribed or plan_completed
            ),
        },
    )
    return locked, True


def discontinue_plan(plan, reason, expected_row_version=None):
    """Stop an indicated or active plan. The session counter is kept as is."""
    if not reason:
        raise ValidationError({'reason': 'A discontinuation reason is required'})

    with transaction.atomic():
        locked = PhysioTreatmentPlan.objects.select_for_update().get(pk=plan.pk)
        check_row_version(locked, expected_row_version)
        if locked.is_closed:
            raise ValidationError(f'Plan is already {locked.status}')

        compare_and_swap(
            locked, locked.row_version,
            status=PlanStatusChoices.DISCONTINUED,
            discontinuation_reason=reason,
            actual_end_date=timezone.localdate(),
        )

    log_domain_event(
        'treatment_plan_discontinued',
        entity_type='PhysioTreatmentPlan',
        entity_id=str(locked.id),
        sessions_completed=locked.sessions_completed,
    )
    return locked


def finalize_plan(plan, *, final_vas, initial_vas=None, objectives_achieved=None,
                  objectives_not_achieved=None, final_recommendations=None,
                  follow_up_required=False, discharged_by=None, expected_row_version=None):
    """
    Discharge a patient from an active or completed plan.

    Marks the plan completed, closes the owning evaluation and writes the
    discharge summary. initial_vas defaults to the evaluation's VAS score.
    """
    with transaction.atomic():
        locked = PhysioTreatmentPlan.objects.select_for_update().get(pk=plan.pk)
        check_row_version(locked, expected_row_version)

        if locked.status not in (PlanStatusChoices.ACTIVE, PlanStatusChoices.COMPLETED):
            raise ValidationError(f'Only active or completed plans can be finalized (plan is {locked.status})')
        if PhysioDischargeSummary.objects.filter(treatment_plan=locked).exists():
            raise ValidationError('Plan already has a discharge summary')

        evaluation = locked.medical_record
        if initial_vas is None:
            initial_vas = evaluation.vas_score or 0

        summary = PhysioDischargeSummary(
            treatment_plan=locked,
            initial_vas=initial_vas,
            final_vas=final_vas,
            pain_improvement_percent=pain_improvement_percent(initial_vas, final_vas),
            objectives_achieved=objectives_achieved or [],
            objectives_not_achieved=objectives_not_achieved or [],
            final_recommendations=final_recommendations,
            follow_up_required=follow_up_required,
            discharged_by=discharged_by,
            discharged_at=timezone.now(),
        )
        summary.full_clean()
        summary.save()

        if locked.status != PlanStatusChoices.COMPLETED:
            compare_and_swap(
                locked, locked.row_version,
                status=PlanStatusChoices.COMPLETED,
                actual_end_date=timezone.localdate(),
            )
        evaluation.status = EvaluationStatusChoices.CLOSED
        evaluation.save(update_fields=['status', 'updated_at'])

    logger.info(
        'Treatment plan finalized',
        extra={
            'plan_id': str(locked.id),
            'discharge_summary_id': str(summary.id),
            'pain_improvement_percent': summary.pain_improvement_percent,
        }
    )
    return summary
