"""
Appointment services.

Scheduling, edits, status transitions, completion and deletion. Every
write runs in a transaction, re-reads the row with select_for_update()
and persists through compare_and_swap on row_version. Side effects are
announced through apps.clinical.signals, never executed here.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.core.concurrency import check_row_version, compare_and_swap
from apps.core.observability import metrics
from apps.core.observability.events import (
    log_appointment_transition,
    log_deletion_warning,
    log_domain_event,
)

from . import state_machine
from .department_data import (
    PayloadVariantChoices,
    ValidatedPayload,
    resolve_and_validate_payload,
    resolve_department_code,
    variant_for_code,
)
from .exceptions import AppointmentDeletionBlocked, IllegalTransition
from .models import (
    Appointment,
    AppointmentStatusChoices,
    ClinicalReferenceTypeChoices,
    WorkflowStatusChoices,
)
from .signals import (
    WORKSPACE_KINDS,
    appointment_completed,
    appointment_deletion_warning,
    appointment_started,
    appointment_status_changed,
)

logger = logging.getLogger(__name__)

# Fields update_appointment() writes directly.
EDITABLE_FIELDS = (
    'start_time', 'end_time', 'reason', 'notes', 'doctor', 'room', 'referring_department',
)


# ============================================================================
# Scheduling
# ============================================================================

def schedule_appointment(
    *,
    patient,
    appointment_type: str,
    start_time,
    end_time,
    department_code: Optional[str] = None,
    department_specific_data: Optional[Dict[str, Any]] = None,
    department=None,
    doctor=None,
    room=None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    referring_department=None,
    treatment_plan=None,
    created_by=None,
) -> Appointment:
    """
    Create a scheduled appointment with a validated department payload.

    The department code comes from ``department_code``, else from
    ``department``, else from the appointment type. Booking a
    physiotherapy appointment against ``treatment_plan`` links it to the
    plan and pre-fills sessionNumber.

    Raises:
        InvalidDepartmentPayload: payload violates its variant's rules
        ValidationError: time range or plan linkage invalid
    """
    explicit_code = department_code or (department.code if department else None)
    raw = dict(department_specific_data or {})

    if treatment_plan is not None:
        from apps.physio.linkage import next_session_number

        if treatment_plan.patient_id != patient.pk:
            raise ValidationError({'treatment_plan': 'Treatment plan belongs to a different patient'})
        if treatment_plan.is_closed:
            raise ValidationError({'treatment_plan': f'Treatment plan is {treatment_plan.status}'})
        code = resolve_department_code(appointment_type, explicit_code)
        if variant_for_code(code) != PayloadVariantChoices.PHYSIOTHERAPY:
            raise ValidationError({'treatment_plan': 'Only physiotherapy appointments can follow a treatment plan'})
        raw.setdefault('sessionNumber', next_session_number(treatment_plan))

    result = resolve_and_validate_payload(appointment_type, explicit_code, raw)

    appointment = Appointment(
        patient=patient,
        doctor=doctor,
        department=department,
        room=room,
        appointment_type=appointment_type,
        department_code=result.department_code,
        status=AppointmentStatusChoices.SCHEDULED,
        workflow_status=WorkflowStatusChoices.SCHEDULED,
        start_time=start_time,
        end_time=end_time,
        reason=reason,
        notes=notes,
        department_specific_data=result.data,
        referring_department=referring_department,
        created_by_user=created_by,
    )
    if treatment_plan is not None:
        appointment.clinical_reference_type = ClinicalReferenceTypeChoices.TREATMENT_PLAN
        appointment.clinical_reference_id = treatment_plan.pk

    with transaction.atomic():
        appointment.full_clean()
        appointment.save()

    appointment.payload_warnings = list(result.warnings)
    log_domain_event(
        'appointment_scheduled',
        entity_type='Appointment',
        entity_id=str(appointment.id),
        entity_ids={'patient_id': str(patient.pk)},
        appointment_type=appointment_type,
        department_code=appointment.department_code,
        variant=result.variant,
    )
    return appointment


def update_appointment(appointment_id, *, changes: Dict[str, Any], expected_row_version=None) -> Appointment:
    """
    Edit an appointment that is not terminal.

    ``department_specific_data`` in ``changes`` is a partial payload merged
    over the stored one. Changing appointment_type or department_code
    re-resolves the department; a new variant starts from an empty payload.

    Raises:
        IllegalTransition: appointment is cancelled or no_show
        InvalidDepartmentPayload, ValidationError, ConcurrentModification
    """
    with transaction.atomic():
        locked = _lock_appointment(appointment_id, expected_row_version)

        if locked.status in (AppointmentStatusChoices.CANCELLED, AppointmentStatusChoices.NO_SHOW):
            raise IllegalTransition(
                locked.status, locked.status,
                f'Appointments in status "{locked.status}" cannot be edited'
            )

        fields = {name: changes[name] for name in EDITABLE_FIELDS if name in changes}

        result = None
        if any(name in changes for name in ('department_specific_data', 'department_code', 'appointment_type')):
            appointment_type = changes.get('appointment_type', locked.appointment_type)
            if 'department_code' in changes:
                explicit_code = changes['department_code']
            elif 'appointment_type' in changes:
                explicit_code = None
            else:
                explicit_code = locked.department_code
            code = resolve_department_code(appointment_type, explicit_code)
            # A different variant starts from an empty payload
            existing = locked.department_specific_data if variant_for_code(code) == locked.payload_variant else None
            result = resolve_and_validate_payload(
                appointment_type, code, changes.get('department_specific_data'), existing
            )
            fields.update(
                appointment_type=appointment_type,
                department_code=result.department_code,
                department_specific_data=result.data,
            )

        for name, value in fields.items():
            setattr(locked, name, value)
        locked.full_clean()

        if fields:
            compare_and_swap(locked, locked.row_version, **fields)

    locked.payload_warnings = list(result.warnings) if result else []
    log_domain_event(
        'appointment_updated',
        entity_type='Appointment',
        entity_id=str(locked.id),
        fields=sorted(fields),
    )
    return locked


# ============================================================================
# Status transitions
# ============================================================================

def transition_appointment(appointment_id, target_status, *, reason=None, expected_row_version=None) -> Appointment:
    """
    Move an appointment along the status graph.

    Completion is routed through complete_appointment() so treatment plan
    progress is applied the same way from every entry point.

    Raises:
        IllegalTransition: target not reachable from the persisted status
        ConcurrentModification: stale row_version
        Appointment.DoesNotExist
    """
    if target_status == AppointmentStatusChoices.COMPLETED:
        appointment, _plan = complete_appointment(appointment_id, expected_row_version=expected_row_version)
        return appointment

    with transaction.atomic():
        locked = _lock_appointment(appointment_id, expected_row_version)
        _apply_transition(locked, target_status, reason=reason)
    return locked


def transition_workflow(appointment_id, workflow_status, *, reason=None, expected_row_version=None) -> Appointment:
    """Workflow-level entry point: check-in, or the status transition the workflow target drives."""
    target_status = state_machine.status_for_workflow(workflow_status)
    if target_status is None:
        return check_in_appointment(appointment_id, expected_row_version=expected_row_version)
    return transition_appointment(
        appointment_id, target_status, reason=reason, expected_row_version=expected_row_version
    )


def check_in_appointment(appointment_id, *, expected_row_version=None) -> Appointment:
    """scheduled/scheduled -> scheduled/checked_in."""
    with transaction.atomic():
        locked = _lock_appointment(appointment_id, expected_row_version)
        state_machine.check_check_in(locked.status, locked.workflow_status)
        compare_and_swap(locked, locked.row_version, workflow_status=WorkflowStatusChoices.CHECKED_IN)

    log_domain_event(
        'appointment_checked_in',
        entity_type='Appointment',
        entity_id=str(locked.id),
        entity_ids={'patient_id': str(locked.patient_id)},
    )
    return locked


def complete_appointment(appointment_id, *, expected_row_version=None, session_data=None,
                         therapist=None, user=None) -> Tuple[Appointment, Optional[Any]]:
    """
    Complete an in-progress appointment and count it against its plan.

    ``session_data`` records the physiotherapy SOAP note in the same
    transaction; an invalid note leaves the appointment in progress.

    Repeating completion on a completed appointment is a no-op for the
    appointment and its plan: no status is written, no signal fires and
    the plan is not counted again. Session data sent with the repeat
    still amends the note.

    Returns:
        (appointment, treatment plan or None)
    """
    from apps.physio.models import PhysioTreatmentPlan
    from apps.physio.progress import on_appointment_completed
    from apps.physio.services import record_session

    plan = None
    with transaction.atomic():
        locked = _lock_appointment(appointment_id, expected_row_version)
        noop = _apply_transition(locked, AppointmentStatusChoices.COMPLETED, emit=False)
        if session_data is not None:
            record_session(locked.pk, session_data, therapist=therapist, user=user)
        if noop:
            return locked, None

        if locked.clinical_reference_type == ClinicalReferenceTypeChoices.TREATMENT_PLAN and locked.clinical_reference_id:
            plan = PhysioTreatmentPlan.objects.select_for_update().filter(pk=locked.clinical_reference_id).first()
            if plan is not None:
                plan, _counted = on_appointment_completed(locked, plan)

        appointment_status_changed.send(
            sender=Appointment,
            appointment_id=str(locked.id),
            from_status=AppointmentStatusChoices.IN_PROGRESS,
            to_status=AppointmentStatusChoices.COMPLETED,
            workflow_status=locked.workflow_status,
        )
        appointment_completed.send(
            sender=Appointment,
            appointment_id=str(locked.id),
            department_code=locked.department_code,
            plan_id=str(plan.id) if plan is not None else None,
        )
    return locked, plan


def _apply_transition(locked, target_status, *, reason=None, emit=True):
    """
    Validate and persist a status change on a locked appointment.

    Returns True for the completed -> completed no-op.
    """
    from_status = locked.status
    try:
        noop = state_machine.check_transition(from_status, target_status)
        if target_status == AppointmentStatusChoices.NO_SHOW and locked.start_time > timezone.now():
            raise IllegalTransition(
                from_status, target_status,
                'An appointment cannot be marked as no-show before its start time'
            )
    except IllegalTransition:
        metrics.appointment_transitions_total.labels(
            from_status=from_status, to_status=target_status, result='rejected'
        ).inc()
        log_appointment_transition(locked, from_status, target_status, result='rejected')
        raise

    if noop:
        metrics.appointment_transitions_total.labels(
            from_status=from_status, to_status=target_status, result='noop'
        ).inc()
        log_appointment_transition(locked, from_status, target_status, result='noop')
        return True

    fields = {
        'status': target_status,
        'workflow_status': state_machine.workflow_for(target_status, locked.workflow_status),
    }
    if target_status == AppointmentStatusChoices.CANCELLED and reason:
        fields['cancellation_reason'] = reason
    if target_status == AppointmentStatusChoices.NO_SHOW and reason:
        fields['no_show_reason'] = reason

    compare_and_swap(locked, locked.row_version, **fields)

    metrics.appointment_transitions_total.labels(
        from_status=from_status, to_status=target_status, result='success'
    ).inc()
    log_appointment_transition(locked, from_status, target_status)

    if target_status == AppointmentStatusChoices.IN_PROGRESS:
        appointment_started.send(
            sender=Appointment,
            appointment_id=str(locked.id),
            department_code=locked.department_code,
            workspace_kind=WORKSPACE_KINDS[variant_for_code(locked.department_code)],
        )
    if emit:
        appointment_status_changed.send(
            sender=Appointment,
            appointment_id=str(locked.id),
            from_status=from_status,
            to_status=target_status,
            workflow_status=locked.workflow_status,
        )
    return False


# ============================================================================
# Deletion
# ============================================================================

def delete_appointment(appointment_id, *, force=False, user=None, expected_row_version=None):
    """
    Soft delete an appointment.

    Completed and in-progress appointments need ``force``. Dependent
    clinical artifacts are never deleted; they are reported through
    appointment_deletion_warning.

    Returns:
        list of dependents ({'type': ..., 'id': ...})

    Raises:
        AppointmentDeletionBlocked: protected status without force
    """
    with transaction.atomic():
        locked = _lock_appointment(appointment_id, expected_row_version)

        if locked.status in state_machine.DELETION_PROTECTED_STATUSES and not force:
            log_domain_event(
                'appointment_deletion_blocked',
                entity_type='Appointment',
                entity_id=str(locked.id),
                result='blocked',
                status=locked.status,
            )
            raise AppointmentDeletionBlocked(locked.status)

        dependents = find_dependents(locked)
        compare_and_swap(
            locked, locked.row_version,
            is_deleted=True,
            deleted_at=timezone.now(),
            deleted_by_user_id=user.pk if user is not None else None,
        )

        log_deletion_warning(locked, dependents, forced=force)
        appointment_deletion_warning.send(
            sender=Appointment,
            appointment_id=str(locked.id),
            status=locked.status,
            forced=force,
            dependents=dependents,
        )
    return dependents


def find_dependents(appointment):
    """Clinical artifacts that reference or were created from ``appointment``."""
    from apps.physio.models import PhysioMedicalRecord, PhysioSession, PhysioTreatmentPlan

    dependents = []
    seen = set()

    def _add(kind, pk):
        key = (kind, str(pk))
        if key not in seen:
            seen.add(key)
            dependents.append({'type': kind, 'id': str(pk)})

    if appointment.clinical_reference_type and appointment.clinical_reference_id:
        _add(appointment.clinical_reference_type, appointment.clinical_reference_id)

    for record_id in PhysioMedicalRecord.objects.filter(
        originating_appointment=appointment
    ).values_list('id', flat=True):
        _add(ClinicalReferenceTypeChoices.PHYSIO_RECORD.value, record_id)
        plan_id = PhysioTreatmentPlan.objects.filter(medical_record_id=record_id).values_list('id', flat=True).first()
        if plan_id:
            _add(ClinicalReferenceTypeChoices.TREATMENT_PLAN.value, plan_id)

    session_id = PhysioSession.objects.filter(appointment=appointment).values_list('id', flat=True).first()
    if session_id:
        _add('physio_session', session_id)

    return dependents


# ============================================================================
# Helpers
# ============================================================================

def validate_department_data(appointment_type, department_code=None, data=None, existing=None) -> ValidatedPayload:
    """Dry-run payload validation for forms; nothing is persisted."""
    return resolve_and_validate_payload(appointment_type, department_code, data, existing)


def _lock_appointment(appointment_id, expected_row_version=None):
    locked = Appointment.objects.select_for_update().get(pk=appointment_id, is_deleted=False)
    check_row_version(locked, expected_row_version)
    return locked
