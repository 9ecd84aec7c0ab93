"""
Domain events logging helpers.

Provides structured event logging for scheduling and clinical linkage
operations. Payloads carry identifiers and codes only, never PHI.
"""
from typing import Dict, Optional

from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'appointment_transition')
        entity_type: Type of entity (e.g., 'Appointment', 'PhysioTreatmentPlan')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, failure, warning, ...)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'treatment_plan_progressed',
            entity_type='PhysioTreatmentPlan',
            entity_id=str(plan.id),
            entity_ids={'appointment_id': str(appointment.id)},
            sessions_completed=2,
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'blocked', 'rejected', 'conflict']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_consistency_checkpoint(
    checkpoint_name: str,
    entity_ids: Dict[str, str],
    checks_passed: Dict[str, bool],
    **extra_fields
):
    """
    Log a consistency checkpoint event.

    Used to verify data integrity at critical points, e.g. that a plan
    counter never exceeds what was prescribed.
    """
    all_passed = all(checks_passed.values())

    event_data = {
        'event': 'consistency_checkpoint',
        'checkpoint': checkpoint_name,
        'status': 'passed' if all_passed else 'failed',
        'checks': checks_passed,
    }
    event_data.update(entity_ids)
    event_data.update(sanitize_dict(extra_fields))

    if all_passed:
        logger.info(f'Checkpoint passed: {checkpoint_name}', extra=event_data)
    else:
        logger.error(f'Checkpoint FAILED: {checkpoint_name}', extra=event_data)


def log_appointment_transition(appointment, from_status, to_status, result='success', **extra):
    """Log appointment status transition event."""
    log_domain_event(
        'appointment_transition',
        entity_type='Appointment',
        entity_id=str(appointment.id),
        entity_ids={'patient_id': str(appointment.patient_id)},
        result=result,
        from_status=from_status,
        to_status=to_status,
        department_code=appointment.department_code,
        **extra
    )


def log_department_fallback(reason, appointment_type=None, department_code=None):
    """Log a department resolution that fell back to general medicine."""
    log_domain_event(
        'department_code_fallback',
        entity_type='DepartmentCode',
        result='warning',
        fallback_reason=reason,
        appointment_type=appointment_type,
        department_code=department_code,
    )


def log_payload_rejected(variant, field, department_code=None):
    """Log a department payload rejected by its validator."""
    log_domain_event(
        'department_payload_rejected',
        entity_type='DepartmentPayload',
        result='rejected',
        variant=variant,
        field=field,
        department_code=department_code,
    )


def log_concurrency_conflict(entity_type, entity_id, expected_version):
    """Log an optimistic concurrency conflict (stale row_version)."""
    log_domain_event(
        'concurrent_modification',
        entity_type=entity_type,
        entity_id=str(entity_id),
        result='conflict',
        expected_row_version=expected_version,
    )


def log_deletion_warning(appointment, dependents, forced):
    """Log the dependent clinical artifacts left behind by an appointment deletion."""
    log_domain_event(
        'appointment_deletion_warning',
        entity_type='Appointment',
        entity_id=str(appointment.id),
        result='warning',
        dependents=dependents,
        forced=forced,
        status=appointment.status,
    )
