"""
Domain errors for appointments, department payloads and clinical linkage.

Validation-type errors subclass Django's ValidationError so they flow
through model clean(), serializers and the admin unchanged.
"""
from django.core.exceptions import ValidationError


class IllegalTransition(ValidationError):
    """Requested appointment status is not reachable from the current one."""

    def __init__(self, from_status, to_status, message=None):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message or f'Transition not allowed: {from_status} -> {to_status}',
            code='illegal_transition',
        )


class InvalidDepartmentPayload(ValidationError):
    """A department-specific payload violates its variant's rules."""

    def __init__(self, field, reason):
        self.field = field
        self.reason = reason
        super().__init__({field: [reason]})


class ConsentRequired(ValidationError):
    """Treatment plan requested for an evaluation without signed consent."""

    def __init__(self, message='Informed consent must be signed before activating a treatment plan'):
        super().__init__(message, code='consent_required')


class EvaluationAlreadyHasPlan(ValidationError):
    """An evaluation owns at most one treatment plan."""

    def __init__(self, evaluation_id, plan_id):
        self.evaluation_id = evaluation_id
        self.plan_id = plan_id
        super().__init__(
            f'Evaluation {evaluation_id} already has treatment plan {plan_id}',
            code='evaluation_already_has_plan',
        )


class AppointmentDeletionBlocked(ValidationError):
    def __init__(self, status):
        self.status = status
        super().__init__(
            f'Appointments in status "{status}" cannot be deleted without force',
            code='deletion_blocked',
        )


class ConcurrentModification(Exception):
    """Row changed between read and write (row_version mismatch)."""

    def __init__(self, entity_type, entity_id, expected_version=None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f'{entity_type} {entity_id} was modified concurrently '
            f'(expected row_version={expected_version})'
        )
