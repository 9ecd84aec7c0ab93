"""
Appointment lifecycle rules.

Pure functions over status values; persistence, locking and events live in
apps.clinical.services.

    scheduled   -> in_progress | cancelled | no_show
    in_progress -> completed | cancelled
    completed, cancelled, no_show are terminal

completed -> completed is accepted as a no-op.
"""
from .exceptions import IllegalTransition

SCHEDULED = 'scheduled'
IN_PROGRESS = 'in_progress'
COMPLETED = 'completed'
CANCELLED = 'cancelled'
NO_SHOW = 'no_show'

ALLOWED_TRANSITIONS = {
    SCHEDULED: frozenset({IN_PROGRESS, CANCELLED, NO_SHOW}),
    IN_PROGRESS: frozenset({COMPLETED, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
    NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED, NO_SHOW})

# Deletion needs force=True in these states.
DELETION_PROTECTED_STATUSES = frozenset({COMPLETED, IN_PROGRESS})

# Workflow status shown at the front desk.
WF_SCHEDULED = 'scheduled'
WF_CHECKED_IN = 'checked_in'
WF_IN_CONSULTATION = 'in_consultation'

STATUS_TO_WORKFLOW = {
    SCHEDULED: WF_SCHEDULED,
    IN_PROGRESS: WF_IN_CONSULTATION,
    COMPLETED: COMPLETED,
    CANCELLED: CANCELLED,
    NO_SHOW: NO_SHOW,
}

# Workflow targets that drive a status transition.
WORKFLOW_TO_STATUS = {
    WF_IN_CONSULTATION: IN_PROGRESS,
    COMPLETED: COMPLETED,
    CANCELLED: CANCELLED,
    NO_SHOW: NO_SHOW,
}


def is_noop(from_status, to_status):
    return from_status == COMPLETED and to_status == COMPLETED


def check_transition(from_status, to_status):
    """
    Validate a status change.

    Returns True when the change is the idempotent completed -> completed
    no-op, False for a real transition.

    Raises:
        IllegalTransition: to_status is not reachable from from_status
    """
    if is_noop(from_status, to_status):
        return True
    if from_status not in ALLOWED_TRANSITIONS:
        raise IllegalTransition(from_status, to_status, f'Unknown appointment status "{from_status}"')
    allowed = ALLOWED_TRANSITIONS[from_status]
    if to_status not in allowed:
        if not allowed:
            message = f'Status "{from_status}" is terminal and cannot change'
        else:
            message = (
                f'Transition not allowed: {from_status} -> {to_status}. '
                f'Allowed: {", ".join(sorted(allowed))}'
            )
        raise IllegalTransition(from_status, to_status, message)
    return False


def workflow_for(status, current_workflow=None):
    """Workflow status that mirrors ``status``."""
    if status == SCHEDULED and current_workflow == WF_CHECKED_IN:
        return WF_CHECKED_IN
    return STATUS_TO_WORKFLOW[status]


def check_check_in(status, workflow_status):
    """Check-in is only valid for a scheduled appointment not yet checked in."""
    if status != SCHEDULED or workflow_status != WF_SCHEDULED:
        raise IllegalTransition(
            workflow_status, WF_CHECKED_IN,
            f'Check-in requires status scheduled/scheduled, got {status}/{workflow_status}'
        )


def status_for_workflow(workflow_status):
    """Status transition driven by a workflow target, or None for check-in."""
    if workflow_status == WF_CHECKED_IN:
        return None
    if workflow_status not in WORKFLOW_TO_STATUS:
        raise IllegalTransition(None, workflow_status, f'Unknown workflow status "{workflow_status}"')
    return WORKFLOW_TO_STATUS[workflow_status]
