"""
Appointment lifecycle signals.

The engine never performs these side effects itself; listeners (workspace
provisioning, dashboards, notifications) subscribe here. Payloads carry
identifiers and codes only, NO PHI.
"""
from django.dispatch import Signal

# scheduled -> in_progress
# Payload:
#   - appointment_id: UUID string
#   - department_code: effective code
#   - workspace_kind: consultation | physiotherapy_session | lab_bench | imaging_suite
appointment_started = Signal()

# Real transition into completed (not the idempotent repeat)
# Payload: appointment_id, department_code, plan_id (or None)
appointment_completed = Signal()

# Every status change
# Payload: appointment_id, from_status, to_status, workflow_status
appointment_status_changed = Signal()

# Soft delete of an appointment
# Payload: appointment_id, status, forced, dependents (list of {type, id})
appointment_deletion_warning = Signal()


WORKSPACE_KINDS = {
    'general': 'consultation',
    'physiotherapy': 'physiotherapy_session',
    'laboratory': 'lab_bench',
    'imaging': 'imaging_suite',
}


# Example listener:
#
# from django.dispatch import receiver
# from django.db import transaction
# from apps.clinical.signals import appointment_started
#
# @receiver(appointment_started)
# def on_appointment_started(sender, appointment_id, workspace_kind, **kwargs):
#     transaction.on_commit(lambda: open_workspace(appointment_id, workspace_kind))
