"""
Tests for the appointment lifecycle.

Tests cover:
1. Pure transition graph (allowed, terminal, completed no-op)
2. Service-level transitions with workflow mirroring
3. No-show timing and front-desk check-in
4. Signals emitted on start, completion and deletion
5. Deletion protection and optimistic concurrency
"""
from datetime import timedelta

import pytest

from apps.clinical import services, state_machine
from apps.clinical.exceptions import (
    AppointmentDeletionBlocked,
    ConcurrentModification,
    IllegalTransition,
    InvalidDepartmentPayload,
)
from apps.clinical.models import Appointment
from apps.clinical.signals import (
    appointment_completed,
    appointment_deletion_warning,
    appointment_started,
    appointment_status_changed,
)


@pytest.fixture
def captured_signals():
    """Collect (signal name, kwargs) for every appointment signal sent during a test."""
    captured = []
    receivers = {}

    for name, signal in (
        ('started', appointment_started),
        ('completed', appointment_completed),
        ('status_changed', appointment_status_changed),
        ('deletion_warning', appointment_deletion_warning),
    ):
        def _receiver(sender, _name=name, **kwargs):
            kwargs.pop('signal', None)
            captured.append((_name, kwargs))
        signal.connect(_receiver, weak=False)
        receivers[signal] = _receiver

    yield captured

    for signal, receiver in receivers.items():
        signal.disconnect(receiver)


def _names(captured):
    return [name for name, _ in captured]


class TestTransitionGraph:

    @pytest.mark.parametrize('from_status,to_status', [
        ('scheduled', 'in_progress'),
        ('scheduled', 'cancelled'),
        ('scheduled', 'no_show'),
        ('in_progress', 'completed'),
        ('in_progress', 'cancelled'),
    ])
    def test_allowed(self, from_status, to_status):
        assert state_machine.check_transition(from_status, to_status) is False

    @pytest.mark.parametrize('from_status,to_status', [
        ('scheduled', 'completed'),
        ('scheduled', 'scheduled'),
        ('in_progress', 'scheduled'),
        ('in_progress', 'no_show'),
        ('completed', 'cancelled'),
        ('completed', 'in_progress'),
        ('cancelled', 'scheduled'),
        ('cancelled', 'in_progress'),
        ('no_show', 'scheduled'),
        ('no_show', 'completed'),
    ])
    def test_rejected(self, from_status, to_status):
        with pytest.raises(IllegalTransition) as exc_info:
            state_machine.check_transition(from_status, to_status)
        assert exc_info.value.from_status == from_status
        assert exc_info.value.to_status == to_status

    def test_completed_to_completed_is_noop(self):
        assert state_machine.check_transition('completed', 'completed') is True

    def test_terminal_message(self):
        with pytest.raises(IllegalTransition) as exc_info:
            state_machine.check_transition('cancelled', 'in_progress')
        assert 'terminal' in exc_info.value.messages[0]

    def test_workflow_mirrors_status(self):
        assert state_machine.workflow_for('in_progress', 'checked_in') == 'in_consultation'
        assert state_machine.workflow_for('cancelled', 'checked_in') == 'cancelled'
        assert state_machine.workflow_for('scheduled', 'checked_in') == 'checked_in'

    def test_status_for_workflow(self):
        assert state_machine.status_for_workflow('checked_in') is None
        assert state_machine.status_for_workflow('in_consultation') == 'in_progress'
        with pytest.raises(IllegalTransition):
            state_machine.status_for_workflow('waiting_room')


@pytest.mark.django_db
class TestAppointmentTransitions:

    def test_start_consultation(self, consultation, captured_signals):
        appointment = services.transition_appointment(consultation.id, 'in_progress')

        assert appointment.status == 'in_progress'
        assert appointment.workflow_status == 'in_consultation'
        assert appointment.row_version == consultation.row_version + 1

        started = [kw for name, kw in captured_signals if name == 'started']
        assert started == [{
            'appointment_id': str(consultation.id),
            'department_code': 'MG',
            'workspace_kind': 'consultation',
        }]
        assert _names(captured_signals) == ['started', 'status_changed']

    @pytest.mark.parametrize('appointment_type,payload,workspace_kind', [
        ('physiotherapy', {'bodyRegion': ['knee']}, 'physiotherapy_session'),
        ('laboratory', {}, 'lab_bench'),
        ('imaging', {}, 'imaging_suite'),
    ])
    def test_workspace_kind_follows_department(self, appointment_factory, captured_signals,
                                               appointment_type, payload, workspace_kind):
        appointment = appointment_factory(appointment_type=appointment_type, department_specific_data=payload)

        services.transition_appointment(appointment.id, 'in_progress')

        started = [kw for name, kw in captured_signals if name == 'started']
        assert started[0]['workspace_kind'] == workspace_kind

    def test_complete_after_start(self, consultation, captured_signals):
        services.transition_appointment(consultation.id, 'in_progress')
        appointment, plan = services.complete_appointment(consultation.id)

        assert appointment.status == 'completed'
        assert appointment.workflow_status == 'completed'
        assert plan is None
        assert _names(captured_signals) == ['started', 'status_changed', 'status_changed', 'completed']

    def test_repeat_completion_is_noop(self, consultation, captured_signals):
        services.transition_appointment(consultation.id, 'in_progress')
        completed, _ = services.complete_appointment(consultation.id)
        captured_signals.clear()

        again, plan = services.complete_appointment(consultation.id)

        assert again.status == 'completed'
        assert again.row_version == completed.row_version
        assert plan is None
        assert captured_signals == []

    def test_transition_to_completed_routes_through_completion(self, consultation):
        services.transition_appointment(consultation.id, 'in_progress')

        appointment = services.transition_appointment(consultation.id, 'completed')

        assert appointment.status == 'completed'

    def test_scheduled_cannot_complete(self, consultation):
        with pytest.raises(IllegalTransition):
            services.complete_appointment(consultation.id)

        consultation.refresh_from_db()
        assert consultation.status == 'scheduled'

    def test_cancel_stores_reason(self, consultation):
        appointment = services.transition_appointment(consultation.id, 'cancelled', reason='Patient called')

        assert appointment.status == 'cancelled'
        assert appointment.workflow_status == 'cancelled'
        assert appointment.cancellation_reason == 'Patient called'

    def test_terminal_status_cannot_change(self, consultation):
        services.transition_appointment(consultation.id, 'cancelled')

        with pytest.raises(IllegalTransition):
            services.transition_appointment(consultation.id, 'in_progress')

    def test_no_show_before_start_rejected(self, consultation):
        with pytest.raises(IllegalTransition):
            services.transition_appointment(consultation.id, 'no_show')

        consultation.refresh_from_db()
        assert consultation.status == 'scheduled'

    def test_no_show_after_start(self, appointment_factory):
        past = appointment_factory(start_offset=timedelta(hours=-2))

        appointment = services.transition_appointment(past.id, 'no_show', reason='Did not arrive')

        assert appointment.status == 'no_show'
        assert appointment.workflow_status == 'no_show'
        assert appointment.no_show_reason == 'Did not arrive'

    def test_stale_row_version_rejected(self, consultation):
        with pytest.raises(ConcurrentModification):
            services.transition_appointment(
                consultation.id, 'in_progress', expected_row_version=consultation.row_version + 5
            )

        consultation.refresh_from_db()
        assert consultation.status == 'scheduled'

    def test_matching_row_version_accepted(self, consultation):
        appointment = services.transition_appointment(
            consultation.id, 'in_progress', expected_row_version=consultation.row_version
        )
        assert appointment.status == 'in_progress'


@pytest.mark.django_db
class TestCheckIn:

    def test_check_in_keeps_status(self, consultation, captured_signals):
        appointment = services.check_in_appointment(consultation.id)

        assert appointment.status == 'scheduled'
        assert appointment.workflow_status == 'checked_in'
        assert captured_signals == []

    def test_check_in_twice_rejected(self, consultation):
        services.check_in_appointment(consultation.id)

        with pytest.raises(IllegalTransition):
            services.check_in_appointment(consultation.id)

    def test_start_after_check_in(self, consultation):
        services.transition_workflow(consultation.id, 'checked_in')

        appointment = services.transition_workflow(consultation.id, 'in_consultation')

        assert appointment.status == 'in_progress'
        assert appointment.workflow_status == 'in_consultation'

    def test_cancel_after_check_in(self, consultation):
        services.check_in_appointment(consultation.id)

        appointment = services.transition_appointment(consultation.id, 'cancelled')

        assert appointment.workflow_status == 'cancelled'


@pytest.mark.django_db
class TestUpdateAppointment:

    def test_partial_payload_is_merged(self, appointment_factory, physio_payload):
        appointment = appointment_factory(appointment_type='physiotherapy', department_specific_data=physio_payload)

        updated = services.update_appointment(
            appointment.id, changes={'department_specific_data': {'painLevel': 3}}
        )

        assert updated.department_specific_data['painLevel'] == 3
        assert updated.department_specific_data['bodyRegion'] == ['lumbar']
        assert updated.row_version == appointment.row_version + 1

    def test_invalid_partial_payload_leaves_row_untouched(self, appointment_factory, physio_payload):
        appointment = appointment_factory(appointment_type='physiotherapy', department_specific_data=physio_payload)

        with pytest.raises(InvalidDepartmentPayload):
            services.update_appointment(appointment.id, changes={'department_specific_data': {'painLevel': 12}})

        appointment.refresh_from_db()
        assert appointment.department_specific_data['painLevel'] == 6

    def test_type_change_switches_variant(self, consultation):
        updated = services.update_appointment(consultation.id, changes={'appointment_type': 'laboratory'})

        assert updated.department_code == 'LAB'
        assert updated.department_specific_data['variant'] == 'laboratory'
        assert updated.payload_warnings[0]['field'] == 'tests'

    def test_cancelled_appointment_cannot_be_edited(self, consultation):
        services.transition_appointment(consultation.id, 'cancelled')

        with pytest.raises(IllegalTransition):
            services.update_appointment(consultation.id, changes={'notes': 'Rebook'})


@pytest.mark.django_db
class TestDeleteAppointment:

    def test_scheduled_appointment_soft_deleted(self, consultation, staff_user, captured_signals):
        dependents = services.delete_appointment(consultation.id, user=staff_user)

        assert dependents == []
        row = Appointment.objects.get(pk=consultation.pk)
        assert row.is_deleted is True
        assert row.deleted_by_user_id == staff_user.pk
        assert _names(captured_signals) == ['deletion_warning']

    def test_in_progress_blocked_without_force(self, consultation):
        services.transition_appointment(consultation.id, 'in_progress')

        with pytest.raises(AppointmentDeletionBlocked):
            services.delete_appointment(consultation.id)

        assert Appointment.objects.get(pk=consultation.pk).is_deleted is False

    def test_completed_deleted_with_force(self, consultation, captured_signals):
        services.transition_appointment(consultation.id, 'in_progress')
        services.complete_appointment(consultation.id)
        captured_signals.clear()

        services.delete_appointment(consultation.id, force=True)

        assert Appointment.objects.get(pk=consultation.pk).is_deleted is True
        warning = captured_signals[0][1]
        assert warning['forced'] is True
        assert warning['status'] == 'completed'

    def test_dependents_reported(self, appointment_factory, physio_payload, treatment_plan):
        appointment = appointment_factory(
            appointment_type='physiotherapy',
            department_specific_data=physio_payload,
            treatment_plan=treatment_plan,
        )

        dependents = services.delete_appointment(appointment.id)

        assert dependents == [{'type': 'treatment_plan', 'id': str(treatment_plan.id)}]

    def test_deleted_appointment_cannot_transition(self, consultation):
        services.delete_appointment(consultation.id)

        with pytest.raises(Appointment.DoesNotExist):
            services.transition_appointment(consultation.id, 'in_progress')
