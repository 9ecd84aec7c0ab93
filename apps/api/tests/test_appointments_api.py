"""
Tests for the appointment and physiotherapy HTTP endpoints.

Tests cover:
1. Authentication required
2. Department resolution and payload errors surfaced as 400
3. Transitions, completion, check-in and linking over HTTP
4. 409 for concurrency, deletion blocks and plan ownership
5. Dry-run department payload validation
6. Physiotherapy session notes by appointment
"""
from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework import status

from apps.clinical import services as clinical_services
from apps.clinical.models import Appointment
from apps.physio.models import PhysioTreatmentPlan

APPOINTMENTS_URL = '/api/v1/clinical/appointments/'
VALIDATE_URL = '/api/v1/clinical/department-data/validate/'
EVALUATIONS_URL = '/api/v1/physio/evaluations/'
PLANS_URL = '/api/v1/physio/plans/'
SESSIONS_URL = '/api/v1/physio/sessions/'


def _appointment_url(appointment_id, action=None):
    url = f'{APPOINTMENTS_URL}{appointment_id}/'
    return f'{url}{action}/' if action else url


@pytest.fixture
def appointment_body(patient):
    start = timezone.now() + timedelta(days=2)
    return {
        'patient_id': str(patient.id),
        'appointment_type': 'physiotherapy',
        'start_time': start.isoformat(),
        'end_time': (start + timedelta(minutes=45)).isoformat(),
        'department_specific_data': {'sessionType': 'treatment', 'bodyRegion': ['shoulder'], 'painLevel': 5},
    }


@pytest.mark.django_db
class TestAuthentication:

    def test_anonymous_requests_rejected(self, api_client):
        response = api_client.get(APPOINTMENTS_URL)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_health_checks_are_public(self, api_client):
        assert api_client.get('/healthz').status_code == status.HTTP_200_OK


@pytest.mark.django_db
class TestCreateAppointment:

    def test_create_physiotherapy_appointment(self, auth_client, appointment_body):
        response = auth_client.post(APPOINTMENTS_URL, appointment_body, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['department_code'] == 'FT'
        assert response.data['status'] == 'scheduled'
        assert response.data['workflow_status'] == 'scheduled'
        assert response.data['row_version'] == 1
        payload = response.data['department_specific_data']
        assert payload['variant'] == 'physiotherapy'
        assert payload['bodyRegion'] == ['shoulder']
        assert payload['estimatedDuration'] == 45

    def test_laboratory_without_code_resolves_to_lab_with_warning(self, auth_client, appointment_body):
        appointment_body.update(appointment_type='laboratory', department_specific_data={})

        response = auth_client.post(APPOINTMENTS_URL, appointment_body, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['department_code'] == 'LAB'
        assert [w['field'] for w in response.data['payload_warnings']] == ['tests']

    def test_explicit_code_wins_over_type(self, auth_client, appointment_body):
        appointment_body.update(department_code='CAR', department_specific_data={'visitType': 'new_patient'})

        response = auth_client.post(APPOINTMENTS_URL, appointment_body, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['department_code'] == 'CAR'
        assert response.data['department_specific_data']['variant'] == 'general'

    def test_department_id_resolves_code(self, auth_client, appointment_body, physio_department):
        appointment_body.update(appointment_type='consultation', department_id=str(physio_department.id))

        response = auth_client.post(APPOINTMENTS_URL, appointment_body, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['department_code'] == 'FT'

    def test_invalid_payload_names_field(self, auth_client, appointment_body):
        appointment_body['department_specific_data']['painLevel'] = 11

        response = auth_client.post(APPOINTMENTS_URL, appointment_body, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['field'] == 'painLevel'
        assert response.data['code'] == 'invalid_department_payload'
        assert Appointment.objects.count() == 0

    def test_payload_fields_of_another_department_rejected(self, auth_client, appointment_body):
        appointment_body.update(
            appointment_type='consultation',
            department_specific_data={'contrastRequired': True, 'contrastDose': 50, 'pregnancyRisk': True},
        )

        response = auth_client.post(APPOINTMENTS_URL, appointment_body, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['field'] == 'contrastRequired'
        assert response.data['code'] == 'invalid_department_payload'
        assert Appointment.objects.count() == 0

    def test_end_before_start_rejected(self, auth_client, appointment_body):
        appointment_body['end_time'] = appointment_body['start_time']

        response = auth_client.post(APPOINTMENTS_URL, appointment_body, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_book_against_plan(self, auth_client, appointment_body, treatment_plan):
        appointment_body['treatment_plan_id'] = str(treatment_plan.id)

        response = auth_client.post(APPOINTMENTS_URL, appointment_body, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['department_specific_data']['sessionNumber'] == 1
        assert response.data['clinical_reference_type'] == 'treatment_plan'
        assert str(response.data['clinical_reference_id']) == str(treatment_plan.id)


@pytest.mark.django_db
class TestListAndRetrieve:

    def test_filter_by_department_code(self, auth_client, appointment_factory, physio_payload):
        appointment_factory(appointment_type='physiotherapy', department_specific_data=physio_payload)
        appointment_factory(appointment_type='laboratory')

        response = auth_client.get(APPOINTMENTS_URL, {'department_code': 'LAB'})

        assert response.status_code == status.HTTP_200_OK
        assert [row['department_code'] for row in response.data['results']] == ['LAB']

    def test_unknown_appointment_is_404(self, auth_client):
        response = auth_client.get(_appointment_url('00000000-0000-0000-0000-000000000000'))
        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestUpdateAppointment:

    def test_partial_payload_merge(self, auth_client, appointment_factory, physio_payload):
        appointment = appointment_factory(appointment_type='physiotherapy', department_specific_data=physio_payload)

        response = auth_client.patch(
            _appointment_url(appointment.id),
            {'department_specific_data': {'painLevel': 2}, 'row_version': 1},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['department_specific_data']['painLevel'] == 2
        assert response.data['department_specific_data']['bodyRegion'] == ['lumbar']
        assert response.data['row_version'] == 2

    def test_stale_row_version_is_409(self, auth_client, consultation):
        response = auth_client.patch(
            _appointment_url(consultation.id), {'notes': 'Bring results', 'row_version': 3}, format='json'
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'concurrent_modification'


@pytest.mark.django_db
class TestTransitions:

    def test_start(self, auth_client, consultation):
        response = auth_client.post(
            _appointment_url(consultation.id, 'transition'), {'status': 'in_progress'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'in_progress'
        assert response.data['workflow_status'] == 'in_consultation'

    def test_illegal_transition_is_400(self, auth_client, consultation):
        response = auth_client.post(
            _appointment_url(consultation.id, 'transition'), {'status': 'completed'}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'illegal_transition'
        assert response.data['from_status'] == 'scheduled'

    def test_status_and_workflow_together_rejected(self, auth_client, consultation):
        response = auth_client.post(
            _appointment_url(consultation.id, 'transition'),
            {'status': 'in_progress', 'workflow_status': 'in_consultation'},
            format='json'
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_workflow_check_in(self, auth_client, consultation):
        response = auth_client.post(
            _appointment_url(consultation.id, 'transition'), {'workflow_status': 'checked_in'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'scheduled'
        assert response.data['workflow_status'] == 'checked_in'

    def test_check_in_endpoint(self, auth_client, consultation):
        first = auth_client.post(_appointment_url(consultation.id, 'check-in'), {}, format='json')
        second = auth_client.post(_appointment_url(consultation.id, 'check-in'), {}, format='json')

        assert first.status_code == status.HTTP_200_OK
        assert second.status_code == status.HTTP_400_BAD_REQUEST

    def test_complete_counts_plan_session(self, auth_client, appointment_factory, physio_payload, treatment_plan):
        appointment = appointment_factory(
            appointment_type='physiotherapy', department_specific_data=physio_payload, treatment_plan=treatment_plan
        )
        clinical_services.transition_appointment(appointment.id, 'in_progress')

        response = auth_client.post(_appointment_url(appointment.id, 'complete'), {}, format='json')
        repeat = auth_client.post(_appointment_url(appointment.id, 'complete'), {}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['appointment']['status'] == 'completed'
        assert response.data['treatment_plan']['sessions_completed'] == 1
        assert response.data['treatment_plan']['status'] == 'active'
        assert response.data['treatment_plan']['next_session_number'] == 2
        assert repeat.status_code == status.HTTP_200_OK
        assert repeat.data['treatment_plan'] is None
        treatment_plan.refresh_from_db()
        assert treatment_plan.sessions_completed == 1

    def test_link_clinical_reference(self, auth_client, appointment_factory, physio_payload, treatment_plan):
        appointment = appointment_factory(appointment_type='physiotherapy', department_specific_data=physio_payload)

        response = auth_client.post(
            _appointment_url(appointment.id, 'link-clinical-reference'),
            {'reference_type': 'treatment_plan', 'reference_id': str(treatment_plan.id)},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['clinical_reference_type'] == 'treatment_plan'


@pytest.mark.django_db
class TestDeleteAppointment:

    def test_in_progress_delete_blocked(self, auth_client, consultation):
        clinical_services.transition_appointment(consultation.id, 'in_progress')

        response = auth_client.delete(_appointment_url(consultation.id))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'deletion_blocked'

    def test_forced_delete_reports_dependents(self, auth_client, appointment_factory, physio_payload,
                                              treatment_plan):
        appointment = appointment_factory(
            appointment_type='physiotherapy', department_specific_data=physio_payload, treatment_plan=treatment_plan
        )
        clinical_services.transition_appointment(appointment.id, 'in_progress')

        response = auth_client.delete(f'{_appointment_url(appointment.id)}?force=true')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['dependents'] == [{'type': 'treatment_plan', 'id': str(treatment_plan.id)}]
        assert auth_client.get(_appointment_url(appointment.id)).status_code == status.HTTP_404_NOT_FOUND
        assert PhysioTreatmentPlan.objects.filter(pk=treatment_plan.pk).exists()


@pytest.mark.django_db
class TestDepartmentDataValidate:

    def test_valid_payload(self, auth_client):
        response = auth_client.post(VALIDATE_URL, {
            'appointment_type': 'laboratory',
            'data': {'requiresFasting': True, 'fastingHours': 8, 'tests': [{'testId': 'glu', 'testName': 'Glucose'}]},
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['department_code'] == 'LAB'
        assert response.data['variant'] == 'laboratory'
        assert response.data['warnings'] == []

    def test_invalid_fasting_hours(self, auth_client):
        response = auth_client.post(VALIDATE_URL, {
            'appointment_type': 'laboratory',
            'data': {'requiresFasting': True, 'fastingHours': 30},
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['field'] == 'fastingHours'

    def test_merge_over_existing(self, auth_client):
        response = auth_client.post(VALIDATE_URL, {
            'appointment_type': 'imaging',
            'department_code': 'RAD',
            'existing': {'variant': 'imaging', 'imagingType': 'mri', 'bodyPart': 'spine'},
            'data': {'bodyPart': 'head'},
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data']['imagingType'] == 'mri'
        assert response.data['data']['bodyPart'] == 'head'


@pytest.mark.django_db
class TestPhysioEndpoints:

    def test_evaluation_to_plan_flow(self, auth_client, patient, therapist):
        created = auth_client.post(EVALUATIONS_URL, {
            'patient_id': str(patient.id),
            'therapist_id': str(therapist.id),
            'diagnosis': 'Rotator cuff tendinopathy',
            'vas_score': 6,
            'informed_consent_signed': True,
        }, format='json')
        assert created.status_code == status.HTTP_201_CREATED

        plan_response = auth_client.post(f"{EVALUATIONS_URL}{created.data['id']}/activate-plan/", {
            'sessions_per_week': 2,
            'total_sessions_prescribed': 8,
            'start_date': timezone.localdate().isoformat(),
        }, format='json')

        assert plan_response.status_code == status.HTTP_201_CREATED
        assert plan_response.data['status'] == 'indicated'
        assert plan_response.data['sessions_completed'] == 0

        again = auth_client.post(f"{EVALUATIONS_URL}{created.data['id']}/activate-plan/", {
            'sessions_per_week': 2,
            'total_sessions_prescribed': 8,
            'start_date': timezone.localdate().isoformat(),
        }, format='json')
        assert again.status_code == status.HTTP_409_CONFLICT
        assert again.data['code'] == 'evaluation_already_has_plan'

    def test_activate_without_consent_is_409(self, auth_client, evaluation, plan_request):
        evaluation.informed_consent_signed = False
        evaluation.save()

        response = auth_client.post(f'{EVALUATIONS_URL}{evaluation.id}/activate-plan/', {
            'sessions_per_week': 2,
            'total_sessions_prescribed': 3,
            'start_date': timezone.localdate().isoformat(),
        }, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'consent_required'
        assert PhysioTreatmentPlan.objects.count() == 0

    def test_next_session_and_discontinue(self, auth_client, treatment_plan):
        next_session = auth_client.get(f'{PLANS_URL}{treatment_plan.id}/next-session/')
        assert next_session.data['next_session_number'] == 1

        response = auth_client.post(
            f'{PLANS_URL}{treatment_plan.id}/discontinue/', {'reason': 'Referred to surgery'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'discontinued'

    def test_finalize_indicated_plan_rejected(self, auth_client, treatment_plan):
        response = auth_client.post(f'{PLANS_URL}{treatment_plan.id}/finalize/', {'final_vas': 2}, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST


def _session_url(appointment_id):
    return f'/api/v1/physio/appointments/{appointment_id}/session/'


@pytest.mark.django_db
class TestPhysioSessionEndpoints:

    @pytest.fixture
    def started_session(self, appointment_factory, physio_payload, treatment_plan):
        appointment = appointment_factory(
            appointment_type='physiotherapy', department_specific_data=physio_payload, treatment_plan=treatment_plan
        )
        return clinical_services.transition_appointment(appointment.id, 'in_progress')

    def test_put_creates_then_amends(self, auth_client, started_session, staff_user):
        created = auth_client.put(
            _session_url(started_session.id),
            {'subjective': 'Sore after exercises', 'pain_before': 5},
            format='json'
        )
        amended = auth_client.put(_session_url(started_session.id), {'pain_after': 2}, format='json')
        fetched = auth_client.get(_session_url(started_session.id))

        assert created.status_code == status.HTTP_201_CREATED
        assert created.data['session_number'] == 1
        assert created.data['signed_by_user_id'] == staff_user.id
        assert amended.status_code == status.HTTP_200_OK
        assert amended.data['id'] == created.data['id']
        assert fetched.status_code == status.HTTP_200_OK
        assert fetched.data['pain_reduction'] == 3

    def test_get_without_note_is_404(self, auth_client, started_session):
        response = auth_client.get(_session_url(started_session.id))
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_unknown_session_field_is_400(self, auth_client, started_session):
        response = auth_client.put(_session_url(started_session.id), {'painAfter': 2}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'painAfter' in response.data

    def test_note_for_scheduled_appointment_is_400(self, auth_client, appointment_factory, physio_payload):
        appointment = appointment_factory(appointment_type='physiotherapy', department_specific_data=physio_payload)

        response = auth_client.put(_session_url(appointment.id), {'subjective': 'x'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_complete_with_session(self, auth_client, started_session, treatment_plan):
        response = auth_client.post(
            _appointment_url(started_session.id, 'complete'),
            {'session': {'assessment': 'Improving', 'pain_before': 6, 'pain_after': 4}},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['appointment']['status'] == 'completed'
        assert response.data['treatment_plan']['sessions_completed'] == 1
        assert response.data['session']['assessment'] == 'Improving'

        listed = auth_client.get(SESSIONS_URL, {'plan_id': str(treatment_plan.id)})
        assert listed.status_code == status.HTTP_200_OK
        assert [row['appointment_id'] for row in listed.data['results']] == [started_session.id]

    def test_complete_with_invalid_session_keeps_appointment_open(self, auth_client, started_session,
                                                                   treatment_plan):
        response = auth_client.post(
            _appointment_url(started_session.id, 'complete'),
            {'session': {'pain_after': 15}},
            format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        started_session.refresh_from_db()
        assert started_session.status == 'in_progress'
