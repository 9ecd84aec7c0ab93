"""
Global test fixtures for pytest.

Provides reusable fixtures for API and service testing:
- Authenticated API client
- Model instances (Department, Practitioner, Patient, Appointment,
  PhysioMedicalRecord, PhysioTreatmentPlan)
"""
from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from apps.authz.models import User, Practitioner, PractitionerKindChoices
from apps.core.models import Department, Room
from apps.clinical.models import Patient
from apps.clinical import services as clinical_services
from apps.physio.models import PhysioMedicalRecord
from apps.physio import linkage


# ============================================================================
# API Clients
# ============================================================================

@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def staff_user(db):
    return User.objects.create_user(
        email='frontdesk@test.com',
        password='testpass123',
        is_active=True
    )


@pytest.fixture
def auth_client(staff_user):
    """Authenticated API client (role resolution is external)."""
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


# ============================================================================
# Reference data
# ============================================================================

@pytest.fixture
def physio_department(db):
    return Department.objects.create(code='FT', name='Physiotherapy')


@pytest.fixture
def lab_department(db):
    return Department.objects.create(code='LAB', name='Laboratory')


@pytest.fixture
def room(db, physio_department):
    return Room.objects.create(room_number='FT-02', department=physio_department)


@pytest.fixture
def doctor(db):
    user = User.objects.create_user(email='doctor@test.com', password='testpass123')
    return Practitioner.objects.create(
        user=user,
        display_name='Dr. Test Doctor',
        kind=PractitionerKindChoices.DOCTOR,
        specialty='General Medicine',
    )


@pytest.fixture
def therapist(db, physio_department):
    user = User.objects.create_user(email='therapist@test.com', password='testpass123')
    return Practitioner.objects.create(
        user=user,
        display_name='Test Therapist',
        kind=PractitionerKindChoices.PHYSIOTHERAPIST,
        department=physio_department,
    )


@pytest.fixture
def patient(db, staff_user):
    return Patient.objects.create(
        first_name='John',
        last_name='Doe',
        document_number='12345678',
        created_by_user=staff_user
    )


@pytest.fixture
def other_patient(db):
    return Patient.objects.create(first_name='Jane', last_name='Roe')


# ============================================================================
# Appointments
# ============================================================================

@pytest.fixture
def appointment_factory(db, patient):
    """
    Schedule appointments through the service layer.

    Usage:
        appt = appointment_factory(appointment_type='laboratory')
        past = appointment_factory(start_offset=timedelta(hours=-2))
    """
    def _make(appointment_type='consultation', start_offset=timedelta(days=1), duration=timedelta(minutes=45),
              **kwargs):
        start = timezone.now() + start_offset
        kwargs.setdefault('patient', patient)
        return clinical_services.schedule_appointment(
            appointment_type=appointment_type,
            start_time=start,
            end_time=start + duration,
            **kwargs
        )
    return _make


@pytest.fixture
def consultation(appointment_factory, doctor):
    return appointment_factory(appointment_type='consultation', doctor=doctor)


@pytest.fixture
def physio_payload():
    return {'sessionType': 'treatment', 'bodyRegion': ['lumbar'], 'painLevel': 6}


# ============================================================================
# Physiotherapy
# ============================================================================

@pytest.fixture
def evaluation(db, patient, therapist):
    """Open evaluation with signed consent."""
    return PhysioMedicalRecord.objects.create(
        patient=patient,
        therapist=therapist,
        diagnosis='Mechanical low back pain',
        vas_score=7,
        oswestry_score=40,
        informed_consent_signed=True,
        informed_consent_date=timezone.localdate(),
    )


@pytest.fixture
def plan_request():
    return {
        'plan_type': 'rehabilitation',
        'sessions_per_week': 2,
        'total_sessions_prescribed': 3,
        'start_date': timezone.localdate(),
    }


@pytest.fixture
def treatment_plan(evaluation, plan_request):
    return linkage.link_evaluation_to_plan(evaluation, plan_request)
