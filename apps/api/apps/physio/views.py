"""
Physiotherapy viewsets: evaluations, treatment plans and session notes.
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.shortcuts import get_object_or_404
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.clinical.exceptions import ConcurrentModification
from apps.clinical.models import Appointment
from apps.clinical.responses import domain_error_response
from apps.physio import services
from apps.physio.linkage import next_session_number
from apps.physio.models import PhysioMedicalRecord, PhysioSession, PhysioTreatmentPlan
from apps.physio.serializers import (
    DischargeSerializer,
    DischargeSummarySerializer,
    DiscontinuePlanSerializer,
    EvaluationSerializer,
    EvaluationWriteSerializer,
    PhysioSessionSerializer,
    PhysioSessionWriteSerializer,
    PlanRequestSerializer,
    TreatmentPlanSerializer,
)

logger = logging.getLogger(__name__)


class EvaluationViewSet(mixins.CreateModelMixin,
                        mixins.ListModelMixin,
                        mixins.RetrieveModelMixin,
                        mixins.UpdateModelMixin,
                        viewsets.GenericViewSet):
    """
    ViewSet for physiotherapy evaluations.

    Endpoints:
    - POST /api/v1/physio/evaluations/
    - GET /api/v1/physio/evaluations/?patient_id=
    - GET /api/v1/physio/evaluations/{id}/
    - PATCH /api/v1/physio/evaluations/{id}/ (open evaluations only)
    - POST /api/v1/physio/evaluations/{id}/activate-plan/
    """
    permission_classes = [IsAuthenticated]
    serializer_class = EvaluationSerializer
    http_method_names = ['get', 'post', 'patch', 'head', 'options']

    def get_queryset(self):
        queryset = PhysioMedicalRecord.objects.select_related('patient', 'therapist')
        patient_id = self.request.query_params.get('patient_id')
        if patient_id:
            queryset = queryset.filter(patient_id=patient_id)
        status_filter = self.request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = EvaluationWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        patient = data.pop('patient', None)
        if patient is None:
            return Response({'error': {'patient_id': ['This field is required.']}},
                            status=status.HTTP_400_BAD_REQUEST)
        therapist = data.pop('therapist', None) or getattr(request.user, 'practitioner', None)
        if therapist is None:
            return Response({'error': {'therapist_id': ['This field is required.']}},
                            status=status.HTTP_400_BAD_REQUEST)

        try:
            evaluation = services.create_evaluation(
                patient=patient,
                therapist=therapist,
                originating_appointment=data.pop('originating_appointment', None),
                data=data,
                created_by=request.user,
            )
        except DjangoValidationError as e:
            return domain_error_response(e)

        return Response(EvaluationSerializer(evaluation).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        instance = self.get_object()
        serializer = EvaluationWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = {
            key: value for key, value in serializer.validated_data.items()
            if key not in ('patient', 'therapist', 'originating_appointment')
        }

        try:
            evaluation = services.update_evaluation(instance.pk, data)
        except DjangoValidationError as e:
            return domain_error_response(e)

        return Response(EvaluationSerializer(evaluation).data)

    @action(detail=True, methods=['post'], url_path='activate-plan')
    def activate_plan(self, request, pk=None):
        """
        POST /api/v1/physio/evaluations/{id}/activate-plan/

        Request body:
        {
            "plan_type": "rehabilitation",
            "sessions_per_week": 2,
            "total_sessions_prescribed": 10,
            "start_date": "2026-01-12"
        }

        Returns:
            201: Plan created (status indicated, sessions_completed 0)
            409: Consent not signed, or evaluation already has a plan
        """
        evaluation = self.get_object()
        serializer = PlanRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            plan = services.activate_treatment_plan(evaluation.pk, dict(serializer.validated_data))
        except (DjangoValidationError, ConcurrentModification) as e:
            return domain_error_response(e)

        return Response(TreatmentPlanSerializer(plan).data, status=status.HTTP_201_CREATED)


class TreatmentPlanViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for treatment plans. Plans are created from evaluations and
    progressed only by completing appointments.

    Endpoints:
    - GET /api/v1/physio/plans/?patient_id=&status=
    - GET /api/v1/physio/plans/{id}/
    - GET /api/v1/physio/plans/{id}/next-session/
    - POST /api/v1/physio/plans/{id}/discontinue/
    - POST /api/v1/physio/plans/{id}/finalize/
    """
    permission_classes = [IsAuthenticated]
    serializer_class = TreatmentPlanSerializer

    def get_queryset(self):
        queryset = PhysioTreatmentPlan.objects.select_related('patient', 'medical_record')
        patient_id = self.request.query_params.get('patient_id')
        if patient_id:
            queryset = queryset.filter(patient_id=patient_id)
        status_filter = self.request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset

    @action(detail=True, methods=['get'], url_path='next-session')
    def next_session(self, request, pk=None):
        plan = self.get_object()
        return Response({
            'plan_id': str(plan.id),
            'next_session_number': next_session_number(plan),
            'sessions_completed': plan.sessions_completed,
            'total_sessions_prescribed': plan.total_sessions_prescribed,
        })

    @action(detail=True, methods=['post'], url_path='discontinue')
    def discontinue(self, request, pk=None):
        plan = self.get_object()
        serializer = DiscontinuePlanSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            plan = services.discontinue_treatment_plan(
                plan.pk, serializer.validated_data['reason'],
                expected_row_version=serializer.validated_data.get('row_version'),
            )
        except (DjangoValidationError, ConcurrentModification) as e:
            return domain_error_response(e)

        return Response(TreatmentPlanSerializer(plan).data)

    @action(detail=True, methods=['post'], url_path='finalize')
    def finalize(self, request, pk=None):
        """Discharge the patient and write the discharge summary."""
        plan = self.get_object()
        serializer = DischargeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        row_version = data.pop('row_version', None)

        try:
            summary = services.finalize_treatment_plan(
                plan.pk, data, discharged_by=request.user, expected_row_version=row_version
            )
        except (DjangoValidationError, ConcurrentModification) as e:
            return domain_error_response(e)

        return Response(DischargeSummarySerializer(summary).data, status=status.HTTP_201_CREATED)


class PhysioSessionViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Session notes, newest first.

    Endpoints:
    - GET /api/v1/physio/sessions/?evaluation_id=&plan_id=&patient_id=
    - GET /api/v1/physio/sessions/{id}/
    """
    permission_classes = [IsAuthenticated]
    serializer_class = PhysioSessionSerializer

    def get_queryset(self):
        queryset = services.list_sessions(
            medical_record_id=self.request.query_params.get('evaluation_id'),
            treatment_plan_id=self.request.query_params.get('plan_id'),
        ).filter(appointment__is_deleted=False)
        patient_id = self.request.query_params.get('patient_id')
        if patient_id:
            queryset = queryset.filter(patient_id=patient_id)
        return queryset


class AppointmentSessionView(APIView):
    """
    Session note of one physiotherapy appointment.

    - GET /api/v1/physio/appointments/{appointment_id}/session/
        200: note, 404: nothing recorded yet
    - PUT /api/v1/physio/appointments/{appointment_id}/session/
        201: note created, 200: note amended
        400: not a physiotherapy appointment, not started, or invalid field
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, appointment_id):
        try:
            session = services.get_session_for_appointment(appointment_id)
        except PhysioSession.DoesNotExist:
            return Response({'error': 'No session recorded for this appointment'},
                            status=status.HTTP_404_NOT_FOUND)
        return Response(PhysioSessionSerializer(session).data)

    def put(self, request, appointment_id):
        get_object_or_404(Appointment, pk=appointment_id, is_deleted=False)
        serializer = PhysioSessionWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        therapist = data.pop('therapist', None)

        try:
            session, created = services.record_session(
                appointment_id, data, therapist=therapist, user=request.user
            )
        except DjangoValidationError as e:
            return domain_error_response(e)

        return Response(
            PhysioSessionSerializer(session).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )
