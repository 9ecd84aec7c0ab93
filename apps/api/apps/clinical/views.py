"""
Clinical viewsets for appointments and department payload validation.
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.shortcuts import get_object_or_404
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.clinical import services
from apps.clinical.exceptions import ConcurrentModification
from apps.clinical.models import Appointment
from apps.clinical.responses import domain_error_response
from apps.clinical.serializers import (
    AppointmentCreateSerializer,
    AppointmentDetailSerializer,
    AppointmentListSerializer,
    AppointmentTransitionSerializer,
    AppointmentUpdateSerializer,
    CompleteAppointmentSerializer,
    DepartmentDataValidateSerializer,
    LinkClinicalReferenceSerializer,
    RowVersionSerializer,
)

logger = logging.getLogger(__name__)


class AppointmentViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Appointment endpoints.

    Endpoints:
    - POST /api/v1/clinical/appointments/
    - GET /api/v1/clinical/appointments/
    - GET /api/v1/clinical/appointments/{id}/
    - PATCH /api/v1/clinical/appointments/{id}/
    - DELETE /api/v1/clinical/appointments/{id}/?force=true (soft delete)
    - POST /api/v1/clinical/appointments/{id}/transition/
    - POST /api/v1/clinical/appointments/{id}/complete/
    - POST /api/v1/clinical/appointments/{id}/check-in/
    - POST /api/v1/clinical/appointments/{id}/link-clinical-reference/
    """
    permission_classes = [IsAuthenticated]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def get_queryset(self):
        """
        Filters:
        - status: appointment status
        - workflow_status: front-desk workflow status
        - appointment_type: appointment type
        - department_code: effective department code
        - date_from / date_to: start_time range
        - patient_id, doctor_id
        """
        queryset = Appointment.objects.select_related('patient', 'doctor').filter(is_deleted=False)

        params = self.request.query_params
        filters = {
            'status': 'status',
            'workflow_status': 'workflow_status',
            'appointment_type': 'appointment_type',
            'department_code': 'department_code',
            'patient_id': 'patient_id',
            'doctor_id': 'doctor_id',
            'date_from': 'start_time__gte',
            'date_to': 'start_time__lte',
        }
        for param, lookup in filters.items():
            value = params.get(param)
            if value:
                queryset = queryset.filter(**{lookup: value})

        return queryset.order_by('start_time')

    def get_serializer_class(self):
        if self.action == 'list':
            return AppointmentListSerializer
        if self.action == 'create':
            return AppointmentCreateSerializer
        if self.action == 'partial_update':
            return AppointmentUpdateSerializer
        return AppointmentDetailSerializer

    def create(self, request, *args, **kwargs):
        """
        POST /api/v1/clinical/appointments/

        The department code is resolved from department_code, department_id
        or appointment_type, and department_specific_data is normalized for
        that department before anything is saved.
        """
        from apps.physio.models import PhysioTreatmentPlan

        serializer = AppointmentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        plan_id = data.pop('treatment_plan_id', None)
        if plan_id:
            data['treatment_plan'] = get_object_or_404(PhysioTreatmentPlan, pk=plan_id)

        try:
            appointment = services.schedule_appointment(created_by=request.user, **data)
        except DjangoValidationError as e:
            return domain_error_response(e)

        return Response(AppointmentDetailSerializer(appointment).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        """
        PATCH /api/v1/clinical/appointments/{id}/

        department_specific_data is a partial payload merged over the
        stored one. Status is read-only here.
        """
        instance = self.get_object()
        serializer = AppointmentUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        changes = dict(serializer.validated_data)
        row_version = changes.pop('row_version', None)

        try:
            appointment = services.update_appointment(
                instance.pk, changes=changes, expected_row_version=row_version
            )
        except (DjangoValidationError, ConcurrentModification) as e:
            return domain_error_response(e)

        return Response(AppointmentDetailSerializer(appointment).data)

    def destroy(self, request, *args, **kwargs):
        """
        DELETE /api/v1/clinical/appointments/{id}/

        Soft delete. Completed and in-progress appointments need ?force=true.
        Responds with the dependent clinical artifacts left in place.
        """
        instance = self.get_object()
        force = request.query_params.get('force', 'false').lower() == 'true'

        try:
            dependents = services.delete_appointment(instance.pk, force=force, user=request.user)
        except (DjangoValidationError, ConcurrentModification) as e:
            return domain_error_response(e)

        return Response({'id': str(instance.pk), 'deleted': True, 'dependents': dependents})

    @action(detail=True, methods=['post'], url_path='transition')
    def transition(self, request, pk=None):
        """
        POST /api/v1/clinical/appointments/{id}/transition/

        Request body:
        {
            "status": "in_progress",        # or "workflow_status": "checked_in"
            "reason": "Patient called",     # optional, stored for cancelled/no_show
            "row_version": 3                # optional optimistic concurrency check
        }

        Returns:
            200: Transition successful (completed -> completed is a no-op)
            400: Illegal transition
            409: Concurrent modification
        """
        instance = self.get_object()
        serializer = AppointmentTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            if data.get('workflow_status'):
                appointment = services.transition_workflow(
                    instance.pk, data['workflow_status'],
                    reason=data.get('reason'), expected_row_version=data.get('row_version'),
                )
            else:
                appointment = services.transition_appointment(
                    instance.pk, data['status'],
                    reason=data.get('reason'), expected_row_version=data.get('row_version'),
                )
        except (DjangoValidationError, ConcurrentModification) as e:
            return domain_error_response(e)

        return Response(AppointmentDetailSerializer(appointment).data)

    @action(detail=True, methods=['post'], url_path='complete')
    def complete(self, request, pk=None):
        """
        POST /api/v1/clinical/appointments/{id}/complete/

        Completes the appointment and, for therapy sessions booked against a
        treatment plan, counts the session. Repeating the call is a no-op.

        Request body (all optional):
        {
            "row_version": 3,
            "session": {"subjective": "...", "pain_before": 6, "pain_after": 3}
        }
        """
        instance = self.get_object()
        serializer = CompleteAppointmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        session_data = None
        therapist = None
        if 'session' in serializer.validated_data:
            from apps.physio.serializers import PhysioSessionWriteSerializer

            session_serializer = PhysioSessionWriteSerializer(data=serializer.validated_data['session'])
            if not session_serializer.is_valid():
                return Response({'error': {'session': session_serializer.errors}},
                                status=status.HTTP_400_BAD_REQUEST)
            session_data = dict(session_serializer.validated_data)
            therapist = session_data.pop('therapist', None)

        try:
            appointment, plan = services.complete_appointment(
                instance.pk,
                expected_row_version=serializer.validated_data.get('row_version'),
                session_data=session_data,
                therapist=therapist,
                user=request.user,
            )
        except (DjangoValidationError, ConcurrentModification) as e:
            return domain_error_response(e)

        body = {'appointment': AppointmentDetailSerializer(appointment).data, 'treatment_plan': None,
                'session': None}
        if plan is not None:
            from apps.physio.serializers import TreatmentPlanSerializer
            body['treatment_plan'] = TreatmentPlanSerializer(plan).data
        if session_data is not None:
            from apps.physio.serializers import PhysioSessionSerializer
            body['session'] = PhysioSessionSerializer(appointment.physio_session).data
        return Response(body)

    @action(detail=True, methods=['post'], url_path='check-in')
    def check_in(self, request, pk=None):
        """POST /api/v1/clinical/appointments/{id}/check-in/"""
        instance = self.get_object()
        serializer = RowVersionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            appointment = services.check_in_appointment(
                instance.pk, expected_row_version=serializer.validated_data.get('row_version')
            )
        except (DjangoValidationError, ConcurrentModification) as e:
            return domain_error_response(e)

        return Response(AppointmentDetailSerializer(appointment).data)

    @action(detail=True, methods=['post'], url_path='link-clinical-reference')
    def link_clinical_reference(self, request, pk=None):
        """
        POST /api/v1/clinical/appointments/{id}/link-clinical-reference/

        Request body:
        {
            "reference_type": "treatment_plan",   # or physio_record, initial_assessment
            "reference_id": "<uuid>"
        }
        """
        from apps.physio.linkage import link_appointment_to_clinical_reference

        instance = self.get_object()
        serializer = LinkClinicalReferenceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            appointment = link_appointment_to_clinical_reference(
                instance, data['reference_type'], data['reference_id'],
                expected_row_version=data.get('row_version'),
            )
        except (DjangoValidationError, ConcurrentModification) as e:
            return domain_error_response(e)

        return Response(AppointmentDetailSerializer(appointment).data)


class DepartmentDataValidateView(APIView):
    """
    POST /api/v1/clinical/department-data/validate/

    Dry run of department resolution and payload normalization for forms.

    Request body:
    {
        "appointment_type": "laboratory",
        "department_code": "LAB",        # optional, wins over appointment_type
        "data": {"requiresFasting": true, "fastingHours": 8},
        "existing": {...}                # optional stored payload to merge over
    }

    Returns:
        200: {"department_code", "variant", "data", "warnings"}
        400: {"error", "field"}
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = DepartmentDataValidateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = services.validate_department_data(
                data['appointment_type'],
                data.get('department_code'),
                data.get('data'),
                data.get('existing'),
            )
        except DjangoValidationError as e:
            return domain_error_response(e)

        return Response({
            'department_code': result.department_code,
            'variant': result.variant,
            'data': result.data,
            'warnings': list(result.warnings),
        })
