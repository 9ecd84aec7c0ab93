"""
Clinical serializers for Appointment and department payloads.

Status changes never go through the write serializers; use the
/transition/, /complete/ and /check-in/ endpoints.
"""
from rest_framework import serializers

from apps.authz.models import Practitioner
from apps.core.models import Department, Room
from apps.clinical.models import (
    Appointment,
    AppointmentStatusChoices,
    AppointmentTypeChoices,
    ClinicalReferenceTypeChoices,
    Patient,
    WorkflowStatusChoices,
)


class AppointmentListSerializer(serializers.ModelSerializer):
    """Serializer for Appointment list view (lightweight)"""
    patient_name = serializers.SerializerMethodField()
    doctor_name = serializers.SerializerMethodField()

    class Meta:
        model = Appointment
        fields = [
            'id',
            'patient_id',
            'patient_name',
            'doctor_id',
            'doctor_name',
            'appointment_type',
            'department_code',
            'status',
            'workflow_status',
            'start_time',
            'end_time',
            'row_version',
        ]
        read_only_fields = fields

    def get_patient_name(self, obj):
        return f"{obj.patient.first_name} {obj.patient.last_name}".strip()

    def get_doctor_name(self, obj):
        if obj.doctor:
            return obj.doctor.display_name
        return None


class AppointmentDetailSerializer(AppointmentListSerializer):
    """Serializer for Appointment detail view (all fields, read-only)"""
    payload_warnings = serializers.SerializerMethodField()

    class Meta:
        model = Appointment
        fields = AppointmentListSerializer.Meta.fields + [
            'department_id',
            'room_id',
            'referring_department_id',
            'reason',
            'notes',
            'department_specific_data',
            'clinical_reference_type',
            'clinical_reference_id',
            'cancellation_reason',
            'no_show_reason',
            'payload_warnings',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_payload_warnings(self, obj):
        """Warnings from the last payload validation (write responses only)."""
        return list(getattr(obj, 'payload_warnings', []))


class AppointmentCreateSerializer(serializers.Serializer):
    patient_id = serializers.PrimaryKeyRelatedField(
        queryset=Patient.objects.filter(is_deleted=False), source='patient'
    )
    appointment_type = serializers.ChoiceField(choices=AppointmentTypeChoices.choices)
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    department_code = serializers.CharField(max_length=10, required=False, allow_blank=False)
    department_id = serializers.PrimaryKeyRelatedField(
        queryset=Department.objects.all(), source='department', required=False, allow_null=True
    )
    doctor_id = serializers.PrimaryKeyRelatedField(
        queryset=Practitioner.objects.filter(is_active=True), source='doctor', required=False, allow_null=True
    )
    room_id = serializers.PrimaryKeyRelatedField(
        queryset=Room.objects.filter(is_active=True), source='room', required=False, allow_null=True
    )
    referring_department_id = serializers.PrimaryKeyRelatedField(
        queryset=Department.objects.all(), source='referring_department', required=False, allow_null=True
    )
    treatment_plan_id = serializers.UUIDField(required=False)
    reason = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    department_specific_data = serializers.JSONField(required=False)

    def validate_department_specific_data(self, value):
        if value is not None and not isinstance(value, dict):
            raise serializers.ValidationError('Must be a JSON object')
        return value

    def validate(self, attrs):
        if attrs['end_time'] <= attrs['start_time']:
            raise serializers.ValidationError({'end_time': 'End time must be after start time'})
        return attrs


class AppointmentUpdateSerializer(serializers.Serializer):
    start_time = serializers.DateTimeField(required=False)
    end_time = serializers.DateTimeField(required=False)
    appointment_type = serializers.ChoiceField(choices=AppointmentTypeChoices.choices, required=False)
    department_code = serializers.CharField(max_length=10, required=False)
    doctor_id = serializers.PrimaryKeyRelatedField(
        queryset=Practitioner.objects.all(), source='doctor', required=False, allow_null=True
    )
    room_id = serializers.PrimaryKeyRelatedField(
        queryset=Room.objects.all(), source='room', required=False, allow_null=True
    )
    referring_department_id = serializers.PrimaryKeyRelatedField(
        queryset=Department.objects.all(), source='referring_department', required=False, allow_null=True
    )
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    department_specific_data = serializers.JSONField(required=False)
    row_version = serializers.IntegerField(required=False, min_value=1)

    def validate_department_specific_data(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Must be a JSON object')
        return value


class AppointmentTransitionSerializer(serializers.Serializer):
    """Either a status or a workflow_status target."""
    status = serializers.ChoiceField(choices=AppointmentStatusChoices.choices, required=False)
    workflow_status = serializers.ChoiceField(choices=WorkflowStatusChoices.choices, required=False)
    reason = serializers.CharField(required=False, allow_blank=True)
    row_version = serializers.IntegerField(required=False, min_value=1)

    def validate(self, attrs):
        if bool(attrs.get('status')) == bool(attrs.get('workflow_status')):
            raise serializers.ValidationError('Provide exactly one of status or workflow_status')
        return attrs


class RowVersionSerializer(serializers.Serializer):
    row_version = serializers.IntegerField(required=False, min_value=1)


class CompleteAppointmentSerializer(RowVersionSerializer):
    """``session`` is the physiotherapy SOAP note, validated by the physio app."""
    session = serializers.DictField(required=False)


class LinkClinicalReferenceSerializer(RowVersionSerializer):
    reference_type = serializers.ChoiceField(choices=ClinicalReferenceTypeChoices.choices)
    reference_id = serializers.UUIDField()


class DepartmentDataValidateSerializer(serializers.Serializer):
    appointment_type = serializers.ChoiceField(choices=AppointmentTypeChoices.choices)
    department_code = serializers.CharField(max_length=10, required=False)
    data = serializers.JSONField(required=False)
    existing = serializers.JSONField(required=False)
