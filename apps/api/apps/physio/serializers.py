"""
Physiotherapy serializers: evaluations, treatment plans, session notes,
discharge summaries.
"""
from rest_framework import serializers

from apps.authz.models import Practitioner
from apps.clinical.models import Appointment, Patient
from apps.physio.models import (
    PhysioDischargeSummary,
    PhysioMedicalRecord,
    PhysioSession,
    PhysioTreatmentPlan,
    PlanTypeChoices,
)


class TreatmentPlanSerializer(serializers.ModelSerializer):
    """Read-only plan representation; progress fields are never writable."""
    next_session_number = serializers.SerializerMethodField()

    class Meta:
        model = PhysioTreatmentPlan
        fields = [
            'id',
            'patient_id',
            'medical_record_id',
            'therapist_id',
            'plan_type',
            'clinical_objective',
            'sessions_per_week',
            'total_sessions_prescribed',
            'sessions_completed',
            'next_session_number',
            'status',
            'start_date',
            'expected_end_date',
            'actual_end_date',
            'discontinuation_reason',
            'row_version',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_next_session_number(self, obj):
        from apps.physio.linkage import next_session_number
        return next_session_number(obj)


class EvaluationSerializer(serializers.ModelSerializer):
    treatment_plan_id = serializers.SerializerMethodField()

    class Meta:
        model = PhysioMedicalRecord
        fields = [
            'id',
            'patient_id',
            'therapist_id',
            'originating_appointment_id',
            'chief_complaint',
            'diagnosis',
            'vas_score',
            'oswestry_score',
            'dash_score',
            'roland_morris_score',
            'rom_measurements',
            'strength_grade',
            'short_term_goals',
            'long_term_goals',
            'informed_consent_signed',
            'informed_consent_date',
            'status',
            'treatment_plan_id',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_treatment_plan_id(self, obj):
        plan = PhysioTreatmentPlan.objects.filter(medical_record=obj).values_list('id', flat=True).first()
        return str(plan) if plan else None


class EvaluationWriteSerializer(serializers.Serializer):
    """
    Input for evaluation create/update.

    Range checks for scales and ROM/strength entries run in the model's
    full_clean(); this serializer only shapes the input.
    """
    patient_id = serializers.PrimaryKeyRelatedField(
        queryset=Patient.objects.filter(is_deleted=False), source='patient', required=False
    )
    therapist_id = serializers.PrimaryKeyRelatedField(
        queryset=Practitioner.objects.filter(is_active=True), source='therapist', required=False
    )
    originating_appointment_id = serializers.PrimaryKeyRelatedField(
        queryset=Appointment.objects.filter(is_deleted=False), source='originating_appointment',
        required=False, allow_null=True
    )
    chief_complaint = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    diagnosis = serializers.CharField(required=False)
    vas_score = serializers.IntegerField(required=False, allow_null=True)
    oswestry_score = serializers.IntegerField(required=False, allow_null=True)
    dash_score = serializers.IntegerField(required=False, allow_null=True)
    roland_morris_score = serializers.IntegerField(required=False, allow_null=True)
    rom_measurements = serializers.JSONField(required=False)
    strength_grade = serializers.JSONField(required=False)
    short_term_goals = serializers.ListField(child=serializers.CharField(), required=False)
    long_term_goals = serializers.ListField(child=serializers.CharField(), required=False)
    informed_consent_signed = serializers.BooleanField(required=False)
    informed_consent_date = serializers.DateField(required=False, allow_null=True)


class PlanRequestSerializer(serializers.Serializer):
    plan_type = serializers.ChoiceField(choices=PlanTypeChoices.choices, required=False)
    clinical_objective = serializers.CharField(required=False, allow_blank=True)
    sessions_per_week = serializers.IntegerField(min_value=1, max_value=7)
    total_sessions_prescribed = serializers.IntegerField(min_value=1, max_value=100)
    start_date = serializers.DateField()
    expected_end_date = serializers.DateField(required=False, allow_null=True)
    therapist_id = serializers.PrimaryKeyRelatedField(
        queryset=Practitioner.objects.filter(is_active=True), source='therapist', required=False
    )


class DiscontinuePlanSerializer(serializers.Serializer):
    reason = serializers.CharField()
    row_version = serializers.IntegerField(required=False, min_value=1)


class DischargeSerializer(serializers.Serializer):
    final_vas = serializers.IntegerField(min_value=0, max_value=10)
    initial_vas = serializers.IntegerField(min_value=0, max_value=10, required=False)
    objectives_achieved = serializers.ListField(child=serializers.CharField(), required=False)
    objectives_not_achieved = serializers.ListField(child=serializers.CharField(), required=False)
    final_recommendations = serializers.CharField(required=False, allow_blank=True)
    follow_up_required = serializers.BooleanField(required=False, default=False)
    row_version = serializers.IntegerField(required=False, min_value=1)


class DischargeSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = PhysioDischargeSummary
        fields = [
            'id',
            'treatment_plan_id',
            'initial_vas',
            'final_vas',
            'pain_improvement_percent',
            'objectives_achieved',
            'objectives_not_achieved',
            'final_recommendations',
            'follow_up_required',
            'discharged_by_id',
            'discharged_at',
        ]
        read_only_fields = fields


class PhysioSessionSerializer(serializers.ModelSerializer):
    pain_reduction = serializers.IntegerField(read_only=True)

    class Meta:
        model = PhysioSession
        fields = [
            'id',
            'appointment_id',
            'patient_id',
            'therapist_id',
            'medical_record_id',
            'treatment_plan_id',
            'session_number',
            'session_date',
            'duration_minutes',
            'subjective',
            'objective',
            'assessment',
            'plan',
            'pain_before',
            'pain_after',
            'pain_reduction',
            'techniques_applied',
            'equipment_used',
            'patient_response',
            'tolerance',
            'adverse_reactions',
            'home_exercises',
            'next_session_objectives',
            'patient_present',
            'signed_by_user_id',
            'signed_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class PhysioSessionWriteSerializer(serializers.Serializer):
    """
    SOAP note input. Keys outside the declared fields are rejected.

    Pain ranges and technique codes are checked again by the model's
    full_clean().
    """
    therapist_id = serializers.PrimaryKeyRelatedField(
        queryset=Practitioner.objects.filter(is_active=True), source='therapist', required=False
    )
    duration_minutes = serializers.IntegerField(min_value=1, max_value=480, required=False)
    subjective = serializers.CharField(required=False, allow_blank=True)
    objective = serializers.CharField(required=False, allow_blank=True)
    assessment = serializers.CharField(required=False, allow_blank=True)
    plan = serializers.CharField(required=False, allow_blank=True)
    pain_before = serializers.IntegerField(min_value=0, max_value=10, required=False, allow_null=True)
    pain_after = serializers.IntegerField(min_value=0, max_value=10, required=False, allow_null=True)
    techniques_applied = serializers.ListField(child=serializers.CharField(), required=False)
    equipment_used = serializers.ListField(child=serializers.CharField(), required=False)
    patient_response = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    tolerance = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    adverse_reactions = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    home_exercises = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    next_session_objectives = serializers.ListField(child=serializers.CharField(), required=False)
    patient_present = serializers.BooleanField(required=False)

    def validate(self, attrs):
        unknown = sorted(set(self.initial_data) - set(self.fields))
        if unknown:
            raise serializers.ValidationError({unknown[0]: 'Unknown session field'})
        return attrs
