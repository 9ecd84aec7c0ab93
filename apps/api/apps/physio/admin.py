from django.contrib import admin
from .models import PhysioMedicalRecord, PhysioTreatmentPlan, PhysioSession, PhysioDischargeSummary


@admin.register(PhysioMedicalRecord)
class PhysioMedicalRecordAdmin(admin.ModelAdmin):
    list_display = ['patient', 'therapist', 'vas_score', 'informed_consent_signed', 'status', 'created_at']
    list_filter = ['status', 'informed_consent_signed']
    search_fields = ['patient__first_name', 'patient__last_name']
    readonly_fields = ['id', 'created_at', 'updated_at']


@admin.register(PhysioTreatmentPlan)
class PhysioTreatmentPlanAdmin(admin.ModelAdmin):
    """sessions_completed is maintained by appointment completion."""
    list_display = ['patient', 'plan_type', 'sessions_completed', 'total_sessions_prescribed', 'status', 'start_date']
    list_filter = ['status', 'plan_type']
    search_fields = ['patient__first_name', 'patient__last_name']
    readonly_fields = ['id', 'sessions_completed', 'status', 'row_version', 'created_at', 'updated_at']


@admin.register(PhysioDischargeSummary)
class PhysioDischargeSummaryAdmin(admin.ModelAdmin):
    list_display = ['treatment_plan', 'initial_vas', 'final_vas', 'pain_improvement_percent', 'discharged_at']
    readonly_fields = ['id', 'pain_improvement_percent', 'created_at']


@admin.register(PhysioSession)
class PhysioSessionAdmin(admin.ModelAdmin):
    list_display = ['patient', 'session_number', 'session_date', 'pain_before', 'pain_after', 'therapist']
    search_fields = ['patient__first_name', 'patient__last_name']
    readonly_fields = ['id', 'appointment', 'signed_at', 'created_at', 'updated_at']
