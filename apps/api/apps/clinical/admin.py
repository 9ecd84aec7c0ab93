from django.contrib import admin
from .models import Patient, Appointment


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['first_name', 'last_name', 'document_number', 'phone', 'is_deleted', 'created_at']
    list_filter = ['sex', 'is_deleted']
    search_fields = ['first_name', 'last_name', 'document_number', 'email', 'phone']
    readonly_fields = ['id', 'row_version', 'created_at', 'updated_at', 'deleted_at']

    fieldsets = (
        ('Basic Info', {
            'fields': ('id', 'first_name', 'last_name', 'birth_date', 'sex', 'document_number')
        }),
        ('Contact', {
            'fields': ('email', 'phone', 'address_line1', 'city')
        }),
        ('Notes', {
            'fields': ('notes',)
        }),
        ('Soft Delete', {
            'fields': ('is_deleted', 'deleted_at')
        }),
        ('Audit', {
            'fields': ('row_version', 'created_by_user', 'created_at', 'updated_at')
        }),
    )


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    """Status is read-only here; transitions go through the API."""
    list_display = ['start_time', 'patient', 'appointment_type', 'department_code', 'status', 'workflow_status', 'doctor']
    list_filter = ['status', 'workflow_status', 'appointment_type', 'department_code', 'is_deleted']
    search_fields = ['patient__first_name', 'patient__last_name', 'id']
    date_hierarchy = 'start_time'
    readonly_fields = [
        'id', 'status', 'workflow_status', 'department_code', 'clinical_reference_type',
        'clinical_reference_id', 'row_version', 'is_deleted', 'deleted_at', 'created_at', 'updated_at',
    ]

    fieldsets = (
        ('Scheduling', {
            'fields': ('id', 'patient', 'doctor', 'department', 'room', 'appointment_type', 'start_time', 'end_time')
        }),
        ('Status', {
            'fields': ('status', 'workflow_status', 'cancellation_reason', 'no_show_reason')
        }),
        ('Department Data', {
            'fields': ('department_code', 'department_specific_data', 'referring_department')
        }),
        ('Clinical Linkage', {
            'fields': ('clinical_reference_type', 'clinical_reference_id')
        }),
        ('Details', {
            'fields': ('reason', 'notes')
        }),
        ('Audit', {
            'fields': ('row_version', 'created_by_user', 'is_deleted', 'deleted_at', 'created_at', 'updated_at')
        }),
    )
