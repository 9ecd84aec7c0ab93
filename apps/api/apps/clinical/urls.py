"""
Clinical URLs - Appointments and department payload validation.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import AppointmentViewSet, DepartmentDataValidateView

router = DefaultRouter()
router.register(r'appointments', AppointmentViewSet, basename='appointment')

urlpatterns = [
    # Dry-run validation for department-specific forms
    path('department-data/validate/', DepartmentDataValidateView.as_view(), name='department-data-validate'),

    # Standard CRUD via router
    path('', include(router.urls)),
]
