"""
Physiotherapy URLs - Evaluations, treatment plans and session notes.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import AppointmentSessionView, EvaluationViewSet, PhysioSessionViewSet, TreatmentPlanViewSet

router = DefaultRouter()
router.register(r'evaluations', EvaluationViewSet, basename='physio-evaluation')
router.register(r'plans', TreatmentPlanViewSet, basename='physio-plan')
router.register(r'sessions', PhysioSessionViewSet, basename='physio-session')

urlpatterns = [
    path('appointments/<uuid:appointment_id>/session/', AppointmentSessionView.as_view(),
         name='physio-appointment-session'),
    path('', include(router.urls)),
]
