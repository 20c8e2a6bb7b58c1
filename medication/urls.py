from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import (
    MedicationPlanViewSet, ScheduledDoseViewSet, AdherenceViewSet,
    DoctorPatientViewSet, MarkMissedDosesView
)


router = DefaultRouter()
router.register(r'plans', MedicationPlanViewSet, basename='plan')
router.register(r'doses', ScheduledDoseViewSet, basename='dose')
router.register(r'adherence', AdherenceViewSet, basename='adherence')
router.register(r'doctor/patients', DoctorPatientViewSet, basename='doctor-patient')

urlpatterns = [
    path('', include(router.urls)),

    # Sweep trigger for external schedulers
    path('cron/mark-missed/', MarkMissedDosesView.as_view(), name='cron-mark-missed'),
]
