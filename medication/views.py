from rest_framework import viewsets, mixins, status, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView
from django_filters.rest_framework import DjangoFilterBackend
import logging

from users.permissions import IsDoctor, IsPatient, IsDoctorOrPatient

from .models import MedicationPlan, ScheduledDose
from .permissions import IsAdminOrCronToken
from .serializers import (
    MedicationPlanSerializer, ScheduledDoseSerializer, NudgeLogSerializer,
    AdherenceSummarySerializer, PatientRiskSerializer, PatientOverviewSerializer,
    PrescribeSerializer, ImportPayloadSerializer, DoseActionSerializer, NudgeSerializer,
)
from .filters import MedicationPlanFilter, ScheduledDoseFilter
from .services import clock
from .services.adherence import doses_for_day, patient_overview, weekly_adherence
from .services.lifecycle import record_patient_action, sweep_overdue
from .services.notifications import send_nudge
from .services.prescriptions import create_prescription, import_from_external_record
from .services.risk import assess_patients_for_doctor

logger = logging.getLogger(__name__)


class MedicationPlanViewSet(mixins.ListModelMixin,
                            mixins.RetrieveModelMixin,
                            viewsets.GenericViewSet):
    """
    Prescriptions. Doctors see their linked patients' plans, patients their own.
    Plans are never edited in place; prescribing again creates a new plan.
    """
    queryset = MedicationPlan.objects.all()
    serializer_class = MedicationPlanSerializer
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_class = MedicationPlanFilter
    ordering_fields = ['created_at', 'start_date', 'prescription_number']
    ordering = ['-created_at']
    permission_classes = [IsAuthenticated, IsDoctorOrPatient]

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return self.queryset.model.objects.none()

        user = self.request.user
        queryset = MedicationPlan.objects.select_related(
            'patient', 'prescribed_by'
        ).prefetch_related('medications')

        if user.is_admin_role:
            return queryset
        if user.is_doctor:
            return queryset.filter(patient__doctor_links__doctor=user).distinct()
        return queryset.filter(patient=user)

    def create(self, request):
        """Doctor prescribes one or more medications for a linked patient."""
        serializer = PrescribeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = create_prescription(
            serializer.validated_data['patient_id'],
            request.user,
            serializer.medication_requests(),
        )
        return Response(result.to_dict(), status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='import', permission_classes=[IsAuthenticated, IsDoctor])
    def import_record(self, request):
        """Bulk intake of an external record: patient, one plan and its medications."""
        serializer = ImportPayloadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = import_from_external_record(request.user, serializer.validated_data)
        return Response(result.to_dict(), status=status.HTTP_201_CREATED)


class ScheduledDoseViewSet(mixins.ListModelMixin,
                           mixins.RetrieveModelMixin,
                           viewsets.GenericViewSet):
    """API viewset for a patient's scheduled doses."""
    queryset = ScheduledDose.objects.all()
    serializer_class = ScheduledDoseSerializer
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_class = ScheduledDoseFilter
    ordering_fields = ['scheduled_at', 'status']
    ordering = ['scheduled_at']
    permission_classes = [IsAuthenticated, IsDoctorOrPatient]
    authorization_stage = 'dose'

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return self.queryset.model.objects.none()

        user = self.request.user
        queryset = ScheduledDose.objects.select_related('medication')

        if user.is_admin_role:
            return queryset
        if user.is_doctor:
            return queryset.filter(patient__doctor_links__doctor=user).distinct()
        return queryset.filter(patient=user)

    @action(detail=False, methods=['get'], permission_classes=[IsAuthenticated, IsPatient])
    def today(self, request):
        """Today's doses for the patient, grouped by local HH:MM."""
        day = clock.today()
        grouped = doses_for_day(request.user, day)
        return Response({
            'date': day.isoformat(),
            'slots': [
                {'time': time_str, 'doses': ScheduledDoseSerializer(doses, many=True).data}
                for time_str, doses in grouped.items()
            ],
        })

    @action(detail=True, methods=['post'], permission_classes=[IsAuthenticated, IsPatient])
    def act(self, request, pk=None):
        """Mark a dose taken or skipped, with an optional note."""
        serializer = DoseActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        dose = record_patient_action(
            pk,
            request.user,
            serializer.validated_data['status'],
            note=serializer.validated_data.get('note'),
        )
        return Response({
            'success': True,
            'dose': ScheduledDoseSerializer(dose).data,
        })


class AdherenceViewSet(viewsets.ViewSet):
    """Adherence reporting for the signed-in patient."""
    permission_classes = [IsAuthenticated, IsPatient]
    authorization_stage = 'patient'

    @action(detail=False, methods=['get'])
    def weekly(self, request):
        summary = weekly_adherence(request.user)
        return Response(AdherenceSummarySerializer(summary).data)


class DoctorPatientViewSet(viewsets.ViewSet):
    """Doctor dashboard: linked patients ranked by risk, patient detail and nudges."""
    permission_classes = [IsAuthenticated, IsDoctor]
    authorization_stage = 'doctor'

    def list(self, request):
        assessments = assess_patients_for_doctor(request.user)
        return Response(PatientRiskSerializer(assessments, many=True).data)

    def retrieve(self, request, pk=None):
        overview = patient_overview(request.user, pk)
        return Response(PatientOverviewSerializer(overview).data)

    @action(detail=True, methods=['post'])
    def nudge(self, request, pk=None):
        serializer = NudgeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        nudge = send_nudge(request.user, pk, serializer.validated_data.get('message'))
        return Response({
            'success': True,
            'message': f"Reminder sent to {nudge.patient.display_name}",
            'nudge': NudgeLogSerializer(nudge).data,
        }, status=status.HTTP_201_CREATED)


class MarkMissedDosesView(APIView):
    """
    External trigger for the missed-dose sweep, for deployments without
    Celery beat. Authenticated by the shared cron token.
    """
    permission_classes = [IsAdminOrCronToken]
    authorization_stage = 'doctor'

    def post(self, request):
        updated = sweep_overdue()
        logger.info(f"Cron trigger marked {updated} dose(s) as missed")
        return Response({'success': True, 'updated': updated})
