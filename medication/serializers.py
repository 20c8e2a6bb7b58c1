from rest_framework import serializers

from .models import MedicationPlan, Medication, ScheduledDose, NudgeLog
from .services.prescriptions import MedicationRequest


class MedicationSerializer(serializers.ModelSerializer):
    """Serializer for medications."""
    route_display = serializers.CharField(source='get_route_display', read_only=True)
    times_per_day = serializers.IntegerField(read_only=True)

    class Meta:
        model = Medication
        fields = (
            'id', 'plan', 'name', 'dose', 'route', 'route_display', 'frequency',
            'times', 'times_per_day', 'critical', 'start_date', 'end_date', 'created_at'
        )
        read_only_fields = fields


class MedicationPlanSerializer(serializers.ModelSerializer):
    """Serializer for medication plans with their medications."""
    patient_name = serializers.CharField(source='patient.display_name', read_only=True)
    prescribed_by_name = serializers.SerializerMethodField()
    source_display = serializers.CharField(source='get_source_display', read_only=True)
    medications = MedicationSerializer(many=True, read_only=True)

    class Meta:
        model = MedicationPlan
        fields = (
            'id', 'prescription_number', 'patient', 'patient_name', 'prescribed_by',
            'prescribed_by_name', 'source', 'source_display', 'start_date', 'end_date',
            'created_at', 'medications'
        )
        read_only_fields = fields

    def get_prescribed_by_name(self, obj):
        return obj.prescribed_by.display_name if obj.prescribed_by else None


class ScheduledDoseSerializer(serializers.ModelSerializer):
    """Serializer for scheduled doses."""
    medication_name = serializers.CharField(source='medication.name', read_only=True)
    medication_dose = serializers.CharField(source='medication.dose', read_only=True)
    route = serializers.CharField(source='medication.route', read_only=True)
    critical = serializers.BooleanField(source='medication.critical', read_only=True)
    local_time = serializers.CharField(read_only=True)
    local_date = serializers.DateField(read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = ScheduledDose
        fields = (
            'id', 'medication', 'medication_name', 'medication_dose', 'route', 'critical',
            'patient', 'scheduled_at', 'local_date', 'local_time', 'status', 'status_display',
            'note', 'acted_at'
        )
        read_only_fields = fields


class NudgeLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = NudgeLog
        fields = ('id', 'doctor', 'patient', 'message', 'created_at')
        read_only_fields = fields


class DayAdherenceSerializer(serializers.Serializer):
    day = serializers.DateField()
    label = serializers.CharField()
    taken = serializers.IntegerField()
    total = serializers.IntegerField()
    percentage = serializers.IntegerField()


class AdherenceSummarySerializer(serializers.Serializer):
    """Weekly chart bars, streak and window totals."""
    days = DayAdherenceSerializer(many=True)
    streak = serializers.IntegerField()
    total = serializers.IntegerField()
    taken = serializers.IntegerField()
    missed = serializers.IntegerField()
    skipped = serializers.IntegerField()
    adherence_percentage = serializers.IntegerField()


class PatientRiskSerializer(serializers.Serializer):
    patient_id = serializers.IntegerField(source='patient.pk')
    full_name = serializers.CharField(source='patient.display_name')
    mrn = serializers.CharField(source='patient.mrn', allow_null=True)
    phone_number = serializers.CharField(source='patient.phone_number')
    score = serializers.IntegerField()
    level = serializers.CharField()
    missed_last_48h = serializers.IntegerField()
    critical_missed = serializers.IntegerField()
    meds_count = serializers.IntegerField()
    age = serializers.IntegerField()
    prescription_numbers = serializers.ListField(child=serializers.CharField())


class DayStatusCountsSerializer(serializers.Serializer):
    day = serializers.DateField()
    taken = serializers.IntegerField()
    skipped = serializers.IntegerField()
    missed = serializers.IntegerField()
    pending = serializers.IntegerField()
    total = serializers.IntegerField()


class MedicationDayStatusSerializer(serializers.Serializer):
    medication_id = serializers.IntegerField(source='medication.pk')
    name = serializers.CharField(source='medication.name')
    dose = serializers.CharField(source='medication.dose')
    critical = serializers.BooleanField(source='medication.critical')
    statuses = serializers.ListField(child=serializers.CharField(allow_null=True))


class ScheduleGridSerializer(serializers.Serializer):
    """Medications against the trailing week; each cell is the worst status of that day."""
    days = serializers.ListField(child=serializers.DateField())
    medications = MedicationDayStatusSerializer(many=True)
    counts = DayStatusCountsSerializer(many=True)


class PatientOverviewSerializer(serializers.Serializer):
    """Doctor's detail view of one patient."""
    risk = PatientRiskSerializer()
    total = serializers.IntegerField()
    taken = serializers.IntegerField()
    missed = serializers.IntegerField()
    adherence_percentage = serializers.IntegerField()
    critical_medications = MedicationSerializer(many=True)
    timeline = serializers.SerializerMethodField()
    schedule = ScheduleGridSerializer()
    recent_nudges = NudgeLogSerializer(many=True)

    def get_timeline(self, obj):
        return [
            {
                'date': day.isoformat(),
                'doses': ScheduledDoseSerializer(doses, many=True).data,
            }
            for day, doses in obj.timeline
        ]


# Request payloads. Shape only: the engine owns the business rules.

class ImportMedicationSerializer(serializers.Serializer):
    med_name = serializers.CharField(allow_blank=True)
    dose = serializers.CharField(required=False, allow_blank=True, default='')
    route = serializers.CharField(required=False, allow_blank=True, default=Medication.Route.ORAL)
    freq = serializers.CharField(required=False, allow_blank=True, default='')
    times = serializers.ListField(child=serializers.CharField(), allow_empty=True)
    critical = serializers.BooleanField(required=False, default=False)


class MedicationEntrySerializer(ImportMedicationSerializer):
    """One medication of a prescribing request; carries its own date range."""
    start_date = serializers.DateField(required=False, allow_null=True, default=None)
    end_date = serializers.DateField(required=False, allow_null=True, default=None)

    @staticmethod
    def to_request(data):
        return MedicationRequest(
            name=data['med_name'],
            dose=data['dose'],
            route=data['route'],
            frequency=data['freq'],
            times=list(data['times']),
            critical=data['critical'],
            start_date=data['start_date'],
            end_date=data['end_date'],
        )


class PrescribeSerializer(serializers.Serializer):
    patient_id = serializers.IntegerField()
    medications = MedicationEntrySerializer(many=True, allow_empty=True)

    def medication_requests(self):
        return [MedicationEntrySerializer.to_request(med) for med in self.validated_data['medications']]


class ImportPatientSerializer(serializers.Serializer):
    full_name = serializers.CharField()
    mrn = serializers.CharField()
    phone = serializers.CharField(required=False, allow_blank=True, default='')
    dob = serializers.DateField(required=False, allow_null=True, default=None)


class ImportPlanSerializer(serializers.Serializer):
    start_date = serializers.DateField()
    end_date = serializers.DateField(required=False, allow_null=True, default=None)


class ImportPayloadSerializer(serializers.Serializer):
    """The external intake document: ``{"patient": ..., "plan": ..., "meds": [...]}``."""
    patient = ImportPatientSerializer()
    plan = ImportPlanSerializer()
    meds = ImportMedicationSerializer(many=True, allow_empty=False)


class DoseActionSerializer(serializers.Serializer):
    status = serializers.CharField()
    note = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)


class NudgeSerializer(serializers.Serializer):
    message = serializers.CharField(required=False, allow_blank=True, default='')
