# medication/filters.py
from django_filters import rest_framework as filters
from .models import MedicationPlan, ScheduledDose


class MedicationPlanFilter(filters.FilterSet):
    patient = filters.NumberFilter(field_name='patient_id')
    prescription_number = filters.CharFilter(lookup_expr='iexact')

    class Meta:
        model = MedicationPlan
        fields = ['patient', 'source', 'prescription_number']


class ScheduledDoseFilter(filters.FilterSet):
    medication = filters.NumberFilter(field_name='medication_id')
    critical = filters.BooleanFilter(field_name='medication__critical')
    scheduled_after = filters.IsoDateTimeFilter(field_name='scheduled_at', lookup_expr='gte')
    scheduled_before = filters.IsoDateTimeFilter(field_name='scheduled_at', lookup_expr='lte')

    class Meta:
        model = ScheduledDose
        fields = ['status', 'medication', 'critical', 'scheduled_after', 'scheduled_before']
