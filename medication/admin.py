from django.contrib import admin
from .models import MedicationPlan, Medication, ScheduledDose, NudgeLog


class MedicationInline(admin.TabularInline):
    """Medications on a plan. Read-only: plans are append-only."""
    model = Medication
    extra = 0
    fields = ('name', 'dose', 'route', 'frequency', 'times', 'critical', 'start_date', 'end_date')
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(MedicationPlan)
class MedicationPlanAdmin(admin.ModelAdmin):
    """Admin interface for medication plans."""
    list_display = ('prescription_number', 'patient', 'prescribed_by', 'source',
                    'start_date', 'end_date', 'created_at')
    list_filter = ('source', 'created_at')
    search_fields = ('prescription_number', 'patient__full_name', 'patient__mrn', 'patient__email')
    readonly_fields = ('prescription_number', 'created_at')
    raw_id_fields = ('patient', 'prescribed_by')
    date_hierarchy = 'created_at'
    inlines = [MedicationInline]


@admin.register(Medication)
class MedicationAdmin(admin.ModelAdmin):
    list_display = ('name', 'dose', 'route', 'frequency', 'times_per_day', 'critical', 'start_date', 'end_date')
    list_filter = ('route', 'critical')
    search_fields = ('name', 'plan__prescription_number', 'plan__patient__full_name')
    raw_id_fields = ('plan',)


@admin.register(ScheduledDose)
class ScheduledDoseAdmin(admin.ModelAdmin):
    """Doses are created by the engine; admins may only inspect them."""
    list_display = ('medication', 'patient', 'scheduled_at', 'status', 'acted_at')
    list_filter = ('status', 'medication__critical')
    search_fields = ('medication__name', 'patient__full_name', 'patient__mrn')
    readonly_fields = ('medication', 'patient', 'scheduled_at', 'created_at')
    date_hierarchy = 'scheduled_at'

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(NudgeLog)
class NudgeLogAdmin(admin.ModelAdmin):
    list_display = ('patient', 'doctor', 'created_at')
    search_fields = ('patient__full_name', 'doctor__full_name', 'message')
    readonly_fields = ('doctor', 'patient', 'message', 'created_at')
