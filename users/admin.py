# admin.py
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User, PatientDoctorLink


class PatientDoctorLinkInline(admin.TabularInline):
    """Doctors assigned to a patient."""
    model = PatientDoctorLink
    fk_name = 'patient'
    extra = 0
    fields = ('doctor', 'created_at')
    readonly_fields = ('created_at',)
    verbose_name_plural = "Assigned Doctors"


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin configuration for MedTrack users."""
    model = User
    list_display = ('username', 'full_name', 'role', 'mrn', 'is_active', 'date_joined')
    list_filter = ('role', 'is_staff', 'is_superuser', 'is_active')
    search_fields = ('username', 'email', 'full_name', 'mrn')
    ordering = ('-date_joined',)
    inlines = [PatientDoctorLinkInline]

    fieldsets = (
        (None, {'fields': ('username', 'password')}),
        ('Personal Info', {
            'fields': ('full_name', 'email', 'phone_number', 'date_of_birth', 'mrn')
        }),
        ('Role', {
            'fields': ('role',)
        }),
        ('Permissions', {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions')
        }),
        ('Important Dates', {
            'fields': ('last_login', 'date_joined')
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'full_name', 'role', 'password1', 'password2'),
        }),
    )

    def get_inlines(self, request, obj):
        # Doctor links only make sense on patient records
        if obj is None or obj.role != User.Role.PATIENT:
            return []
        return super().get_inlines(request, obj)


@admin.register(PatientDoctorLink)
class PatientDoctorLinkAdmin(admin.ModelAdmin):
    list_display = ('patient', 'doctor', 'created_at')
    list_filter = ('created_at',)
    search_fields = ('patient__full_name', 'patient__mrn', 'doctor__full_name')
    raw_id_fields = ('patient', 'doctor')
