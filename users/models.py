from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils.translation import gettext_lazy as _


class User(AbstractUser):
    """Custom user model for the MedTrack platform."""

    class Role(models.TextChoices):
        PATIENT = 'patient', _('Patient')
        DOCTOR = 'doctor', _('Doctor')
        ADMIN = 'admin', _('Administrator')

    # Basic information
    email = models.EmailField(_('email address'), unique=True)
    full_name = models.CharField(max_length=255, blank=True)
    phone_number = models.CharField(max_length=20, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    role = models.CharField(max_length=10, choices=Role.choices, default=Role.PATIENT)

    # Medical record number, the natural key used by external intake
    mrn = models.CharField(max_length=50, unique=True, null=True, blank=True)

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    def save(self, *args, **kwargs):
        # Ensure username equals email
        if self.email:
            self.username = self.email
        super().save(*args, **kwargs)

    @property
    def display_name(self):
        return self.full_name or self.get_full_name() or self.username

    @property
    def is_doctor(self):
        return self.role == self.Role.DOCTOR

    @property
    def is_patient(self):
        return self.role == self.Role.PATIENT

    @property
    def is_admin_role(self):
        return self.is_staff or self.is_superuser or self.role == self.Role.ADMIN


class PatientDoctorLink(models.Model):
    """Assignment of a patient to a doctor. Only linked doctors may prescribe."""
    patient = models.ForeignKey(User, on_delete=models.CASCADE, related_name='doctor_links')
    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='patient_links')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'patient_doctor'
        unique_together = [['patient', 'doctor']]
        verbose_name = 'Patient-Doctor Link'
        verbose_name_plural = 'Patient-Doctor Links'

    def __str__(self):
        return f"{self.patient.display_name} -> Dr. {self.doctor.display_name}"
