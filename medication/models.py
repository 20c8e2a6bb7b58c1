from django.db import models
from django.conf import settings
from django.utils.translation import gettext_lazy as _

from .services import clock


class MedicationPlan(models.Model):
    """
    A prescription: one prescribing event covering one or more medications.
    Plans are append-only; editing a prescription means creating a new plan.
    """
    class Source(models.TextChoices):
        PRESCRIBED = 'prescribed', _('Prescribed')
        IMPORTED = 'imported', _('Imported')

    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='medication_plans'
    )
    prescribed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='prescribed_plans',
        null=True, blank=True
    )

    # RX-YYYYMMDD-NNNN, assigned once at creation
    prescription_number = models.CharField(max_length=20, unique=True, editable=False)

    # Earliest medication start / latest medication end
    start_date = models.DateField()
    end_date = models.DateField(blank=True, null=True)

    source = models.CharField(max_length=20, choices=Source.choices, default=Source.PRESCRIBED)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Prescription {self.prescription_number}"

    class Meta:
        ordering = ['-created_at']
        verbose_name = "Medication Plan"
        verbose_name_plural = "Medication Plans"


class Medication(models.Model):
    """
    A single medication on a plan with its daily administration times.
    Immutable after creation.
    """
    class Route(models.TextChoices):
        ORAL = 'oral', _('Oral')
        SUBCUTANEOUS = 'subcutaneous', _('Subcutaneous')
        INTRAMUSCULAR = 'intramuscular', _('Intramuscular')
        INTRAVENOUS = 'intravenous', _('Intravenous')
        RECTAL = 'rectal', _('Rectal')
        SUBLINGUAL = 'sublingual', _('Sublingual')
        TOPICAL = 'topical', _('Topical')
        INHALED = 'inhaled', _('Inhaled')

    plan = models.ForeignKey(MedicationPlan, on_delete=models.CASCADE, related_name='medications')

    name = models.CharField(max_length=255)
    dose = models.CharField(max_length=100, blank=True)
    route = models.CharField(max_length=20, choices=Route.choices, default=Route.ORAL)

    # Clinical shorthand (OD, BD, TDS, QID, PRN, STAT). Informational only.
    frequency = models.CharField(max_length=50, blank=True)

    # Sorted, unique list of local "HH:MM" clock times
    times = models.JSONField(default=list)
    critical = models.BooleanField(default=False)

    # Effective range, inclusive, in the clinic calendar
    start_date = models.DateField()
    end_date = models.DateField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} - {self.dose}"

    def save(self, *args, **kwargs):
        self.name = self.name.strip().upper()
        super().save(*args, **kwargs)

    @property
    def times_per_day(self):
        return len(self.times)

    class Meta:
        ordering = ['plan', 'id']
        verbose_name = "Medication"
        verbose_name_plural = "Medications"


class ScheduledDose(models.Model):
    """
    One concrete dose event. Created in bulk at prescribing time, mutated only
    by patient actions and the missed-dose sweep, never deleted.
    """
    class Status(models.TextChoices):
        PENDING = 'pending', _('Pending')
        TAKEN = 'taken', _('Complete')
        SKIPPED = 'skipped', _('Skipped')
        MISSED = 'missed', _('Missed')

    PATIENT_STATUSES = (Status.TAKEN, Status.SKIPPED)
    TERMINAL_STATUSES = (Status.TAKEN, Status.SKIPPED, Status.MISSED)

    medication = models.ForeignKey(Medication, on_delete=models.CASCADE, related_name='doses')
    # Denormalized from medication -> plan -> patient
    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='scheduled_doses'
    )

    scheduled_at = models.DateTimeField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    note = models.TextField(blank=True, null=True)
    acted_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.medication.name} - {self.get_status_display()} at {self.scheduled_at}"

    @property
    def local_time(self):
        return clock.extract_local_time(self.scheduled_at)

    @property
    def local_date(self):
        return clock.local_date(self.scheduled_at)

    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    class Meta:
        ordering = ['scheduled_at']
        verbose_name = "Scheduled Dose"
        verbose_name_plural = "Scheduled Doses"
        constraints = [
            models.UniqueConstraint(
                fields=['medication', 'scheduled_at'],
                name='unique_dose_per_medication_slot'
            ),
        ]
        indexes = [
            models.Index(fields=['status', 'scheduled_at'], name='dose_status_sched_idx'),
            models.Index(fields=['patient', 'scheduled_at'], name='dose_patient_sched_idx'),
        ]


class NudgeLog(models.Model):
    """A reminder message a doctor sent to a patient. Delivery is logged only."""
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='sent_nudges'
    )
    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='received_nudges'
    )
    message = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Nudge to {self.patient} at {self.created_at}"

    class Meta:
        ordering = ['-created_at']
        verbose_name = "Nudge Log"
        verbose_name_plural = "Nudge Logs"
