# medication/permissions.py
from django.conf import settings
from django.utils.crypto import constant_time_compare
from rest_framework import permissions

from users.models import User, PatientDoctorLink
from .exceptions import AuthorizationError


class AuthorizationPolicy:
    """
    Capability checks for every engine operation.

    Identity comes from the authentication layer; this object only decides
    what an already-identified actor may do.
    """

    def is_linked(self, doctor, patient) -> bool:
        return PatientDoctorLink.objects.filter(doctor=doctor, patient=patient).exists()

    def can_prescribe(self, actor, patient) -> bool:
        return actor.role == User.Role.DOCTOR and self.is_linked(actor, patient)

    def can_import(self, actor) -> bool:
        return actor.role == User.Role.DOCTOR

    def can_act_on_dose(self, actor, dose) -> bool:
        return dose.patient_id == actor.pk

    def can_view_patient(self, actor, patient) -> bool:
        if actor.pk == patient.pk or actor.is_admin_role:
            return True
        return actor.role == User.Role.DOCTOR and self.is_linked(actor, patient)

    def require_doctor(self, actor):
        if actor.role != User.Role.DOCTOR:
            raise AuthorizationError("Only doctors can prescribe.", stage='doctor')

    def require_prescribe(self, actor, patient):
        self.require_doctor(actor)
        if not self.is_linked(actor, patient):
            raise AuthorizationError("This patient is not assigned to you.", stage='patient')

    def require_import(self, actor):
        if not self.can_import(actor):
            raise AuthorizationError("Only doctors can import medications.", stage='doctor')

    def require_act_on_dose(self, actor, dose):
        if not self.can_act_on_dose(actor, dose):
            raise AuthorizationError("Not authorized to update this dose.", stage='dose')

    def require_view_patient(self, actor, patient):
        if not self.can_view_patient(actor, patient):
            raise AuthorizationError("This patient is not assigned to you.", stage='patient')

    def require_nudge(self, actor, patient):
        if actor.role != User.Role.DOCTOR:
            raise AuthorizationError("Only doctors can send reminders.", stage='doctor')
        if not self.is_linked(actor, patient):
            raise AuthorizationError("This patient is not assigned to you.", stage='patient')


authorization_policy = AuthorizationPolicy()


class IsAdminOrCronToken(permissions.BasePermission):
    """
    Permission for the external sweep trigger: an admin session or the shared
    ``X-Cron-Token`` secret.
    """
    message = "A valid cron token is required."

    def has_permission(self, request, view):
        user = request.user
        if user and user.is_authenticated and user.is_admin_role:
            return True
        secret = getattr(settings, 'CRON_SECRET', '')
        token = request.headers.get('X-Cron-Token', '')
        return bool(secret) and constant_time_compare(token, secret)
