# permissions.py
from rest_framework import permissions


class IsDoctor(permissions.BasePermission):
    """
    Allow access only to doctors.
    """
    message = "Only doctors can perform this action."

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_doctor)


class IsPatient(permissions.BasePermission):
    """
    Allow access only to patients.
    """
    message = "Only patients can perform this action."

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_patient)


class IsDoctorOrPatient(permissions.BasePermission):
    message = "Only doctors and patients can access medication schedules."

    def has_permission(self, request, view):
        if not (request.user and request.user.is_authenticated):
            return False
        return request.user.is_doctor or request.user.is_patient or request.user.is_admin_role
