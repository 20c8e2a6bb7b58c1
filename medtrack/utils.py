import logging

from rest_framework import exceptions as drf_exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler

from medication.exceptions import MedTrackException

logger = logging.getLogger(__name__)


def custom_exception_handler(exc, context):
    """
    Render engine failures and request validation errors as structured results.

    Engine exceptions carry their own stage and status code. DRF validation
    errors are reported under the ``validation`` stage with the field errors
    attached; everything else falls through to DRF's default handling.
    """
    if isinstance(exc, MedTrackException):
        if exc.status_code >= 500:
            logger.error(f"{exc.__class__.__name__} at stage '{exc.stage}': {exc.message}")
        return Response(exc.to_dict(), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, drf_exceptions.ValidationError):
        response.data = {
            'success': False,
            'stage': 'validation',
            'error': 'Invalid request data.',
            'errors': response.data,
        }
    elif isinstance(exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed,
                          drf_exceptions.PermissionDenied)):
        response.data = {
            'success': False,
            'stage': getattr(context.get('view'), 'authorization_stage', 'doctor'),
            'error': str(exc.detail),
        }
    return response
