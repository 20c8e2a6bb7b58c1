# medication/exceptions.py
"""
Failures raised by the dose-schedule engine.

Every exception names the stage that failed so callers are never left with a
generic error. The DRF exception handler in ``medtrack.utils`` turns them into
``{"success": false, "stage": ..., "error": ...}`` responses.
"""


class MedTrackException(Exception):
    """Base exception for engine failures."""
    status_code = 500
    default_stage = 'unknown'

    def __init__(self, message, stage=None):
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage

    def to_dict(self):
        return {
            'success': False,
            'stage': self.stage,
            'error': self.message,
        }


class ValidationError(MedTrackException):
    """Missing or malformed input. The caller must correct it and resubmit."""
    status_code = 400
    default_stage = 'validation'


class AuthorizationError(MedTrackException):
    """The caller lacks the role or relationship the operation requires."""
    status_code = 403
    default_stage = 'doctor'


class NotFoundError(MedTrackException):
    status_code = 404
    default_stage = 'patient'


class GenerationExhaustedError(MedTrackException):
    """No free prescription number within the retry budget. Nothing was written."""
    status_code = 409
    default_stage = 'plan'


class PersistenceError(MedTrackException):
    """The store rejected a write. Nothing was written at the failing stage."""
    status_code = 500
    default_stage = 'plan'


class PartialWriteError(PersistenceError):
    """
    A later stage failed after earlier stages were committed.

    Earlier writes are left in place for an operator to inspect; there is no
    automatic rollback.
    """

    def __init__(self, message, stage, prescription_number=None):
        super().__init__(message, stage=stage)
        self.prescription_number = prescription_number

    def to_dict(self):
        data = super().to_dict()
        data['prescription_number'] = self.prescription_number
        return data
