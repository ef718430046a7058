"""
Domain errors raised by Metapel services.

The HTTP layer maps each kind to a status code; services never build HTTP
responses themselves.
"""


class ClinicError(Exception):
    """Base exception for clinic service errors."""

    status_code = 500
    default_code = "CLINIC_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(ClinicError):
    """Malformed or missing input."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(ClinicError):
    """Entity is absent or not owned by the caller.

    Both cases raise the same error so that the existence of another
    therapist's records is never revealed.
    """

    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(ClinicError):
    """A state-transition precondition does not hold."""

    status_code = 409
    default_code = "CONFLICT"
