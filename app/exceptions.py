"""
Service-layer exceptions.

Every exception here subclasses ``ValueError`` so code that already
catches ``ValueError`` from a service keeps working.  Each carries the
HTTP status the application factory's error handler responds with.
"""


class ServiceError(ValueError):
    """Base class for errors raised by the service layer."""

    status_code = 400

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(ServiceError):
    """Request payload is missing fields or has malformed values."""

    status_code = 400


class AuthenticationError(ServiceError):
    """Credentials or bearer token are missing, invalid or expired."""

    status_code = 401


class PermissionDeniedError(ServiceError):
    """Authenticated user may not perform the action."""

    status_code = 403


class NotFoundError(ServiceError):
    """Referenced record does not exist."""

    status_code = 404


class ConflictError(ServiceError):
    """Action conflicts with the current state (duplicates, lifecycle)."""

    status_code = 409


class UploadTooLargeError(ServiceError):
    """Uploaded file exceeds the configured size limit."""

    status_code = 413


class BackupRestoreError(ServiceError):
    """
    A backup archive could not be restored.

    ``engine_errors`` maps each attempted engine name to the message it
    failed with, in the order the engines were tried.
    """

    status_code = 500

    def __init__(self, message: str, engine_errors: dict[str, str] | None = None):
        super().__init__(message, details=engine_errors or None)
        self.engine_errors = engine_errors or {}
