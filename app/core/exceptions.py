"""Domain errors.

Every error raised by the delivery note pipeline carries an HTTP status and a
short machine-readable tag; the handlers in app.main turn them into
``{"message": ..., "error": ...}`` bodies.
"""
from typing import Any, Dict, Optional


class AppException(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    error: str = "internal_error"

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        if error is not None:
            self.error = error
        self.extra = extra or {}
        super().__init__(message)


class AuthenticationError(AppException):
    """Missing, invalid or expired bearer token."""

    status_code = 401
    error = "unauthorized"


class ValidationError(AppException):
    """Malformed or missing input."""

    status_code = 400
    error = "validation"


class NotFoundError(AppException):
    """Missing, or not visible to the requester.

    Cross-owner lookups deliberately report the same error as a missing
    document so the existence of other users' notes is not leaked.
    """

    status_code = 404
    error = "not_found"


class ConflictError(AppException):
    """Duplicate delivery note number for the same owner."""

    status_code = 409
    error = "duplicate_key"


class ForbiddenError(AppException):
    """Mutating a signed note, or downloading without permission."""

    status_code = 403
    error = "forbidden"


class DependencyFailure(AppException):
    """A render or upload step failed; the sign transaction was rolled back."""

    status_code = 500
    error = "dependency_failure"


class ConfigurationError(AppException):
    """A required integration is not configured."""

    status_code = 500
    error = "configuration"


class RenderError(DependencyFailure):
    error = "pdf_generation"


class PdfOutputError(DependencyFailure):
    error = "pdf_output"


class PinningUploadError(DependencyFailure):
    error = "ipfs_upload"


class PinningNotConfiguredError(ConfigurationError):
    error = "ipfs_config"
