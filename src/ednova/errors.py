"""Application error taxonomy.

Every error carries an HTTP status and a user-facing message. Handlers in
``ednova.middleware.error_handler`` render them as ``{"detail": message}``.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map onto a structured HTTP response."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(AppError):
    status_code = 404
    default_message = "Resource not found"


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class InvalidIndexError(ValidationError):
    """Raised when a positional address (e.g. a note index) is out of range."""

    default_message = "Invalid index"


class UnauthorizedError(AppError):
    status_code = 401
    default_message = "Not authenticated"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Forbidden"


class ConflictError(AppError):
    status_code = 409
    default_message = "Conflict"


class InvalidTenantError(ForbiddenError):
    """Tenant name failed validation or is not on the allow-list."""

    default_message = "Access to this tenant is forbidden or it does not exist."


class TenantConnectionError(AppError):
    """The tenant's data store could not be reached.

    The message shown to clients is always generic; the tenant name and the
    underlying cause are only logged.
    """

    default_message = "Internal server error"

    def __init__(self, tenant: str) -> None:
        self.tenant = tenant
        super().__init__()


class ExternalServiceError(AppError):
    """Mail, storage or payment provider failure."""

    status_code = 502
    default_message = "An external service is unavailable. Please try again later."
