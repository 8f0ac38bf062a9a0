"""
Application Error Taxonomy

Every failure a service can report is an AppError subclass carrying the
HTTP status it maps to. Route handlers never build error responses
themselves; the exception handlers registered in app.main convert these
into the standard ErrorResponse body.
"""

from typing import Optional


class AppError(Exception):
    """Base class for errors that terminate a request."""

    status_code: int = 500
    error: str = "Internal Server Error"
    default_detail: str = "An unexpected error occurred"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.status_code}: {self.detail}>"


# =============================================================================
# IDENTITY
# =============================================================================

class MissingCredential(AppError):
    status_code = 401
    error = "Missing Credential"
    default_detail = "Access denied. No token provided."


class InvalidCredential(AppError):
    status_code = 401
    error = "Invalid Credential"
    default_detail = "Invalid token."


class SubjectNotFound(AppError):
    status_code = 404
    error = "Subject Not Found"
    default_detail = "User not found."


class Forbidden(AppError):
    status_code = 403
    error = "Forbidden"
    default_detail = "Access denied. Only restaurant owners can access this resource."


# =============================================================================
# LOOKUP / INPUT
# =============================================================================

class NotFound(AppError):
    status_code = 404
    error = "Not Found"
    default_detail = "Resource not found"


class InvalidInput(AppError):
    status_code = 400
    error = "Invalid Input"
    default_detail = "Invalid request"


class InvalidStatus(InvalidInput):
    default_detail = "Invalid order status"


class InvalidPeriod(InvalidInput):
    default_detail = 'Invalid period. Use "day", "week", or "month".'


class InvalidFormat(InvalidInput):
    default_detail = 'Invalid format. Must be "csv" or "json".'


class InvalidTransition(AppError):
    status_code = 409
    error = "Invalid Transition"
    default_detail = "Order status transition not allowed"


# =============================================================================
# STORE
# =============================================================================

class PersistenceError(AppError):
    status_code = 500
    error = "Persistence Error"
    default_detail = "Failed to persist changes"
