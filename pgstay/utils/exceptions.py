from typing import Any, Dict, List, Optional


class AppError(Exception):
    status_code = 500
    error = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": False, "message": self.message, "error": self.error}
        if self.details:
            body["details"] = self.details
        if self.retryable:
            body["retryable"] = True
        return body


class ValidationError(AppError):
    status_code = 400
    error = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message, {"errors": errors} if errors else None)
        self.errors = errors or []


class NotFoundError(AppError):
    status_code = 404
    error = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 400
    error = "CONFLICT"

    def __init__(self, message: str, error: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        if error:
            self.error = error


class InvalidTransitionError(ConflictError):
    error = "INVALID_TRANSITION"


class ConcurrentModificationError(ConflictError):
    status_code = 409
    error = "CONCURRENT_MODIFICATION"
    retryable = True


class AuthenticationError(AppError):
    status_code = 401
    error = "UNAUTHENTICATED"


class AuthorizationError(AppError):
    status_code = 403
    error = "FORBIDDEN"


class InternalError(AppError):
    status_code = 500
    error = "INTERNAL_ERROR"


class ServiceUnavailableError(AppError):
    status_code = 503
    error = "SERVICE_UNAVAILABLE"
    retryable = True
