"""Application error taxonomy.

Every error raised from services is an ``AppError``. It subclasses FastAPI's
``HTTPException`` so routers can let it propagate untouched; the handler in
``main.py`` renders it as ``{"detail": ..., "error": ...}``.
"""
from fastapi import HTTPException


class AppError(HTTPException):
    status_code = 500
    code = "app_error"

    def __init__(self, detail: str = "Internal server error", *, status_code: int | None = None, code: str | None = None):
        super().__init__(status_code=status_code or type(self).status_code, detail=detail)
        self.code = code or type(self).code


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"


class AuthenticationError(AppError):
    status_code = 401
    code = "authentication_error"


class PaymentRequiredError(AppError):
    status_code = 402
    code = "payment_required"


class AuthorizationError(AppError):
    status_code = 403
    code = "authorization_error"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"


class DatabaseError(AppError):
    status_code = 500
    code = "database_error"


class ExternalServiceError(AppError):
    status_code = 502
    code = "external_service_error"


class ServiceUnavailableError(AppError):
    status_code = 503
    code = "service_unavailable"
