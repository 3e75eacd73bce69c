"""
Service-layer exceptions.

Routers translate these into HTTPException with
detail={"code": exc.code, "message": exc.message} via to_http_exception().
"""
from fastapi import HTTPException


class ServiceError(Exception):
    """Base class for expected business errors."""
    status_code = 400
    default_code = "BAD_REQUEST"

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class NotFoundError(ServiceError):
    status_code = 404
    default_code = "NOT_FOUND"


class InvalidStateError(ServiceError):
    """Operation not allowed in the resource's current status."""
    status_code = 400
    default_code = "INVALID_STATE"


class ValidationError(ServiceError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class ForbiddenError(ServiceError):
    status_code = 403
    default_code = "FORBIDDEN"


class UnauthorizedError(ServiceError):
    status_code = 401
    default_code = "UNAUTHORIZED"


class ConflictError(ServiceError):
    """Concurrent modification detected; the caller may retry."""
    status_code = 409
    default_code = "CONFLICT"


def to_http_exception(exc: ServiceError) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail={"code": exc.code, "message": exc.message},
    )
