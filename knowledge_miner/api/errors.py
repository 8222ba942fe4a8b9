"""
Application error taxonomy.

Routers and services raise ``ApplicationError`` subclasses for domain
failures; ``register_error_handlers`` renders them as
``{"message", "code", "details"?}`` JSON with the matching status code.
Plain ``HTTPException`` remains in use for simple request errors.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    # Authentication
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"

    # Authorization
    FORBIDDEN = "FORBIDDEN"

    # Resources
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_ALREADY_EXISTS = "RESOURCE_ALREADY_EXISTS"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    # Services
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    DATABASE_ERROR = "DATABASE_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"

    # Limits
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    ANONYMOUS_LIMIT_REACHED = "ANONYMOUS_LIMIT_REACHED"

    # General
    INTERNAL_ERROR = "INTERNAL_ERROR"
    BAD_REQUEST = "BAD_REQUEST"


class ApplicationError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code = 500
    code = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message, "code": self.code.value}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(ApplicationError):
    status_code = 404
    code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, resource: str, resource_id: Any = None, details: Optional[Dict[str, Any]] = None):
        if resource_id is None:
            message = f"{resource} not found"
        else:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(message, details=details)


class ValidationError(ApplicationError):
    status_code = 400
    code = ErrorCode.VALIDATION_ERROR


class AuthenticationError(ApplicationError):
    status_code = 401
    code = ErrorCode.UNAUTHORIZED


class AuthorizationError(ApplicationError):
    status_code = 403
    code = ErrorCode.FORBIDDEN


class ConflictError(ApplicationError):
    status_code = 409
    code = ErrorCode.RESOURCE_ALREADY_EXISTS


class AnonymousLimitError(ApplicationError):
    """Raised when a guest session has used up its video allowance."""

    status_code = 403
    code = ErrorCode.ANONYMOUS_LIMIT_REACHED

    def __init__(self, message: str, suggestion: Optional[str] = None):
        details = {"suggestion": suggestion} if suggestion else None
        super().__init__(message, details=details)
        self.suggestion = suggestion


class ServiceUnavailableError(ApplicationError):
    status_code = 503
    code = ErrorCode.SERVICE_UNAVAILABLE


class DatabaseError(ApplicationError):
    status_code = 500
    code = ErrorCode.DATABASE_ERROR


class ExternalServiceError(ApplicationError):
    status_code = 502
    code = ErrorCode.EXTERNAL_SERVICE_ERROR

    def __init__(self, service: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{service} error: {message}", details=details)
        self.service = service


async def application_error_handler(request: Request, exc: ApplicationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code.value} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code.value}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApplicationError, application_error_handler)
