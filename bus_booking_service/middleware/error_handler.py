"""
Error handling middleware for the bus booking service.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Dict
from uuid import uuid4

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as SQLTimeoutError
from starlette.middleware.base import BaseHTTPMiddleware

from ..utils.exceptions import (
    AuthorizationError,
    BookingServiceError,
    ErrorCode,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_MAP: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.POLICY_VIOLATION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_PRICING: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.TRIP_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.TRIP_INFO_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.CONTACT_MISMATCH: status.HTTP_403_FORBIDDEN,
    ErrorCode.SEATS_ALREADY_BOOKED: status.HTTP_409_CONFLICT,
    ErrorCode.SEAT_NOT_AVAILABLE: status.HTTP_409_CONFLICT,
    ErrorCode.REFERENCE_GENERATION_FAILED: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_PAID: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_CANCELLED: status.HTTP_409_CONFLICT,
    ErrorCode.EXTERNAL_SERVICE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.CACHE_SERVICE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(exc: BookingServiceError) -> int:
    """Map error codes to HTTP status codes."""
    return STATUS_MAP.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def error_response(exc: BookingServiceError, error_id: str, status_code: int = None, headers=None) -> JSONResponse:
    headers = dict(headers or {})
    if exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=status_code or status_code_for(exc),
        content={"error": exc.to_dict(), "error_id": error_id, "timestamp": _timestamp()},
        headers=headers,
    )


def validation_error_response(exc, error_id: str) -> JSONResponse:
    """Turn pydantic/FastAPI validation failures into our error envelope."""
    field_errors: Dict[str, list] = {}
    for error in exc.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        field_errors.setdefault(field_path, []).append(error["msg"])

    return error_response(
        ValidationError("Request validation failed", field_errors=field_errors),
        error_id,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    )


async def booking_error_handler(request: Request, exc: BookingServiceError) -> JSONResponse:
    error_id = str(uuid4())
    log_error(request, exc, error_id)
    return error_response(exc, error_id)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error_id = str(uuid4())
    logger.warning(
        f"Request validation failed [{error_id}]: {request.method} {request.url.path}",
        extra={"error_id": error_id, "errors": str(exc.errors())[:500]},
    )
    return validation_error_response(exc, error_id)


def log_error(request: Request, exc: Exception, error_id: str) -> None:
    """Log error with request context, at a level matching its severity."""
    request_info = {
        "method": request.method,
        "path": request.url.path,
        "client_ip": request.client.host if request.client else None,
        "user_id": request.headers.get("x-user-id"),
    }

    if isinstance(exc, BookingServiceError):
        extra = {
            "error_id": error_id,
            "error_code": exc.error_code.value,
            "request": request_info,
            "details": exc.details,
        }
        if isinstance(exc, (ValidationError, NotFoundError, AuthorizationError)):
            logger.warning(f"Client error [{error_id}]: {exc.message}", extra=extra)
        elif isinstance(exc, ExternalServiceError):
            logger.error(f"Upstream error [{error_id}]: {exc.message}", extra=extra)
        else:
            logger.info(f"Business rule rejected request [{error_id}]: {exc.message}", extra=extra)
    else:
        logger.error(
            f"Unexpected error [{error_id}]: {exc}",
            extra={
                "error_id": error_id,
                "error_type": type(exc).__name__,
                "request": request_info,
                "traceback": traceback.format_exc(),
            },
        )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catches anything the route handlers let through and formats it."""

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        error_id = str(uuid4())
        try:
            return await call_next(request)
        except Exception as exc:
            log_error(request, exc, error_id)
            return self._handle_exception(exc, error_id)

    def _handle_exception(self, exc: Exception, error_id: str) -> JSONResponse:
        if isinstance(exc, BookingServiceError):
            return error_response(exc, error_id)
        if isinstance(exc, PydanticValidationError):
            return validation_error_response(exc, error_id)
        if isinstance(exc, IntegrityError):
            return self._handle_integrity_error(exc, error_id)
        if isinstance(exc, (OperationalError, SQLTimeoutError)):
            return error_response(
                ExternalServiceError(
                    "database",
                    "Database service temporarily unavailable",
                    details={"error_type": type(exc).__name__},
                ),
                error_id,
                headers={"Retry-After": "30"},
            )
        return self._handle_unexpected_error(exc, error_id)

    def _handle_integrity_error(self, exc: IntegrityError, error_id: str) -> JSONResponse:
        message = str(exc.orig) if getattr(exc, "orig", None) is not None else str(exc)
        if "unique" in message.lower():
            error = ValidationError("A record with this information already exists",
                                    details={"constraint_type": "unique"})
        else:
            error = ValidationError("Data integrity constraint violation",
                                    details={"constraint_type": "unknown"})
        return error_response(error, error_id, status_code=status.HTTP_409_CONFLICT)

    def _handle_unexpected_error(self, exc: Exception, error_id: str) -> JSONResponse:
        error = BookingServiceError(
            "An unexpected error occurred",
            error_code=ErrorCode.INTERNAL_ERROR,
            details={"error_type": type(exc).__name__} if self.debug else None,
        )
        response = error_response(error, error_id)
        if self.debug:
            logger.debug(f"Traceback for [{error_id}]:\n{traceback.format_exc()}")
        return response
