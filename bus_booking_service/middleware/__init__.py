"""Middleware components for the bus booking service."""

from .error_handler import ErrorHandlerMiddleware, booking_error_handler, request_validation_handler
from .logging import LoggingMiddleware, request_id_var

__all__ = [
    "ErrorHandlerMiddleware",
    "LoggingMiddleware",
    "booking_error_handler",
    "request_validation_handler",
    "request_id_var",
]
