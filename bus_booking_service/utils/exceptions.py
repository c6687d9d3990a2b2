"""
Custom exceptions for the bus booking service.
"""

from typing import Any, Dict, Optional, List
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for the booking service."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Booking lifecycle errors
    TRIP_NOT_FOUND = "TRIP_NOT_FOUND"
    TRIP_INFO_NOT_FOUND = "TRIP_INFO_NOT_FOUND"
    SEATS_ALREADY_BOOKED = "SEATS_ALREADY_BOOKED"
    INVALID_PRICING = "INVALID_PRICING"
    REFERENCE_GENERATION_FAILED = "REFERENCE_GENERATION_FAILED"
    ALREADY_PAID = "ALREADY_PAID"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    POLICY_VIOLATION = "POLICY_VIOLATION"
    SEAT_NOT_AVAILABLE = "SEAT_NOT_AVAILABLE"
    CONTACT_MISMATCH = "CONTACT_MISMATCH"

    # External service errors
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    CACHE_SERVICE_ERROR = "CACHE_SERVICE_ERROR"


class BookingServiceError(Exception):
    """Base exception class for the booking service."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        retry_after: Optional[int] = None
    ):
        """Initialize the exception with comprehensive error information."""
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []
        self.retry_after = retry_after
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        if self.suggestions:
            result["suggestions"] = self.suggestions

        if self.retry_after:
            result["retry_after"] = self.retry_after

        return result


class ValidationError(BookingServiceError):
    """Exception raised for validation errors."""

    def __init__(
        self,
        message: str,
        field_errors: Optional[Dict[str, List[str]]] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        if field_errors:
            details = {**(details or {}), "field_errors": field_errors}
        super().__init__(
            message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details=details,
            **kwargs
        )
        self.field_errors = field_errors or {}


class NotFoundError(BookingServiceError):
    """Base exception for resource not found errors."""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.NOT_FOUND,
        **kwargs
    ):
        super().__init__(
            message,
            error_code=error_code,
            details={"resource_type": resource_type, "resource_id": resource_id} if resource_type else None,
            **kwargs
        )


class BookingNotFoundError(NotFoundError):
    """Exception raised when a booking is not found."""

    def __init__(self, booking_id: str, **kwargs):
        super().__init__(
            f"Booking {booking_id} not found",
            resource_type="booking",
            resource_id=str(booking_id),
            suggestions=["Check the booking ID or reference"],
            **kwargs
        )


class TicketNotFoundError(NotFoundError):
    """Exception raised when a passenger ticket is not found."""

    def __init__(self, ticket_id: str, **kwargs):
        super().__init__(
            f"Ticket {ticket_id} not found",
            resource_type="ticket",
            resource_id=str(ticket_id),
            **kwargs
        )


class TripNotFoundError(NotFoundError):
    """Exception raised when the trip service does not know a trip."""

    def __init__(self, trip_id: str, error_code: ErrorCode = ErrorCode.TRIP_NOT_FOUND, **kwargs):
        super().__init__(
            f"Trip {trip_id} not found",
            resource_type="trip",
            resource_id=str(trip_id),
            error_code=error_code,
            suggestions=["Search trips again", "Check the trip ID"],
            **kwargs
        )


class AuthorizationError(BookingServiceError):
    """Exception raised when the caller does not own the booking."""

    def __init__(
        self,
        message: str = "You are not authorized to access this booking",
        error_code: ErrorCode = ErrorCode.UNAUTHORIZED,
        **kwargs
    ):
        super().__init__(message, error_code=error_code, **kwargs)


class ContactMismatchError(AuthorizationError):
    """Exception raised when guest lookup contact details do not match."""

    def __init__(self, field: str, **kwargs):
        super().__init__(
            f"The {field} does not match this booking",
            error_code=ErrorCode.CONTACT_MISMATCH,
            details={"field": field},
            suggestions=[f"Use the {field} entered at checkout"],
            **kwargs
        )


class BusinessLogicError(BookingServiceError):
    """Base exception for booking rule violations."""
    pass


class SeatsAlreadyBookedError(BusinessLogicError):
    """Exception raised when requested seats belong to another booking."""

    def __init__(self, trip_id: str, seat_codes: List[str], **kwargs):
        super().__init__(
            f"Seats already booked: {', '.join(seat_codes)}",
            error_code=ErrorCode.SEATS_ALREADY_BOOKED,
            details={"trip_id": str(trip_id), "seats": list(seat_codes)},
            suggestions=["Choose different seats", "Refresh the seat map"],
            **kwargs
        )
        self.seat_codes = list(seat_codes)


class InvalidPricingError(BusinessLogicError):
    """Exception raised when a trip carries no usable price."""

    def __init__(self, trip_id: str, base_price: Any, **kwargs):
        super().__init__(
            f"Invalid trip pricing for trip {trip_id}",
            error_code=ErrorCode.INVALID_PRICING,
            details={"trip_id": str(trip_id), "base_price": str(base_price)},
            **kwargs
        )


class ReferenceGenerationError(BusinessLogicError):
    """Exception raised when no unique booking reference could be found."""

    def __init__(self, attempts: int, **kwargs):
        super().__init__(
            f"Failed to generate unique booking reference after {attempts} attempts",
            error_code=ErrorCode.REFERENCE_GENERATION_FAILED,
            details={"attempts": attempts},
            suggestions=["Retry the booking request"],
            retry_after=1,
            **kwargs
        )


class AlreadyPaidError(BusinessLogicError):
    """Exception raised when a booking has already been paid."""

    def __init__(self, booking_id: str, **kwargs):
        super().__init__(
            f"Booking {booking_id} has already been paid",
            error_code=ErrorCode.ALREADY_PAID,
            details={"booking_id": str(booking_id)},
            **kwargs
        )


class AlreadyCancelledError(BusinessLogicError):
    """Exception raised when a booking has already been cancelled."""

    def __init__(self, booking_id: str, **kwargs):
        super().__init__(
            f"Booking {booking_id} has already been cancelled",
            error_code=ErrorCode.ALREADY_CANCELLED,
            details={"booking_id": str(booking_id)},
            **kwargs
        )


class PolicyViolationError(BusinessLogicError):
    """Exception raised when a cancellation or modification policy blocks an action."""

    def __init__(self, message: str, tier: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.POLICY_VIOLATION,
            details={"tier": tier} if tier else None,
            **kwargs
        )


class SeatNotAvailableError(BusinessLogicError):
    """Exception raised when a seat cannot be held for a booking."""

    def __init__(self, seat_code: str, current_status: str, **kwargs):
        super().__init__(
            f"Seat {seat_code} is not available (status: {current_status})",
            error_code=ErrorCode.SEAT_NOT_AVAILABLE,
            details={"seat_code": seat_code, "current_status": current_status},
            suggestions=["Choose a different seat", "Refresh the seat map"],
            **kwargs
        )


class ExternalServiceError(BookingServiceError):
    """Exception raised for collaborator service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        status_code: Optional[int] = None,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        super().__init__(
            f"{service_name} service error: {message}",
            error_code=error_code,
            details={"service_name": service_name, "status_code": status_code, **(details or {})},
            suggestions=["Try again later", "Contact support if problem persists"],
            **kwargs
        )
        self.service_name = service_name
        self.status_code = status_code


class CacheServiceError(ExternalServiceError):
    """Exception raised for seat lock store failures."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            "cache",
            message,
            error_code=ErrorCode.CACHE_SERVICE_ERROR,
            **kwargs
        )
