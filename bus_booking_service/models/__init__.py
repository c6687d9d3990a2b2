"""Database models for the bus booking service."""

from .base import Base
from .booking import Booking, BookingStatus, PaymentStatus
from .passenger import Passenger, BoardingStatus

__all__ = [
    "Base",
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "Passenger",
    "BoardingStatus",
]
