"""Business logic services for the bus booking service."""

from .booking_service import BookingService
from .ticket_service import TicketService

__all__ = ["BookingService", "TicketService"]
