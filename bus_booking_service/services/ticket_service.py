"""
E-ticket generation and delivery for paid bookings.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from ..models.booking import Booking
from ..models.passenger import Passenger
from ..schemas.trip import TripDetails
from ..utils.background import best_effort, spawn
from ..utils.exceptions import BookingNotFoundError
from ..utils.ticket_generator import TicketGenerator

logger = logging.getLogger(__name__)


@dataclass
class TicketInfo:
    ticket_url: str
    qr_code: str


class TicketService:
    """Renders, stores and emails e-tickets."""

    def __init__(self, bookings, passengers, trips, notifier, users=None, generator: Optional[TicketGenerator] = None):
        self.bookings = bookings
        self.passengers = passengers
        self.trips = trips
        self.notifier = notifier
        self.users = users
        self.generator = generator or TicketGenerator()

    async def generate_ticket(
        self,
        booking: Booking,
        passengers: List[Passenger],
        trip: Optional[TripDetails] = None,
    ) -> TicketInfo:
        """Render the QR code and PDF, store the PDF and return its public URL."""
        qr_code = await asyncio.to_thread(
            self.generator.generate_booking_qr, booking.booking_reference, booking.booking_id
        )
        pdf = await asyncio.to_thread(self.generator.generate_ticket_pdf, booking, passengers, qr_code, trip)
        path = await asyncio.to_thread(self.generator.save_pdf_to_file, pdf, booking.booking_reference)

        ticket_url = self.generator.get_public_ticket_url(path, booking.booking_reference)
        logger.info(f"Generated e-ticket for booking {booking.booking_reference}: {ticket_url}")
        return TicketInfo(ticket_url=ticket_url, qr_code=qr_code)

    async def resolve_recipient(self, booking: Booking) -> str:
        """Registered users get tickets at their account email, guests at the contact email."""
        if booking.user_id and self.users is not None:
            contact = await best_effort(
                "look up ticket recipient",
                self.users.get_user(booking.user_id),
                booking_id=booking.booking_id,
            )
            if contact is not None and contact.email:
                return contact.email
        return booking.contact_email

    async def send_ticket_email(self, booking: Booking, passengers: List[Passenger], trip: Optional[TripDetails]):
        recipient = await self.resolve_recipient(booking)
        await self.notifier.send_email(
            recipient,
            "booking-ticket",
            {
                "bookingReference": booking.booking_reference,
                "ticketUrl": booking.ticket_url,
                "qrCode": booking.qr_code_url,
                "seats": [p.seat_code for p in passengers],
                "passengers": [p.full_name for p in passengers],
                "totalPrice": str(booking.total_price),
                "currency": booking.currency,
                "trip": trip.summary() if trip else {"trip_id": booking.trip_id},
            },
        )
        logger.info(f"Ticket email for {booking.booking_reference} sent to {recipient}")

    async def process_ticket_generation(self, booking_id: UUID, await_email: bool = False) -> Booking:
        """
        Generate the ticket for a booking, persist its URLs and email it.

        The email goes out in the background unless ``await_email`` is set
        (Celery workers close their loop after the task returns).

        Returns:
            The booking carrying ticket_url and qr_code_url
        """
        booking = await self.bookings.find_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundError(str(booking_id))

        passengers = await self.passengers.find_by_booking_id(booking_id)
        trip = await best_effort(
            "fetch trip for ticket",
            self.trips.get_trip(booking.trip_id),
            booking_id=booking_id,
        )

        info = await self.generate_ticket(booking, passengers, trip)
        updated = await self.bookings.update_ticket_info(booking_id, info.ticket_url, info.qr_code)
        booking = updated or booking

        email = best_effort(
            "send ticket email",
            self.send_ticket_email(booking, passengers, trip),
            booking_id=booking_id,
        )
        if await_email:
            await email
        else:
            spawn(email, name=f"ticket-email-{booking.booking_reference}")
        return booking
