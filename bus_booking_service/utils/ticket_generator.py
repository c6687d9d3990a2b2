"""
E-ticket rendering: QR code image and A4 PDF.
"""

import base64
import io
import logging
import os
from datetime import datetime, timezone
from typing import Optional, Sequence
from urllib.parse import urlencode

import qrcode
from qrcode import constants
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..config import get_settings
from ..models.booking import Booking
from ..models.passenger import Passenger
from ..schemas.trip import TripDetails

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image/png;base64,"


class TicketGenerator:
    """Renders and stores e-tickets on the local filesystem."""

    def __init__(
        self,
        storage_dir: Optional[str] = None,
        public_base_url: Optional[str] = None,
        verify_base_url: Optional[str] = None,
    ):
        settings = get_settings()
        self.storage_dir = storage_dir or settings.ticket_storage_dir
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self.verify_base_url = (verify_base_url or settings.frontend_url).rstrip("/")

    def verification_url(self, reference: str, booking_id) -> str:
        query = urlencode({"ref": reference, "id": str(booking_id)})
        return f"{self.verify_base_url}/verify-ticket?{query}"

    def generate_booking_qr(self, reference: str, booking_id) -> str:
        """Render the verification URL as a PNG data URL."""
        qr = qrcode.QRCode(
            version=None,
            error_correction=constants.ERROR_CORRECT_M,
            box_size=8,
            border=2,
        )
        qr.add_data(self.verification_url(reference, booking_id))
        qr.make(fit=True)

        buf = io.BytesIO()
        qr.make_image(fill_color="black", back_color="white").save(buf, format="PNG")
        return DATA_URL_PREFIX + base64.b64encode(buf.getvalue()).decode("ascii")

    def generate_ticket_pdf(
        self,
        booking: Booking,
        passengers: Sequence[Passenger],
        qr_code: Optional[str],
        trip: Optional[TripDetails] = None,
    ) -> bytes:
        """Return A4 PDF bytes for the booking."""
        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=A4)
        w, h = A4

        c.setFont("Helvetica-Bold", 18)
        c.drawString(40, h - 60, "Bus E-Ticket")
        c.setFont("Helvetica", 11)
        c.drawString(40, h - 80, f"Booking Reference: {booking.booking_reference}")
        c.drawString(40, h - 96, f"Status: {booking.status.value} / {booking.payment_status.value}")

        if qr_code and qr_code.startswith(DATA_URL_PREFIX):
            image = ImageReader(io.BytesIO(base64.b64decode(qr_code[len(DATA_URL_PREFIX):])))
            c.drawImage(image, w - 170, h - 170, width=130, height=130)

        y = h - 135
        c.setFont("Helvetica-Bold", 12)
        c.drawString(40, y, "Trip")
        c.setFont("Helvetica", 11)
        if trip:
            departure = trip.departure_time.strftime("%Y-%m-%d %H:%M") if trip.departure_time else "-"
            arrival = trip.arrival_time.strftime("%Y-%m-%d %H:%M") if trip.arrival_time else "-"
            c.drawString(40, y - 18, f"From: {trip.route.origin or '-'}")
            c.drawString(40, y - 34, f"To:   {trip.route.destination or '-'}")
            c.drawString(40, y - 50, f"Departure: {departure}")
            c.drawString(40, y - 66, f"Arrival:   {arrival}")
            c.drawString(40, y - 82, f"Operator:  {trip.operator.name or '-'}")
        else:
            c.drawString(40, y - 18, f"Trip ID: {booking.trip_id}")

        y -= 120
        c.setFont("Helvetica-Bold", 12)
        c.drawString(40, y, "Passengers")
        c.setFont("Helvetica", 11)
        for passenger in passengers:
            y -= 18
            c.drawString(40, y, f"{passenger.seat_code:<6} {passenger.full_name}")
            c.drawString(360, y, f"{passenger.price:,.0f} {booking.currency}")

        y -= 36
        c.setFont("Helvetica-Bold", 12)
        c.drawString(40, y, "Payment")
        c.setFont("Helvetica", 11)
        c.drawString(40, y - 18, f"Subtotal:    {booking.subtotal:,.0f} {booking.currency}")
        c.drawString(40, y - 34, f"Service fee: {booking.service_fee:,.0f} {booking.currency}")
        c.drawString(40, y - 50, f"Total:       {booking.total_price:,.0f} {booking.currency}")

        c.setFont("Helvetica", 9)
        c.drawString(40, 40, f"Contact: {booking.contact_email} / {booking.contact_phone}")
        c.drawString(40, 26, f"Generated: {datetime.now(timezone.utc).isoformat()}")

        c.showPage()
        c.save()
        return buf.getvalue()

    def save_pdf_to_file(self, pdf_bytes: bytes, reference: str) -> str:
        os.makedirs(self.storage_dir, exist_ok=True)
        path = os.path.join(self.storage_dir, f"{reference}.pdf")
        with open(path, "wb") as f:
            f.write(pdf_bytes)
        logger.debug(f"Stored ticket PDF at {path}")
        return path

    def get_public_ticket_url(self, path: str, reference: str) -> str:
        return f"{self.public_base_url}/tickets/{os.path.basename(path) or reference + '.pdf'}"
