"""
Passenger model: one seat and one ticket inside a booking.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin

if TYPE_CHECKING:
    from .booking import Booking


class BoardingStatus(str, enum.Enum):
    """Enumeration for passenger boarding status."""
    NOT_BOARDED = "not_boarded"
    BOARDED = "boarded"
    NO_SHOW = "no_show"


class Passenger(TimestampMixin, Base):
    """Passenger ticket linked to a booking."""

    __tablename__ = "booking_passengers"

    ticket_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("bookings.booking_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    seat_code: Mapped[str] = mapped_column(String(10), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    document_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    boarding_status: Mapped[BoardingStatus] = mapped_column(
        Enum(BoardingStatus, name="boarding_status", values_callable=lambda e: [m.value for m in e]),
        default=BoardingStatus.NOT_BOARDED,
        nullable=False
    )
    boarded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    booking: Mapped["Booking"] = relationship("Booking", back_populates="passengers")

    def __repr__(self) -> str:
        """String representation of the passenger."""
        return f"<Passenger(ticket_id={self.ticket_id}, booking_id={self.booking_id}, seat={self.seat_code})>"
