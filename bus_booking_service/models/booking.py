"""
Booking model: the aggregate root of a seat reservation on a trip.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, Enum, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin

if TYPE_CHECKING:
    from .passenger import Passenger


class BookingStatus(str, enum.Enum):
    """Enumeration for booking status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, enum.Enum):
    """Enumeration for payment status."""
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class Booking(TimestampMixin, Base):
    """Booking model for seat reservations on a trip."""

    __tablename__ = "bookings"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    booking_reference: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)

    trip_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # Null for guest checkouts
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[str] = mapped_column(String(32), nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status", values_callable=lambda e: [m.value for m in e]),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status", values_callable=lambda e: [m.value for m in e]),
        default=PaymentStatus.UNPAID,
        nullable=False
    )
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    departure_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    service_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="VND")

    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refund_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    modification_fees: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    ticket_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    qr_code_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    passengers: Mapped[List["Passenger"]] = relationship(
        "Passenger",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="raise"
    )

    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_bookings_subtotal_non_negative"),
        CheckConstraint("total_price >= 0", name="ck_bookings_total_price_non_negative"),
        Index("ix_bookings_expiry_scan", "status", "payment_status", "locked_until"),
    )

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    def __repr__(self) -> str:
        """String representation of the booking."""
        return (
            f"<Booking(booking_id={self.booking_id}, reference={self.booking_reference}, "
            f"trip_id={self.trip_id}, status={self.status.value})>"
        )
