"""
Booking persistence on top of the SQLAlchemy async session.

Every write is a single statement followed by a commit, so each one is
atomic per booking row. Conditional writes (payment, cancellation, user
attach) return None when their guard no longer holds.
"""

import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, asc, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.passenger import Passenger
from ..utils.helpers import normalize_reference

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class BookingRepository:
    """Data access for bookings."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **fields: Any) -> Booking:
        booking = Booking(**fields)
        self.session.add(booking)
        await self.session.commit()
        await self.session.refresh(booking)
        logger.debug(f"Persisted booking {booking.booking_id} ({booking.booking_reference})")
        return booking

    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        result = await self.session.execute(
            select(Booking)
            .where(Booking.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_reference(self, reference: str) -> Optional[Booking]:
        """Find a booking by reference, ignoring case and surrounding whitespace."""
        result = await self.session.execute(
            select(Booking).where(func.upper(Booking.booking_reference) == normalize_reference(reference))
        )
        return result.scalar_one_or_none()

    async def reference_exists(self, reference: str) -> bool:
        return await self.find_by_reference(reference) is not None

    async def find_by_user_id(
        self,
        user_id: str,
        status: Optional[BookingStatus] = None,
        page: int = 1,
        limit: int = 10,
        sort_order: str = "desc",
    ) -> Tuple[List[Booking], Dict[str, int]]:
        """
        List a user's bookings with pagination.

        Returns:
            Tuple of (bookings, pagination) where pagination carries
            page, limit, total and total_pages
        """
        conditions = [Booking.user_id == user_id]
        if status is not None:
            conditions.append(Booking.status == status)

        total = await self.session.scalar(
            select(func.count()).select_from(Booking).where(and_(*conditions))
        ) or 0

        order = asc(Booking.created_at) if sort_order == "asc" else desc(Booking.created_at)
        result = await self.session.execute(
            select(Booking)
            .where(and_(*conditions))
            .order_by(order)
            .offset((page - 1) * limit)
            .limit(limit)
        )

        pagination = {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }
        return list(result.scalars().all()), pagination

    async def find_expired_bookings(self, now: datetime, limit: int = 100) -> List[Booking]:
        """Pending, unpaid bookings whose hold has elapsed."""
        result = await self.session.execute(
            select(Booking)
            .where(
                and_(
                    Booking.status == BookingStatus.PENDING,
                    Booking.payment_status == PaymentStatus.UNPAID,
                    Booking.locked_until < now,
                )
            )
            .order_by(Booking.locked_until)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_departing_between(self, start: datetime, end: datetime) -> List[Booking]:
        """Confirmed, paid bookings whose trip departs inside the window."""
        result = await self.session.execute(
            select(Booking).where(
                and_(
                    Booking.status == BookingStatus.CONFIRMED,
                    Booking.payment_status == PaymentStatus.PAID,
                    Booking.departure_time >= start,
                    Booking.departure_time <= end,
                )
            )
        )
        return list(result.scalars().all())

    async def check_seats_availability(self, trip_id: str, seat_codes: Sequence[str]) -> List[str]:
        """
        Return the requested seats already held by an active booking on the trip.
        """
        if not seat_codes:
            return []

        result = await self.session.execute(
            select(Passenger.seat_code)
            .join(Booking, Booking.booking_id == Passenger.booking_id)
            .where(
                and_(
                    Booking.trip_id == str(trip_id),
                    Booking.status.in_(ACTIVE_STATUSES),
                    Passenger.seat_code.in_(list(seat_codes)),
                )
            )
            .distinct()
        )
        return sorted(result.scalars().all())

    async def update_payment(
        self,
        booking_id: UUID,
        payment_status: PaymentStatus,
        payment_method: Optional[str],
        paid_at: datetime,
    ) -> Optional[Booking]:
        """
        Record a payment.

        Only applies while the booking is neither cancelled nor already paid;
        returns None otherwise. A paid booking becomes confirmed and loses
        its hold deadline.
        """
        values: Dict[str, Any] = {
            "payment_status": payment_status,
            "payment_method": payment_method,
            "paid_at": paid_at,
        }
        if payment_status == PaymentStatus.PAID:
            values["status"] = BookingStatus.CONFIRMED
            values["locked_until"] = None

        booking = await self._conditional_update(
            booking_id,
            [
                Booking.status != BookingStatus.CANCELLED,
                Booking.payment_status != PaymentStatus.PAID,
            ],
            values,
        )
        if booking:
            logger.info(f"Payment recorded for booking {booking_id}: {payment_status.value}")
        return booking

    async def update_user_id(self, booking_id: UUID, user_id: str) -> Optional[Booking]:
        """Attach a user to a guest booking; no-op when it already has an owner."""
        return await self._conditional_update(
            booking_id,
            [Booking.user_id.is_(None)],
            {"user_id": user_id},
        )

    async def cancel(
        self,
        booking_id: UUID,
        reason: str,
        refund_amount: Decimal,
        cancelled_at: datetime,
    ) -> Optional[Booking]:
        """
        Cancel a booking in one statement.

        Returns None if the booking was already cancelled, so two racing
        cancellations cannot both succeed.
        """
        values: Dict[str, Any] = {
            "status": BookingStatus.CANCELLED,
            "cancellation_reason": reason,
            "refund_amount": refund_amount,
            "cancelled_at": cancelled_at,
            "locked_until": None,
        }
        if refund_amount > 0:
            values["payment_status"] = PaymentStatus.REFUNDED

        booking = await self._conditional_update(
            booking_id,
            [Booking.status != BookingStatus.CANCELLED],
            values,
        )
        if booking:
            logger.info(f"Booking {booking_id} cancelled ({reason}), refund {refund_amount}")
        return booking

    async def update_modification_fee(self, booking_id: UUID, fee: Decimal) -> Optional[Booking]:
        """Add ``fee`` to both the accumulated fees and the total, in SQL."""
        return await self._conditional_update(
            booking_id,
            [],
            {
                "modification_fees": Booking.modification_fees + fee,
                "total_price": Booking.total_price + fee,
            },
        )

    async def update_ticket_info(
        self,
        booking_id: UUID,
        ticket_url: str,
        qr_code_url: Optional[str],
    ) -> Optional[Booking]:
        return await self._conditional_update(
            booking_id,
            [],
            {"ticket_url": ticket_url, "qr_code_url": qr_code_url},
        )

    async def _conditional_update(
        self,
        booking_id: UUID,
        conditions: List[Any],
        values: Dict[str, Any],
    ) -> Optional[Booking]:
        result = await self.session.execute(
            update(Booking)
            .where(Booking.booking_id == booking_id, *conditions)
            .values(**values)
            .returning(Booking)
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        await self.session.commit()
        return booking
