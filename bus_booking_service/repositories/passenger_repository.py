"""
Passenger (ticket) persistence.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.passenger import BoardingStatus, Passenger

logger = logging.getLogger(__name__)


class PassengerRepository:
    """Data access for booking passengers."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_batch(self, booking_id: UUID, passengers: List[Dict[str, Any]]) -> List[Passenger]:
        """Insert all passengers of a booking in one transaction."""
        rows = [Passenger(booking_id=booking_id, **fields) for fields in passengers]
        self.session.add_all(rows)
        await self.session.commit()
        for row in rows:
            await self.session.refresh(row)
        return rows

    async def find_by_booking_id(self, booking_id: UUID) -> List[Passenger]:
        result = await self.session.execute(
            select(Passenger)
            .where(Passenger.booking_id == booking_id)
            .order_by(Passenger.seat_code)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def find_by_ticket_id(self, ticket_id: UUID) -> Optional[Passenger]:
        result = await self.session.execute(
            select(Passenger).where(Passenger.ticket_id == ticket_id)
        )
        return result.scalar_one_or_none()

    async def update_seat(self, ticket_id: UUID, seat_code: str) -> Optional[Passenger]:
        return await self._update(ticket_id, {"seat_code": seat_code})

    async def update(
        self,
        ticket_id: UUID,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> Optional[Passenger]:
        """Patch passenger details; fields left as None keep their value."""
        values = {
            key: value
            for key, value in (("full_name", full_name), ("phone", phone), ("document_id", document_id))
            if value is not None
        }
        if not values:
            return await self.find_by_ticket_id(ticket_id)
        return await self._update(ticket_id, values)

    async def update_boarding_status(
        self,
        ticket_id: UUID,
        boarding_status: BoardingStatus,
        boarded_at: Optional[datetime],
    ) -> Optional[Passenger]:
        return await self._update(
            ticket_id,
            {"boarding_status": boarding_status, "boarded_at": boarded_at},
        )

    async def _update(self, ticket_id: UUID, values: Dict[str, Any]) -> Optional[Passenger]:
        result = await self.session.execute(
            update(Passenger)
            .where(Passenger.ticket_id == ticket_id)
            .values(**values)
            .returning(Passenger)
            .execution_options(populate_existing=True)
        )
        passenger = result.scalar_one_or_none()
        await self.session.commit()
        return passenger
