"""
FastAPI dependencies: caller identity, collaborator clients and services.

Authentication happens at the gateway; it forwards the caller identity in
the X-User-Id and X-User-Role headers.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import get_seat_lock_store
from ..clients import NotificationClient, TripServiceClient, UserServiceClient
from ..database import get_db, get_db_session
from ..models.booking import Booking
from ..repositories import BookingRepository, PassengerRepository
from ..services.booking_service import BookingService
from ..services.ticket_service import TicketService
from .exceptions import AuthorizationError, ErrorCode

logger = logging.getLogger(__name__)

ADMIN_ROLES = {"admin", "operator", "staff"}


@dataclass
class ServiceClients:
    trips: TripServiceClient
    notifier: NotificationClient
    users: UserServiceClient

    async def close(self) -> None:
        for client in (self.trips, self.notifier, self.users):
            await client.close()


_clients: Optional[ServiceClients] = None


def init_clients() -> ServiceClients:
    """Create the collaborator clients shared for the application lifetime."""
    global _clients
    if _clients is None:
        _clients = ServiceClients(
            trips=TripServiceClient(),
            notifier=NotificationClient(),
            users=UserServiceClient(),
        )
        logger.info("Collaborator clients initialized")
    return _clients


async def close_clients() -> None:
    global _clients
    if _clients is not None:
        await _clients.close()
        _clients = None
        logger.info("Collaborator clients closed")


def get_clients() -> ServiceClients:
    return init_clients()


class ScopedTicketProcessor:
    """
    Ticket generation that opens its own database session.

    Confirmation hands ticket work to a background task that may outlive the
    request session, so the work runs on a session of its own.
    """

    def __init__(self, clients: ServiceClients):
        self.clients = clients

    async def process_ticket_generation(self, booking_id: UUID, await_email: bool = False) -> Booking:
        async with get_db_session() as session:
            tickets = TicketService(
                BookingRepository(session),
                PassengerRepository(session),
                self.clients.trips,
                self.clients.notifier,
                users=self.clients.users,
            )
            return await tickets.process_ticket_generation(booking_id, await_email=await_email)


async def get_booking_service(
    db: AsyncSession = Depends(get_db),
    clients: ServiceClients = Depends(get_clients),
) -> BookingService:
    return BookingService(
        bookings=BookingRepository(db),
        passengers=PassengerRepository(db),
        trips=clients.trips,
        lock_store=get_seat_lock_store(),
        notifier=clients.notifier,
        tickets=ScopedTicketProcessor(clients),
        users=clients.users,
    )


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Caller's user id, or None for guest checkout."""
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


async def require_user_id(user_id: Optional[str] = Depends(get_current_user_id)) -> str:
    if user_id is None:
        raise AuthorizationError("Authentication required")
    return user_id


async def require_admin(
    user_id: str = Depends(require_user_id),
    x_user_role: Optional[str] = Header(default=None),
) -> str:
    """
    Ensure the caller holds an admin or staff role.

    Raises:
        AuthorizationError: If the role is missing or insufficient
    """
    if (x_user_role or "").strip().lower() not in ADMIN_ROLES:
        raise AuthorizationError("Admin access required", error_code=ErrorCode.FORBIDDEN)
    return user_id
