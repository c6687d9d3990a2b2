"""
Celery tasks for booking expiration, trip reminders and ticket regeneration.

Each run gets a fresh event loop, so the engine, Redis pool and HTTP clients
are opened and closed inside the run. Notifications are awaited rather than
spawned because the loop closes once the task returns.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar
from uuid import UUID

from .celery_app import celery_app
from ..cache import get_seat_lock_store
from ..clients import NotificationClient, TripServiceClient, UserServiceClient
from ..database import close_database, get_db_session, init_database
from ..repositories import BookingRepository, PassengerRepository
from ..services.booking_service import BookingService
from ..services.ticket_service import TicketService

logger = logging.getLogger(__name__)

T = TypeVar("T")


@asynccontextmanager
async def task_services() -> AsyncIterator[BookingService]:
    """Booking service wired to a session and clients owned by this run."""
    await init_database(create_tables=False)
    trips = TripServiceClient()
    notifier = NotificationClient()
    users = UserServiceClient()
    try:
        async with get_db_session() as session:
            bookings = BookingRepository(session)
            passengers = PassengerRepository(session)
            tickets = TicketService(bookings, passengers, trips, notifier, users=users)
            yield BookingService(
                bookings=bookings,
                passengers=passengers,
                trips=trips,
                lock_store=get_seat_lock_store(),
                notifier=notifier,
                tickets=tickets,
                users=users,
            )
    finally:
        for client in (trips, notifier, users):
            await client.close()
        await close_database()


def run_async(factory: Callable[[], Awaitable[T]]) -> T:
    """Run a coroutine to completion on a private event loop."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(factory())
    finally:
        loop.close()


@celery_app.task(name="process_expired_bookings_task")
def process_expired_bookings_task():
    """
    Periodic sweep cancelling unpaid bookings whose hold elapsed.

    Runs every ``expiration_sweep_interval_seconds``; safe to run twice on
    the same set since already-cancelled bookings are skipped.
    """
    async def _sweep():
        async with task_services() as service:
            return await service.process_expired_bookings()

    cancelled = run_async(_sweep)
    logger.info(f"Expiration sweep cancelled {cancelled} bookings")
    return {"cancelled_count": cancelled}


@celery_app.task(name="send_trip_reminders_task")
def send_trip_reminders_task():
    """Hourly SMS reminders for trips departing in about 24h and 2h."""
    async def _remind():
        async with task_services() as service:
            return await service.send_trip_reminders()

    sent = run_async(_remind)
    logger.info(f"Sent {sent} trip reminders")
    return {"sent_count": sent}


@celery_app.task(
    bind=True,
    name="regenerate_ticket_task",
    autoretry_for=(Exception,),
    retry_backoff=True,
    max_retries=3,
)
def regenerate_ticket_task(self, booking_id: str):
    """Re-render and re-send the e-ticket of a paid booking."""
    async def _regenerate():
        async with task_services() as service:
            booking = await service.tickets.process_ticket_generation(UUID(booking_id), await_email=True)
            return booking.ticket_url

    ticket_url = run_async(_regenerate)
    logger.info(f"Regenerated ticket for booking {booking_id}: {ticket_url}")
    return {"booking_id": booking_id, "ticket_url": ticket_url}
