"""
Shared fixtures: in-memory collaborators for the booking lifecycle.

The fake repositories keep real ORM instances and apply the same guards as
the SQL conditional updates, so race semantics (double pay, double cancel)
behave like the database-backed ones.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID, uuid4

import pytest

from bus_booking_service.clients.user_client import UserContact
from bus_booking_service.config import get_settings
from bus_booking_service.models.booking import Booking, BookingStatus, PaymentStatus
from bus_booking_service.models.passenger import BoardingStatus, Passenger
from bus_booking_service.schemas.trip import OperatorInfo, RouteInfo, SeatInfo, SeatMap, TripDetails
from bus_booking_service.services.booking_service import BookingService
from bus_booking_service.utils.background import drain
from bus_booking_service.utils.exceptions import ExternalServiceError, SeatNotAvailableError
from bus_booking_service.utils.helpers import normalize_reference

NOW = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)
TRIP_ID = "T1"


class FakePassengerRepository:
    def __init__(self):
        self.rows: Dict[UUID, Passenger] = {}
        self.fail_seat_update_on: Optional[str] = None

    async def create_batch(self, booking_id, passengers):
        created = []
        for data in passengers:
            passenger = Passenger(
                ticket_id=uuid4(),
                booking_id=booking_id,
                boarding_status=BoardingStatus.NOT_BOARDED,
                created_at=NOW,
                updated_at=NOW,
                **data,
            )
            self.rows[passenger.ticket_id] = passenger
            created.append(passenger)
        return created

    async def find_by_booking_id(self, booking_id):
        return sorted(
            (p for p in self.rows.values() if p.booking_id == booking_id),
            key=lambda p: p.seat_code,
        )

    async def find_by_ticket_id(self, ticket_id):
        return self.rows.get(ticket_id)

    async def update_seat(self, ticket_id, seat_code):
        if self.fail_seat_update_on == seat_code:
            raise RuntimeError(f"write failed for seat {seat_code}")
        passenger = self.rows.get(ticket_id)
        if passenger is not None:
            passenger.seat_code = seat_code
        return passenger

    async def update(self, ticket_id, full_name=None, phone=None, document_id=None):
        passenger = self.rows.get(ticket_id)
        if passenger is None:
            return None
        for name, value in (("full_name", full_name), ("phone", phone), ("document_id", document_id)):
            if value is not None:
                setattr(passenger, name, value)
        return passenger

    async def update_boarding_status(self, ticket_id, status, boarded_at=None):
        passenger = self.rows.get(ticket_id)
        if passenger is not None:
            passenger.boarding_status = status
            passenger.boarded_at = boarded_at
        return passenger


class FakeBookingRepository:
    def __init__(self, passengers: FakePassengerRepository):
        self.passengers = passengers
        self.rows: Dict[UUID, Booking] = {}
        self.taken_references: set = set()
        self.create_calls = 0
        self.cancel_calls = 0

    async def create(self, **fields):
        self.create_calls += 1
        booking = Booking(booking_id=uuid4(), created_at=NOW, updated_at=NOW, **fields)
        self.rows[booking.booking_id] = booking
        self.taken_references.add(booking.booking_reference)
        return booking

    async def find_by_id(self, booking_id):
        return self.rows.get(booking_id)

    async def find_by_reference(self, reference):
        wanted = normalize_reference(reference)
        for booking in self.rows.values():
            if booking.booking_reference.upper() == wanted:
                return booking
        return None

    async def reference_exists(self, reference):
        return reference in self.taken_references or await self.find_by_reference(reference) is not None

    async def find_by_user_id(self, user_id, status=None, page=1, limit=10, sort_order="desc"):
        rows = [b for b in self.rows.values() if b.user_id == user_id and (status is None or b.status == status)]
        rows.sort(key=lambda b: b.created_at, reverse=sort_order != "asc")
        total = len(rows)
        start = (page - 1) * limit
        pagination = {"page": page, "limit": limit, "total": total, "total_pages": -(-total // limit)}
        return rows[start:start + limit], pagination

    async def find_expired_bookings(self, now, limit=100):
        return [
            b for b in self.rows.values()
            if b.status == BookingStatus.PENDING
            and b.payment_status != PaymentStatus.PAID
            and b.locked_until is not None
            and b.locked_until < now
        ][:limit]

    async def find_departing_between(self, start, end):
        return [
            b for b in self.rows.values()
            if b.status == BookingStatus.CONFIRMED
            and b.payment_status == PaymentStatus.PAID
            and b.departure_time is not None
            and start <= b.departure_time <= end
        ]

    async def check_seats_availability(self, trip_id, seat_codes):
        active = {
            b.booking_id for b in self.rows.values()
            if b.trip_id == trip_id and b.status in (BookingStatus.PENDING, BookingStatus.CONFIRMED)
        }
        booked = {p.seat_code for p in self.passengers.rows.values() if p.booking_id in active}
        return sorted(booked.intersection(seat_codes))

    async def update_payment(self, booking_id, payment_status, payment_method, paid_at):
        booking = self.rows.get(booking_id)
        if booking is None or booking.status == BookingStatus.CANCELLED or booking.payment_status == PaymentStatus.PAID:
            return None
        booking.payment_status = payment_status
        booking.payment_method = payment_method
        booking.paid_at = paid_at
        if payment_status == PaymentStatus.PAID:
            booking.status = BookingStatus.CONFIRMED
            booking.locked_until = None
        return booking

    async def update_user_id(self, booking_id, user_id):
        booking = self.rows.get(booking_id)
        if booking is None or booking.user_id is not None:
            return None
        booking.user_id = user_id
        return booking

    async def cancel(self, booking_id, reason, refund_amount, cancelled_at):
        self.cancel_calls += 1
        booking = self.rows.get(booking_id)
        if booking is None or booking.status == BookingStatus.CANCELLED:
            return None
        booking.status = BookingStatus.CANCELLED
        booking.cancellation_reason = reason
        booking.refund_amount = refund_amount
        booking.cancelled_at = cancelled_at
        booking.locked_until = None
        if refund_amount > 0:
            booking.payment_status = PaymentStatus.REFUNDED
        return booking

    async def update_modification_fee(self, booking_id, fee):
        booking = self.rows.get(booking_id)
        if booking is None:
            return None
        booking.modification_fees = (booking.modification_fees or Decimal("0")) + fee
        booking.total_price = Decimal(booking.total_price) + fee
        return booking

    async def update_ticket_info(self, booking_id, ticket_url, qr_code_url):
        booking = self.rows.get(booking_id)
        if booking is None:
            return None
        booking.ticket_url = ticket_url
        booking.qr_code_url = qr_code_url
        return booking


class FakeTripClient:
    def __init__(self):
        self.trips: Dict[str, TripDetails] = {}
        self.seat_maps: Dict[str, SeatMap] = {}
        self.lock_calls: List[tuple] = []
        self.release_calls: List[tuple] = []
        self.fail_lock_on: set = set()
        self.fail_release = False
        self.fail_get_trip = False

    def add_trip(self, trip_id=TRIP_ID, base_price=100000, departure=None, seats=("A1", "A2", "A3", "A4", "B1")):
        departure = departure or NOW + timedelta(hours=72)
        self.trips[trip_id] = TripDetails(
            trip_id=trip_id,
            base_price=Decimal(str(base_price)),
            departure_time=departure,
            arrival_time=departure + timedelta(hours=6),
            route=RouteInfo(origin="Ha Noi", destination="Da Nang"),
            operator=OperatorInfo(operator_id="op-1", name="Sao Viet"),
        )
        self.seat_maps[trip_id] = SeatMap(
            trip_id=trip_id,
            seats=[SeatInfo(seat_code=code) for code in seats],
        )
        return self.trips[trip_id]

    async def get_trip(self, trip_id):
        if self.fail_get_trip:
            raise ExternalServiceError("trip", "unreachable")
        return self.trips.get(trip_id)

    async def get_seat_map(self, trip_id):
        return self.seat_maps[trip_id]

    async def lock_seats(self, trip_id, seat_codes, session_id):
        self.lock_calls.append((trip_id, list(seat_codes), session_id))
        for code in seat_codes:
            if code in self.fail_lock_on:
                raise SeatNotAvailableError(code, "locked")

    async def release_seats(self, trip_id, seat_codes, session_id=None):
        self.release_calls.append((trip_id, list(seat_codes), session_id))
        if self.fail_release:
            raise ExternalServiceError("trip", "release failed")


class FakeLockStore:
    def __init__(self):
        self.expirations: Dict[str, int] = {}
        self.released_seat_locks: List[tuple] = []
        self.fail = False

    async def schedule_expiration(self, booking_id, locked_until, now):
        if self.fail:
            raise ConnectionError("redis down")
        ttl = int((locked_until - now).total_seconds())
        if ttl <= 0:
            return False
        self.expirations[str(booking_id)] = ttl
        return True

    async def clear_expiration(self, booking_id):
        if self.fail:
            raise ConnectionError("redis down")
        self.expirations.pop(str(booking_id), None)

    async def has_expiration(self, booking_id):
        return str(booking_id) in self.expirations

    async def release_seat_locks(self, trip_id, seat_codes):
        if self.fail:
            raise ConnectionError("redis down")
        self.released_seat_locks.append((trip_id, list(seat_codes)))
        return len(seat_codes)


class FakeNotifier:
    def __init__(self):
        self.emails: List[tuple] = []
        self.sms: List[tuple] = []
        self.fail = False

    async def send_email(self, to, template, data):
        if self.fail:
            raise ExternalServiceError("notification", "down")
        self.emails.append((to, template, data))

    async def send_sms(self, to, template, data):
        if self.fail:
            raise ExternalServiceError("notification", "down")
        self.sms.append((to, template, data))

    def templates(self) -> List[str]:
        return [template for _, template, _ in self.emails]


class FakeTickets:
    def __init__(self, bookings: FakeBookingRepository):
        self.bookings = bookings
        self.calls: List[UUID] = []
        self.delay = 0.0
        self.fail = False

    async def process_ticket_generation(self, booking_id, await_email=False):
        self.calls.append(booking_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("pdf renderer crashed")
        booking = self.bookings.rows[booking_id]
        return await self.bookings.update_ticket_info(
            booking_id,
            f"http://tickets.local/tickets/{booking.booking_reference}.pdf",
            "data:image/png;base64,AAAA",
        )


class FakeUsers:
    def __init__(self):
        self.contacts: Dict[str, UserContact] = {}

    async def get_user(self, user_id):
        return self.contacts.get(user_id)


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class SequenceReferences:
    """Deterministic reference candidates: BK20250106001, BK20250106002, ..."""

    def __init__(self, prefix="BK20250106"):
        self.prefix = prefix
        self.counter = 0

    def __call__(self):
        self.counter += 1
        return f"{self.prefix}{self.counter:03d}"


@pytest.fixture
def passenger_repo():
    return FakePassengerRepository()


@pytest.fixture
def booking_repo(passenger_repo):
    return FakeBookingRepository(passenger_repo)


@pytest.fixture
def trips():
    client = FakeTripClient()
    client.add_trip()
    return client


@pytest.fixture
def lock_store():
    return FakeLockStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def tickets(booking_repo):
    return FakeTickets(booking_repo)


@pytest.fixture
def users():
    return FakeUsers()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(booking_repo, passenger_repo, trips, lock_store, notifier, tickets, users, clock, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return BookingService(
        bookings=booking_repo,
        passengers=passenger_repo,
        trips=trips,
        lock_store=lock_store,
        notifier=notifier,
        tickets=tickets,
        users=users,
        settings=get_settings(),
        reference_generator=SequenceReferences(),
        sleep=fake_sleep,
        clock=clock,
    )


@pytest.fixture
def create_booking(service):
    """Create a pending booking on T1 with one passenger per seat."""
    async def _create(seats=("A1", "A2"), user_id=None, trip_id=TRIP_ID):
        return await service.create_booking(
            trip_id=trip_id,
            seats=list(seats),
            passengers=[{"seat_code": s, "full_name": f"Passenger {s}"} for s in seats],
            contact_email="guest@example.com",
            contact_phone="0901234567",
            user_id=user_id,
        )
    return _create


@pytest.fixture
def settle():
    """Let spawned background tasks finish."""
    async def _settle():
        await drain(timeout=1.0)
    return _settle
