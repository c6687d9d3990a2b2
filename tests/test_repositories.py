"""
Repository tests against a real SQL database (SQLite through aiosqlite).

These run the actual conditional UPDATE statements, so the guards that
decide races (double pay, double cancel, fee accumulation) are checked in
SQL rather than in the in-memory fakes.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from bus_booking_service.database import create_session_factory
from bus_booking_service.models.base import Base
from bus_booking_service.models.booking import BookingStatus, PaymentStatus
from bus_booking_service.repositories.booking_repository import BookingRepository
from bus_booking_service.repositories.passenger_repository import PassengerRepository

from conftest import NOW, TRIP_ID


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


async def insert_booking(session, reference="BK20250106001", seats=("A1", "A2"), **overrides):
    fields = dict(
        booking_reference=reference,
        trip_id=TRIP_ID,
        user_id=None,
        contact_email="guest@example.com",
        contact_phone="0901234567",
        status=BookingStatus.PENDING,
        payment_status=PaymentStatus.UNPAID,
        locked_until=NOW + timedelta(minutes=10),
        departure_time=NOW + timedelta(hours=72),
        subtotal=Decimal("200000"),
        service_fee=Decimal("16000"),
        total_price=Decimal("216000"),
        modification_fees=Decimal("0"),
        currency="VND",
    )
    fields.update(overrides)
    booking = await BookingRepository(session).create(**fields)
    await PassengerRepository(session).create_batch(
        booking.booking_id,
        [{"seat_code": seat, "full_name": f"Passenger {seat}", "price": Decimal("100000")} for seat in seats],
    )
    return booking


class TestConditionalUpdates:
    async def test_second_payment_is_rejected(self, session):
        booking = await insert_booking(session)
        repo = BookingRepository(session)

        paid = await repo.update_payment(booking.booking_id, PaymentStatus.PAID, "card", NOW)
        again = await repo.update_payment(booking.booking_id, PaymentStatus.PAID, "card", NOW)

        assert paid.status == BookingStatus.CONFIRMED
        assert paid.locked_until is None
        assert again is None

    async def test_payment_after_cancel_is_rejected(self, session):
        booking = await insert_booking(session)
        repo = BookingRepository(session)
        await repo.cancel(booking.booking_id, "changed plans", Decimal("0"), NOW)

        assert await repo.update_payment(booking.booking_id, PaymentStatus.PAID, "card", NOW) is None

    async def test_second_cancel_is_rejected(self, session):
        booking = await insert_booking(session)
        repo = BookingRepository(session)

        first = await repo.cancel(booking.booking_id, "changed plans", Decimal("0"), NOW)
        second = await repo.cancel(booking.booking_id, "expired", Decimal("0"), NOW)

        assert first.status == BookingStatus.CANCELLED
        assert first.payment_status == PaymentStatus.UNPAID
        assert second is None

    async def test_refunded_cancel_marks_payment_refunded(self, session):
        booking = await insert_booking(session)
        repo = BookingRepository(session)
        await repo.update_payment(booking.booking_id, PaymentStatus.PAID, "card", NOW)

        cancelled = await repo.cancel(booking.booking_id, "sick", Decimal("167800"), NOW)

        assert cancelled.payment_status == PaymentStatus.REFUNDED
        assert cancelled.refund_amount == Decimal("167800")

    async def test_attach_user_only_once(self, session):
        booking = await insert_booking(session)
        repo = BookingRepository(session)

        assert (await repo.update_user_id(booking.booking_id, "user-1")).user_id == "user-1"
        assert await repo.update_user_id(booking.booking_id, "user-2") is None


class TestModificationFees:
    async def test_fees_accumulate_into_total(self, session):
        booking = await insert_booking(session)
        repo = BookingRepository(session)

        await repo.update_modification_fee(booking.booking_id, Decimal("15000"))
        updated = await repo.update_modification_fee(booking.booking_id, Decimal("20000"))

        assert updated.modification_fees == Decimal("35000")
        assert updated.total_price == Decimal("251000")

    async def test_overlapping_modifications_keep_both_fees(self, session, session_factory):
        booking = await insert_booking(session)

        async with session_factory() as first, session_factory() as second:
            first_repo = BookingRepository(first)
            second_repo = BookingRepository(second)
            # Both requests read the booking before either writes
            await first_repo.find_by_id(booking.booking_id)
            await second_repo.find_by_id(booking.booking_id)

            await first_repo.update_modification_fee(booking.booking_id, Decimal("15000"))
            await second_repo.update_modification_fee(booking.booking_id, Decimal("15000"))

        final = await BookingRepository(session).find_by_id(booking.booking_id)
        assert final.modification_fees == Decimal("30000")
        assert final.total_price == Decimal("246000")


class TestQueries:
    async def test_reference_lookup_ignores_case(self, session):
        booking = await insert_booking(session)

        found = await BookingRepository(session).find_by_reference("  bk20250106001 ")

        assert found.booking_id == booking.booking_id

    async def test_seats_of_cancelled_bookings_are_free(self, session):
        repo = BookingRepository(session)
        await insert_booking(session, "BK20250106001", seats=("A1",))
        cancelled = await insert_booking(session, "BK20250106002", seats=("A2",))
        await repo.cancel(cancelled.booking_id, "changed plans", Decimal("0"), NOW)

        taken = await repo.check_seats_availability(TRIP_ID, ["A1", "A2", "A3"])

        assert taken == ["A1"]

    async def test_other_trips_do_not_conflict(self, session):
        await insert_booking(session, seats=("A1",), trip_id="T2")
        assert await BookingRepository(session).check_seats_availability(TRIP_ID, ["A1"]) == []

    async def test_expired_bookings_filter(self, session):
        repo = BookingRepository(session)
        overdue = await insert_booking(session, "BK20250106001", locked_until=NOW - timedelta(minutes=1))
        await insert_booking(session, "BK20250106002", locked_until=NOW + timedelta(minutes=5))
        paid = await insert_booking(session, "BK20250106003", locked_until=NOW - timedelta(minutes=1))
        await repo.update_payment(paid.booking_id, PaymentStatus.PAID, "card", NOW - timedelta(minutes=2))

        expired = await repo.find_expired_bookings(NOW)

        assert [b.booking_id for b in expired] == [overdue.booking_id]

    async def test_user_bookings_are_paginated(self, session):
        for n in range(3):
            await insert_booking(session, f"BK2025010600{n + 1}", user_id="user-1", seats=(f"A{n + 1}",))
        await insert_booking(session, "BK20250106009", user_id="user-2", seats=("B1",))

        bookings, pagination = await BookingRepository(session).find_by_user_id("user-1", page=2, limit=2)

        assert len(bookings) == 1
        assert pagination == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}
