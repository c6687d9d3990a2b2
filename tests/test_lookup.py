"""
Tests for booking reads, guest lookup, boarding and trip reminders.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from bus_booking_service.models.booking import BookingStatus
from bus_booking_service.models.passenger import BoardingStatus
from bus_booking_service.utils.exceptions import (
    AuthorizationError,
    BookingNotFoundError,
    ContactMismatchError,
    ErrorCode,
    TicketNotFoundError,
    ValidationError,
)

from conftest import NOW


class TestGetBooking:
    async def test_returns_passengers_and_trip(self, service, create_booking):
        created = await create_booking(seats=("A1", "A2"))

        details = await service.get_booking(created.booking.booking_id)

        assert [p.seat_code for p in details.passengers] == ["A1", "A2"]
        assert details.trip["operator"] == "Sao Viet"

    async def test_trip_outage_degrades_to_no_trip(self, service, create_booking, trips):
        created = await create_booking()
        trips.fail_get_trip = True

        details = await service.get_booking(created.booking.booking_id)
        assert details.trip is None

    async def test_other_user_is_rejected(self, service, create_booking):
        created = await create_booking(user_id="user-1")

        with pytest.raises(AuthorizationError):
            await service.get_booking(created.booking.booking_id, user_id="user-2")

    async def test_unknown(self, service):
        with pytest.raises(BookingNotFoundError):
            await service.get_booking(uuid4())


class TestReferenceLookup:
    async def test_reference_is_case_insensitive(self, service, create_booking):
        created = await create_booking()

        details = await service.get_booking_by_reference("bk20250106001")
        assert details.booking.booking_id == created.booking.booking_id

    async def test_email_must_match(self, service, create_booking):
        await create_booking()

        with pytest.raises(ContactMismatchError):
            await service.get_booking_by_reference("BK20250106001", email="someone@example.com")

    async def test_malformed_reference(self, service):
        with pytest.raises(BookingNotFoundError):
            await service.get_booking_by_reference("not-a-reference")


class TestGuestLookup:
    async def test_matches_phone_in_any_format(self, service, create_booking):
        created = await create_booking()

        details = await service.guest_lookup("BK20250106001", phone="+84 901 234 567")
        assert details.booking.booking_id == created.booking.booking_id

    async def test_matches_email_ignoring_case(self, service, create_booking):
        await create_booking()

        details = await service.guest_lookup("BK20250106001", email="Guest@Example.com")
        assert details.booking.contact_email == "guest@example.com"

    async def test_wrong_phone(self, service, create_booking):
        await create_booking()

        with pytest.raises(ContactMismatchError) as exc_info:
            await service.guest_lookup("BK20250106001", phone="0911111111")
        assert exc_info.value.error_code == ErrorCode.CONTACT_MISMATCH

    async def test_contact_detail_required(self, service):
        with pytest.raises(ValidationError):
            await service.guest_lookup("BK20250106001")

    async def test_unknown_reference(self, service):
        with pytest.raises(BookingNotFoundError):
            await service.guest_lookup("BK20250106999", phone="0901234567")


class TestUserBookings:
    async def test_lists_only_own_bookings(self, service, create_booking):
        await create_booking(seats=("A1",), user_id="user-1")
        await create_booking(seats=("A2",), user_id="user-1")
        await create_booking(seats=("A3",), user_id="user-2")

        bookings, pagination = await service.get_user_bookings("user-1")

        assert len(bookings) == 2
        assert pagination["total"] == 2
        assert {b.user_id for b in bookings} == {"user-1"}

    async def test_status_filter(self, service, create_booking):
        first = await create_booking(seats=("A1",), user_id="user-1")
        await create_booking(seats=("A2",), user_id="user-1")
        await service.cancel_booking(first.booking.booking_id, user_id="user-1")

        bookings, _ = await service.get_user_bookings("user-1", status=BookingStatus.CANCELLED)
        assert [b.booking_id for b in bookings] == [first.booking.booking_id]


class TestBoardingStatus:
    async def test_boarded_is_timestamped(self, service, create_booking, clock):
        created = await create_booking(seats=("A1",))
        ticket_id = created.passengers[0].ticket_id
        clock.advance(hours=2)

        passenger = await service.update_boarding_status(ticket_id, BoardingStatus.BOARDED)

        assert passenger.boarding_status == BoardingStatus.BOARDED
        assert passenger.boarded_at == NOW + timedelta(hours=2)

    async def test_no_show_clears_timestamp(self, service, create_booking):
        created = await create_booking(seats=("A1",))
        ticket_id = created.passengers[0].ticket_id

        passenger = await service.update_boarding_status(ticket_id, BoardingStatus.NO_SHOW)
        assert passenger.boarded_at is None

    async def test_unknown_ticket(self, service):
        with pytest.raises(TicketNotFoundError):
            await service.update_boarding_status(uuid4(), BoardingStatus.BOARDED)


class TestTripReminders:
    async def test_reminds_paid_bookings_departing_soon(self, service, create_booking, trips, notifier, settle):
        trips.add_trip(departure=NOW + timedelta(hours=24, minutes=10))
        paid = await create_booking(seats=("A1",))
        await create_booking(seats=("A2",))
        await service.confirm_payment(paid.booking.booking_id, "card")
        await settle()

        sent = await service.send_trip_reminders()

        assert sent == 1
        to, template, data = notifier.sms[0]
        assert (to, template) == ("0901234567", "trip-reminder")
        assert data["bookingReference"] == paid.booking.booking_reference
        assert data["hoursUntilDeparture"] == 24

    async def test_failed_sms_is_not_counted(self, service, create_booking, trips, notifier, settle):
        trips.add_trip(departure=NOW + timedelta(hours=2))
        created = await create_booking(seats=("A1",))
        await service.confirm_payment(created.booking.booking_id, "card")
        await settle()
        notifier.fail = True

        assert await service.send_trip_reminders() == 0
