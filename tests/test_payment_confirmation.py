"""
Tests for payment confirmation and the bounded ticket wait.
"""

import pytest

from bus_booking_service.clients.user_client import UserContact
from bus_booking_service.config import Settings
from bus_booking_service.models.booking import BookingStatus, PaymentStatus
from bus_booking_service.utils.exceptions import AlreadyCancelledError, AlreadyPaidError, BookingNotFoundError


class TestConfirmPayment:
    async def test_marks_booking_paid_and_confirmed(self, service, create_booking, settle):
        created = await create_booking()

        details = await service.confirm_payment(created.booking.booking_id, "momo")
        await settle()

        booking = details.booking
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.payment_status == PaymentStatus.PAID
        assert booking.payment_method == "momo"
        assert booking.locked_until is None

    async def test_clears_expiration_and_seat_locks(self, service, create_booking, lock_store, settle):
        created = await create_booking(seats=("A1", "A2"))
        booking_id = created.booking.booking_id

        await service.confirm_payment(booking_id, "card")
        await settle()

        assert str(booking_id) not in lock_store.expirations
        assert lock_store.released_seat_locks == [("T1", ["A1", "A2"])]

    async def test_ticket_urls_returned_when_ready_in_time(self, service, create_booking, settle):
        created = await create_booking()

        details = await service.confirm_payment(created.booking.booking_id, "card")
        await settle()

        assert details.booking.ticket_url.endswith(f"{created.booking.booking_reference}.pdf")
        assert details.booking.qr_code_url.startswith("data:image/png;base64,")

    async def test_slow_ticket_generation_does_not_block(
        self, booking_repo, passenger_repo, trips, lock_store, notifier, tickets, users, clock, settle
    ):
        from bus_booking_service.services.booking_service import BookingService

        service = BookingService(
            booking_repo, passenger_repo, trips, lock_store, notifier, tickets, users,
            settings=Settings(ticket_generation_timeout_ms=50),
            clock=clock,
        )
        created = await service.create_booking(
            trip_id="T1", seats=["A1"],
            passengers=[{"seat_code": "A1", "full_name": "Alice"}],
            contact_email="a@example.com", contact_phone="0901234567",
        )
        tickets.delay = 0.2

        details = await service.confirm_payment(created.booking.booking_id, "card")
        assert details.booking.ticket_url is None

        await settle()
        # Generation kept running after the response
        assert booking_repo.rows[created.booking.booking_id].ticket_url is not None

    async def test_ticket_failure_does_not_fail_confirmation(self, service, create_booking, tickets, settle):
        created = await create_booking()
        tickets.fail = True

        details = await service.confirm_payment(created.booking.booking_id, "card")
        await settle()

        assert details.booking.payment_status == PaymentStatus.PAID
        assert details.booking.ticket_url is None

    async def test_cleanup_failures_are_not_fatal(self, service, create_booking, lock_store, notifier, settle):
        created = await create_booking()
        lock_store.fail = True
        notifier.fail = True

        details = await service.confirm_payment(created.booking.booking_id, "card")
        await settle()

        assert details.booking.status == BookingStatus.CONFIRMED

    async def test_confirmation_email_sent_in_background(self, service, create_booking, notifier, settle):
        created = await create_booking()

        await service.confirm_payment(created.booking.booking_id, "card")
        await settle()

        assert notifier.templates() == ["booking-confirmation"]
        assert notifier.emails[0][0] == "guest@example.com"
        assert notifier.sms == []

    async def test_sms_sent_when_user_opted_in(self, service, create_booking, notifier, users, settle):
        users.contacts["user-1"] = UserContact(user_id="user-1", phone="+84900000001", sms_enabled=True)
        created = await create_booking(user_id="user-1")

        await service.confirm_payment(created.booking.booking_id, "card", user_id="user-1")
        await settle()

        assert [(to, template) for to, template, _ in notifier.sms] == [("+84900000001", "booking-confirmation")]

    async def test_guest_booking_is_attached_to_paying_user(self, service, create_booking, settle):
        created = await create_booking()

        details = await service.confirm_payment(created.booking.booking_id, "card", user_id="user-9")
        await settle()

        assert details.booking.user_id == "user-9"


class TestConfirmPaymentRejections:
    async def test_unknown_booking(self, service):
        from uuid import uuid4

        with pytest.raises(BookingNotFoundError):
            await service.confirm_payment(uuid4(), "card")

    async def test_second_confirmation_is_rejected(self, service, create_booking, tickets, notifier, settle):
        created = await create_booking()
        booking_id = created.booking.booking_id

        await service.confirm_payment(booking_id, "card")
        with pytest.raises(AlreadyPaidError):
            await service.confirm_payment(booking_id, "card")
        await settle()

        assert tickets.calls == [booking_id]
        assert notifier.templates().count("booking-confirmation") == 1

    async def test_cancelled_booking_cannot_be_paid(self, service, create_booking):
        created = await create_booking()
        await service.cancel_booking(created.booking.booking_id)

        with pytest.raises(AlreadyCancelledError):
            await service.confirm_payment(created.booking.booking_id, "card")

    async def test_lost_race_reports_current_state(self, service, create_booking, booking_repo):
        created = await create_booking()
        booking_id = created.booking.booking_id

        original = booking_repo.update_payment

        async def cancelled_meanwhile(*args, **kwargs):
            await booking_repo.cancel(booking_id, "expired", 0, None)
            return await original(*args, **kwargs)

        booking_repo.update_payment = cancelled_meanwhile

        with pytest.raises(AlreadyCancelledError):
            await service.confirm_payment(booking_id, "card")
