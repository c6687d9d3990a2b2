"""
Booking lifecycle orchestration.

BookingService holds no request state: every operation re-reads the booking
from the repository before mutating it, and collaborators are injected so the
same class serves API requests, Celery jobs and tests.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from ..config import Settings, get_settings
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.passenger import BoardingStatus, Passenger
from ..schemas.trip import TripDetails
from ..utils.background import best_effort, spawn, wait_at_most
from ..utils.exceptions import (
    AlreadyCancelledError,
    AlreadyPaidError,
    AuthorizationError,
    BookingNotFoundError,
    ContactMismatchError,
    ErrorCode,
    InvalidPricingError,
    SeatNotAvailableError,
    SeatsAlreadyBookedError,
    TicketNotFoundError,
    TripNotFoundError,
    ValidationError,
)
from ..utils.helpers import (
    calculate_lock_expiration,
    calculate_service_fee,
    ensure_aware,
    generate_booking_reference,
    generate_unique_reference,
    is_valid_reference,
    normalize_phone,
    to_money,
    utc_now,
)
from ..utils.logging_config import log_business_event, log_performance
from . import cancellation_policy, modification_policy

logger = logging.getLogger(__name__)

EXPIRED_REASON = "expired"


@dataclass
class BookingDetails:
    booking: Booking
    passengers: List[Passenger]
    trip: Optional[Dict[str, Any]] = None


@dataclass
class CancellationResult:
    booking: Booking
    refund: Dict[str, Any]
    released_seats: List[str]


@dataclass
class ModificationResult:
    booking: Booking
    passengers: List[Passenger]
    modifications: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    fees: Dict[str, Any] = field(default_factory=dict)


class BookingService:
    """Booking lifecycle: create, confirm, cancel, expire and modify."""

    def __init__(
        self,
        bookings,
        passengers,
        trips,
        lock_store,
        notifier,
        tickets,
        users=None,
        settings: Optional[Settings] = None,
        reference_generator: Optional[Callable[[], str]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.bookings = bookings
        self.passengers = passengers
        self.trips = trips
        self.lock_store = lock_store
        self.notifier = notifier
        self.tickets = tickets
        self.users = users
        self.settings = settings or get_settings()
        self.reference_generator = reference_generator or (
            lambda: generate_booking_reference(self.settings.booking_reference_prefix, self.clock())
        )
        self.sleep = sleep
        self.clock = clock

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_booking(
        self,
        trip_id: str,
        seats: Sequence[str],
        passengers: Sequence[Dict[str, Any]],
        contact_email: str,
        contact_phone: str,
        user_id: Optional[str] = None,
    ) -> BookingDetails:
        """
        Create a pending booking holding ``seats`` on a trip.

        Args:
            trip_id: Trip to book
            seats: Seat codes requested
            passengers: One dict per seat with seat_code, full_name and
                optional phone/document_id
            contact_email: Where tickets and notices go for guests
            contact_phone: Contact number for SMS notices
            user_id: Owning user, None for guest checkout

        Returns:
            The booking, its passengers and a trip summary

        Raises:
            TripNotFoundError: If the trip service does not know the trip
            SeatsAlreadyBookedError: If any seat belongs to an active booking
            InvalidPricingError: If the trip has no positive base price
            ReferenceGenerationError: If no unique reference could be drawn
            ValidationError: If passenger data is malformed
        """
        seats = list(seats)
        passenger_rows = self._validate_passengers(seats, passengers)

        trip = await self.trips.get_trip(trip_id)
        if trip is None:
            raise TripNotFoundError(trip_id)

        already_booked = await self.bookings.check_seats_availability(trip_id, seats)
        if already_booked:
            raise SeatsAlreadyBookedError(trip_id, already_booked)

        base_price = Decimal(trip.base_price)
        if base_price <= 0:
            raise InvalidPricingError(trip_id, trip.base_price)

        subtotal = to_money(base_price * len(seats))
        service_fee = calculate_service_fee(
            subtotal,
            self.settings.service_fee_percentage,
            self.settings.service_fee_fixed,
        )
        total_price = subtotal + service_fee

        reference = await generate_unique_reference(
            self.bookings.reference_exists,
            generate=self.reference_generator,
            sleep=self.sleep,
            max_attempts=self.settings.reference_max_attempts,
            delay_seconds=self.settings.reference_retry_delay_ms / 1000,
        )

        now = self.clock()
        locked_until = calculate_lock_expiration(now, self.settings.booking_lock_duration_minutes)

        booking = await self.bookings.create(
            booking_reference=reference,
            trip_id=str(trip_id),
            user_id=user_id,
            contact_email=contact_email,
            contact_phone=contact_phone,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.UNPAID,
            locked_until=locked_until,
            departure_time=trip.departure_time,
            subtotal=subtotal,
            service_fee=service_fee,
            total_price=total_price,
            modification_fees=Decimal("0"),
            currency=self.settings.currency,
        )

        for row in passenger_rows:
            # Price always comes from the trip, never from the client
            row["price"] = base_price
        created = await self.passengers.create_batch(booking.booking_id, passenger_rows)

        await best_effort(
            "schedule booking expiration",
            self.lock_store.schedule_expiration(booking.booking_id, locked_until, self.clock()),
            booking_id=booking.booking_id,
        )

        logger.info(f"Created booking {reference} for trip {trip_id} with seats {seats}")
        log_business_event(
            "booking_created",
            {"booking_id": str(booking.booking_id), "reference": reference, "trip_id": str(trip_id),
             "seats": seats, "total_price": str(total_price)},
            user_id=user_id,
        )
        return BookingDetails(booking=booking, passengers=created, trip=trip.summary())

    def _validate_passengers(
        self,
        seats: List[str],
        passengers: Sequence[Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        field_errors: Dict[str, List[str]] = {}

        if not seats:
            field_errors["seats"] = ["At least one seat is required"]
        elif len(set(seats)) != len(seats):
            field_errors["seats"] = ["Seats must not repeat"]

        rows = []
        for index, passenger in enumerate(passengers):
            seat_code = (passenger.get("seat_code") or "").strip()
            full_name = (passenger.get("full_name") or "").strip()
            if not seat_code:
                field_errors.setdefault(f"passengers.{index}", []).append(
                    f"Passenger {index + 1}: seat_code is required"
                )
            if not full_name:
                field_errors.setdefault(f"passengers.{index}", []).append(
                    f"Passenger {index + 1}: full_name is required"
                )
            rows.append({
                "seat_code": seat_code,
                "full_name": full_name,
                "phone": passenger.get("phone"),
                "document_id": passenger.get("document_id"),
            })

        if not field_errors and sorted(row["seat_code"] for row in rows) != sorted(seats):
            field_errors["passengers"] = ["Each requested seat needs exactly one passenger"]

        if field_errors:
            raise ValidationError("Invalid passenger data", field_errors=field_errors)
        return rows

    # ------------------------------------------------------------------
    # Payment confirmation
    # ------------------------------------------------------------------

    async def confirm_payment(
        self,
        booking_id: UUID,
        payment_method: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> BookingDetails:
        """
        Mark a pending booking as paid and confirmed.

        Ticket generation gets a bounded wait; if it finishes in time the
        returned booking carries ticket URLs, otherwise it keeps running in
        the background and the booking can be re-fetched later.

        Raises:
            BookingNotFoundError: If the booking does not exist
            AlreadyCancelledError: If the booking was cancelled
            AlreadyPaidError: If the booking was already paid
        """
        booking = await self._get_booking_or_raise(booking_id)

        if booking.status == BookingStatus.CANCELLED:
            raise AlreadyCancelledError(str(booking_id))
        if booking.payment_status == PaymentStatus.PAID:
            raise AlreadyPaidError(str(booking_id))

        if booking.user_id is None and user_id:
            await best_effort(
                "attach user to guest booking",
                self.bookings.update_user_id(booking_id, user_id),
                booking_id=booking_id,
            )

        updated = await self.bookings.update_payment(
            booking_id, PaymentStatus.PAID, payment_method, self.clock()
        )
        if updated is None:
            # Lost a race with another confirmation or a cancellation
            current = await self._get_booking_or_raise(booking_id)
            if current.status == BookingStatus.CANCELLED:
                raise AlreadyCancelledError(str(booking_id))
            raise AlreadyPaidError(str(booking_id))

        booking = await self._get_booking_or_raise(booking_id)
        passengers = await self.passengers.find_by_booking_id(booking_id)
        seat_codes = [p.seat_code for p in passengers]

        await best_effort(
            "clear booking expiration",
            self.lock_store.clear_expiration(booking_id),
            booking_id=booking_id,
        )
        await best_effort(
            "release seat lock keys",
            self.lock_store.release_seat_locks(booking.trip_id, seat_codes),
            booking_id=booking_id,
        )

        log_business_event(
            "booking_paid",
            {"booking_id": str(booking_id), "reference": booking.booking_reference,
             "payment_method": payment_method},
            user_id=booking.user_id,
        )

        ticket_task = spawn(
            self.tickets.process_ticket_generation(booking_id),
            name=f"ticket-generation-{booking.booking_reference}",
        )
        refreshed = await wait_at_most(ticket_task, self.settings.ticket_generation_timeout_ms / 1000)
        if refreshed is not None:
            booking = refreshed
            logger.info(f"Ticket ready for booking {booking.booking_reference} before response")

        spawn(
            self._send_confirmation(booking, passengers),
            name=f"confirmation-notice-{booking.booking_reference}",
        )
        return BookingDetails(booking=booking, passengers=passengers)

    async def _send_confirmation(self, booking: Booking, passengers: List[Passenger]) -> None:
        data = {
            "bookingReference": booking.booking_reference,
            "bookingId": str(booking.booking_id),
            "tripId": booking.trip_id,
            "totalPrice": str(booking.total_price),
            "currency": booking.currency,
            "seats": [p.seat_code for p in passengers],
            "ticketUrl": booking.ticket_url,
        }
        await best_effort(
            "send confirmation email",
            self.notifier.send_email(booking.contact_email, "booking-confirmation", data),
            booking_id=booking.booking_id,
        )

        if booking.user_id and self.users is not None:
            contact = await best_effort(
                "look up notification preferences",
                self.users.get_user(booking.user_id),
                booking_id=booking.booking_id,
            )
            if contact is not None and contact.sms_enabled:
                await best_effort(
                    "send confirmation sms",
                    self.notifier.send_sms(contact.phone or booking.contact_phone, "booking-confirmation", data),
                    booking_id=booking.booking_id,
                )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel_booking(
        self,
        booking_id: UUID,
        user_id: Optional[str] = None,
        reason: Optional[str] = None,
        request_refund: bool = True,
    ) -> CancellationResult:
        """
        Cancel a booking and compute its refund.

        Raises:
            BookingNotFoundError: If the booking does not exist
            AuthorizationError: If the caller does not own the booking
            TripNotFoundError: If the trip can no longer be resolved
            AlreadyCancelledError: If the booking was already cancelled
            PolicyViolationError: If the policy forbids cancelling now
        """
        booking = await self._get_booking_or_raise(booking_id)
        self._check_ownership(booking, user_id)

        trip = await self._get_trip_info(booking)
        now = self.clock()
        calculation = cancellation_policy.validate_cancellation(booking, trip.departure_time, now)
        refund = calculation.breakdown(refund_requested=request_refund)
        refund_amount = refund["total_refund"]

        cancelled = await self.bookings.cancel(
            booking_id,
            reason or "Cancelled by customer",
            refund_amount,
            now,
        )
        if cancelled is None:
            raise AlreadyCancelledError(str(booking_id))

        passengers = await self.passengers.find_by_booking_id(booking_id)
        seat_codes = [p.seat_code for p in passengers]
        await self._release_everything(cancelled, seat_codes, session_id=user_id or cancelled.user_id)

        await best_effort(
            "send cancellation email",
            self.notifier.send_email(
                cancelled.contact_email,
                "booking-cancellation",
                {
                    "bookingReference": cancelled.booking_reference,
                    "refundAmount": str(refund_amount),
                    "refundStatus": refund["status"],
                    "tier": refund["tier"],
                    "trip": trip.summary(),
                },
            ),
            booking_id=booking_id,
        )

        logger.info(f"Cancelled booking {cancelled.booking_reference}, refund {refund_amount}")
        log_business_event(
            "booking_cancelled",
            {"booking_id": str(booking_id), "reference": cancelled.booking_reference,
             "refund_amount": str(refund_amount), "tier": refund["tier"]},
            user_id=user_id,
        )
        return CancellationResult(booking=cancelled, refund=refund, released_seats=seat_codes)

    async def get_cancellation_preview(self, booking_id: UUID, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Refund the caller would get by cancelling now, without cancelling."""
        booking = await self._get_booking_or_raise(booking_id)
        self._check_ownership(booking, user_id)
        trip = await self._get_trip_info(booking)

        calculation = cancellation_policy.calculate_refund(booking, trip.departure_time, self.clock())
        can_cancel = calculation.can_cancel and booking.status not in (
            BookingStatus.CANCELLED, BookingStatus.COMPLETED
        )
        return {
            "booking_id": booking.booking_id,
            "booking_reference": booking.booking_reference,
            "can_cancel": can_cancel,
            "hours_until_departure": round(calculation.hours_until_departure, 2),
            "refund": calculation.breakdown(),
        }

    # ------------------------------------------------------------------
    # Expiration sweep
    # ------------------------------------------------------------------

    async def process_expired_bookings(self, limit: Optional[int] = None) -> int:
        """
        Cancel pending bookings whose hold elapsed without payment.

        Each booking is handled on its own; one failure never stops the
        sweep. Never raises.

        Returns:
            Number of bookings cancelled by this run
        """
        started = time.monotonic()
        found = cancelled = failed = 0

        try:
            expired = await self.bookings.find_expired_bookings(
                self.clock(), limit or self.settings.expired_batch_limit
            )
            found = len(expired)
            if not expired:
                logger.debug("No expired bookings found")
                return 0

            logger.info(f"Found {found} expired bookings")
            for candidate in expired:
                try:
                    if await self._expire_booking(candidate.booking_id):
                        cancelled += 1
                except Exception as e:
                    failed += 1
                    logger.error(
                        f"Failed to expire booking {candidate.booking_id}: {e}",
                        extra={"booking_id": str(candidate.booking_id)},
                    )
        except Exception as e:
            logger.error(f"Expiration sweep aborted: {e}", exc_info=True)
            return 0
        finally:
            if found:
                log_performance(
                    "expiration_sweep",
                    time.monotonic() - started,
                    found=found,
                    cancelled=cancelled,
                    failed=failed,
                )

        return cancelled

    async def _expire_booking(self, booking_id: UUID) -> bool:
        booking = await self.bookings.find_by_id(booking_id)
        if (
            booking is None
            or booking.status != BookingStatus.PENDING
            or booking.payment_status == PaymentStatus.PAID
        ):
            logger.debug(f"Skipping booking {booking_id}: no longer an unpaid pending booking")
            return False

        passengers = await self.passengers.find_by_booking_id(booking_id)
        seat_codes = [p.seat_code for p in passengers]

        trip = await best_effort(
            "fetch trip for expiration notice",
            self.trips.get_trip(booking.trip_id),
            booking_id=booking_id,
        )

        expired = await self.bookings.cancel(booking_id, EXPIRED_REASON, Decimal("0"), self.clock())
        if expired is None:
            # Someone else cancelled it between the read and the write
            return False

        await self._release_everything(expired, seat_codes, session_id=expired.user_id)

        await best_effort(
            "send expiration email",
            self.notifier.send_email(
                expired.contact_email,
                "booking-expired",
                {
                    "bookingReference": expired.booking_reference,
                    "seats": seat_codes,
                    "trip": trip.summary() if trip else {"trip_id": expired.trip_id},
                },
            ),
            booking_id=booking_id,
        )

        logger.info(f"Expired booking {expired.booking_reference}, released seats {seat_codes}")
        log_business_event(
            "booking_expired",
            {"booking_id": str(booking_id), "reference": expired.booking_reference, "seats": seat_codes},
            user_id=expired.user_id,
        )
        return True

    async def _release_everything(self, booking: Booking, seat_codes: List[str], session_id: Optional[str]) -> None:
        await best_effort(
            "clear booking expiration",
            self.lock_store.clear_expiration(booking.booking_id),
            booking_id=booking.booking_id,
        )
        if seat_codes:
            await best_effort(
                "release seats on trip service",
                self.trips.release_seats(booking.trip_id, seat_codes, session_id),
                booking_id=booking.booking_id,
                seats=",".join(seat_codes),
            )

    # ------------------------------------------------------------------
    # Modification
    # ------------------------------------------------------------------

    async def modify_booking(
        self,
        booking_id: UUID,
        user_id: Optional[str] = None,
        seat_changes: Sequence[Dict[str, Any]] = (),
        passenger_updates: Sequence[Dict[str, Any]] = (),
    ) -> ModificationResult:
        """
        Change seats and/or passenger details on a booking.

        Seat changes are all-or-nothing: new seats are locked first, and if
        any lock or write fails, the seats locked by this call are released
        and passenger seats are restored before the error propagates.
        Passenger patches are checked before any seat moves, so a bad
        patch leaves the booking untouched.

        Raises:
            BookingNotFoundError: If the booking does not exist
            AuthorizationError: If the caller does not own the booking
            TripNotFoundError: If the trip can no longer be resolved
            PolicyViolationError: If the current tier forbids the change
            TicketNotFoundError: If a ticket is not part of this booking
            SeatNotAvailableError: If a target seat cannot be held
        """
        if not seat_changes and not passenger_updates:
            raise ValidationError("No modifications requested")

        booking = await self._get_booking_or_raise(booking_id)
        self._check_ownership(booking, user_id)
        trip = await self._get_trip_info(booking)

        fees = modification_policy.validate_modification(
            booking,
            trip.departure_time,
            self.clock(),
            seat_change_count=len(seat_changes),
            passenger_update_count=len(passenger_updates),
        )

        # Passenger patches are resolved before any seat is locked or moved
        planned_updates = await self._prepare_passenger_updates(booking, passenger_updates)

        applied_seats = await self._apply_seat_changes(booking, seat_changes, user_id)
        applied_updates = await self._apply_passenger_updates(planned_updates)

        if fees.total_fee > 0:
            updated = await self.bookings.update_modification_fee(booking_id, fees.total_fee)
            if updated is not None:
                booking = updated

        if booking.is_paid:
            regenerated = await best_effort(
                "regenerate e-ticket",
                self.tickets.process_ticket_generation(booking_id),
                booking_id=booking_id,
            )
            if regenerated is not None:
                booking = regenerated

        modifications = {"seat_changes": applied_seats, "passenger_updates": applied_updates}
        await best_effort(
            "send modification email",
            self.notifier.send_email(
                booking.contact_email,
                "booking-modification",
                {
                    "bookingReference": booking.booking_reference,
                    "seatChanges": applied_seats,
                    "passengerUpdates": [u["ticket_id"] for u in applied_updates],
                    "modificationFee": str(fees.total_fee),
                    "totalPrice": str(booking.total_price),
                },
            ),
            booking_id=booking_id,
        )

        booking = await self._get_booking_or_raise(booking_id)
        passengers = await self.passengers.find_by_booking_id(booking_id)

        log_business_event(
            "booking_modified",
            {"booking_id": str(booking_id), "reference": booking.booking_reference,
             "seat_changes": len(applied_seats), "passenger_updates": len(applied_updates),
             "fee": str(fees.total_fee)},
            user_id=user_id,
        )
        return ModificationResult(
            booking=booking,
            passengers=passengers,
            modifications=modifications,
            fees=fees.breakdown(),
        )

    async def get_modification_preview(self, booking_id: UUID, user_id: Optional[str] = None) -> Dict[str, Any]:
        booking = await self._get_booking_or_raise(booking_id)
        self._check_ownership(booking, user_id)
        trip = await self._get_trip_info(booking)

        fees = modification_policy.calculate_modification_fees(trip.departure_time, self.clock())
        tier = fees.tier
        modifiable = (
            booking.status not in (BookingStatus.CANCELLED, BookingStatus.COMPLETED)
            and fees.hours_until_departure >= 0
            and tier.allows_modification
        )
        return {
            "booking_id": booking.booking_id,
            "booking_reference": booking.booking_reference,
            "can_modify": modifiable,
            "allow_seat_change": modifiable and tier.allow_seat_change,
            "allow_passenger_update": modifiable and tier.allow_passenger_update,
            "hours_until_departure": round(fees.hours_until_departure, 2),
            "tier": tier.name,
            "tier_description": tier.description,
            "base_fee": tier.base_fee,
            "seat_change_fee": tier.seat_change_fee,
        }

    async def _apply_seat_changes(
        self,
        booking: Booking,
        seat_changes: Sequence[Dict[str, Any]],
        user_id: Optional[str],
    ) -> List[Dict[str, Any]]:
        if not seat_changes:
            return []

        session_id = user_id or booking.user_id
        planned: List[Dict[str, Any]] = []
        locked: List[str] = []

        try:
            for change in seat_changes:
                passenger = await self._get_owned_passenger(booking, change["ticket_id"])
                new_seat = str(change["new_seat_code"]).strip()

                seat_map = await self.trips.get_seat_map(booking.trip_id)
                seat = seat_map.find(new_seat)
                if seat is None:
                    raise ValidationError(
                        f"Seat {new_seat} does not exist on this trip",
                        details={"seat_code": new_seat},
                    )
                if not seat.is_available:
                    raise SeatNotAvailableError(new_seat, seat.status)

                await self.trips.lock_seats(booking.trip_id, [new_seat], session_id)
                locked.append(new_seat)
                planned.append({
                    "ticket_id": passenger.ticket_id,
                    "old_seat_code": passenger.seat_code,
                    "new_seat_code": new_seat,
                })
        except Exception:
            await self._rollback_seat_locks(booking, locked, session_id)
            raise

        written: List[Dict[str, Any]] = []
        try:
            for item in planned:
                await self.passengers.update_seat(item["ticket_id"], item["new_seat_code"])
                written.append(item)
        except Exception:
            for item in written:
                await best_effort(
                    "restore passenger seat",
                    self.passengers.update_seat(item["ticket_id"], item["old_seat_code"]),
                    booking_id=booking.booking_id,
                )
            await self._rollback_seat_locks(booking, locked, session_id)
            raise

        old_seats = [item["old_seat_code"] for item in planned]
        await best_effort(
            "release replaced seats",
            self.trips.release_seats(booking.trip_id, old_seats, session_id),
            booking_id=booking.booking_id,
            seats=",".join(old_seats),
        )
        return [
            {
                "ticket_id": str(item["ticket_id"]),
                "old_seat_code": item["old_seat_code"],
                "new_seat_code": item["new_seat_code"],
            }
            for item in planned
        ]

    async def _rollback_seat_locks(self, booking: Booking, locked: List[str], session_id: Optional[str]) -> None:
        if not locked:
            return
        logger.warning(f"Rolling back seat locks {locked} for booking {booking.booking_reference}")
        await best_effort(
            "release seats locked by failed modification",
            self.trips.release_seats(booking.trip_id, locked, session_id),
            booking_id=booking.booking_id,
            seats=",".join(locked),
        )

    async def _prepare_passenger_updates(
        self,
        booking: Booking,
        passenger_updates: Sequence[Dict[str, Any]],
    ) -> List[Tuple[Passenger, Dict[str, Any]]]:
        planned = []
        for patch in passenger_updates:
            passenger = await self._get_owned_passenger(booking, patch["ticket_id"])
            fields = {
                key: patch.get(key)
                for key in ("full_name", "phone", "document_id")
                if patch.get(key) is not None
            }
            if "full_name" in fields and not str(fields["full_name"]).strip():
                raise ValidationError("full_name must not be empty", details={"ticket_id": str(passenger.ticket_id)})
            planned.append((passenger, fields))
        return planned

    async def _apply_passenger_updates(
        self,
        planned: Sequence[Tuple[Passenger, Dict[str, Any]]],
    ) -> List[Dict[str, Any]]:
        applied = []
        for passenger, fields in planned:
            await self.passengers.update(passenger.ticket_id, **fields)
            applied.append({"ticket_id": str(passenger.ticket_id), "fields": sorted(fields)})
        return applied

    async def _get_owned_passenger(self, booking: Booking, ticket_id) -> Passenger:
        passenger = await self.passengers.find_by_ticket_id(ticket_id)
        if passenger is None or passenger.booking_id != booking.booking_id:
            raise TicketNotFoundError(str(ticket_id))
        return passenger

    # ------------------------------------------------------------------
    # Reads and small updates
    # ------------------------------------------------------------------

    async def get_booking(self, booking_id: UUID, user_id: Optional[str] = None) -> BookingDetails:
        booking = await self._get_booking_or_raise(booking_id)
        self._check_ownership(booking, user_id)
        return await self._with_details(booking)

    async def get_booking_by_reference(self, reference: str, email: Optional[str] = None) -> BookingDetails:
        if not is_valid_reference(reference):
            raise BookingNotFoundError(reference)
        booking = await self.bookings.find_by_reference(reference)
        if booking is None:
            raise BookingNotFoundError(reference)
        if email and booking.contact_email.strip().lower() != email.strip().lower():
            raise ContactMismatchError("email")
        return await self._with_details(booking)

    async def guest_lookup(
        self,
        reference: str,
        phone: Optional[str] = None,
        email: Optional[str] = None,
    ) -> BookingDetails:
        """
        Find a booking by reference plus the contact phone or email.

        Raises:
            ValidationError: If neither phone nor email is given
            BookingNotFoundError: If no booking has this reference
            ContactMismatchError: If the contact detail does not match
        """
        if not phone and not email:
            raise ValidationError("Phone or email is required to look up a booking")
        if not is_valid_reference(reference):
            raise BookingNotFoundError(reference)

        booking = await self.bookings.find_by_reference(reference)
        if booking is None:
            raise BookingNotFoundError(reference)

        if phone and normalize_phone(phone) != normalize_phone(booking.contact_phone):
            raise ContactMismatchError("phone")
        if email and email.strip().lower() != booking.contact_email.strip().lower():
            raise ContactMismatchError("email")

        return await self._with_details(booking)

    async def get_user_bookings(
        self,
        user_id: str,
        status: Optional[BookingStatus] = None,
        page: int = 1,
        limit: int = 10,
        sort_order: str = "desc",
    ):
        return await self.bookings.find_by_user_id(
            user_id, status=status, page=page, limit=limit, sort_order=sort_order
        )

    async def update_boarding_status(self, ticket_id: UUID, boarding_status: BoardingStatus) -> Passenger:
        passenger = await self.passengers.find_by_ticket_id(ticket_id)
        if passenger is None:
            raise TicketNotFoundError(str(ticket_id))

        boarded_at = self.clock() if boarding_status == BoardingStatus.BOARDED else None
        updated = await self.passengers.update_boarding_status(ticket_id, boarding_status, boarded_at)
        logger.info(f"Ticket {ticket_id} boarding status -> {boarding_status.value}")
        return updated or passenger

    # ------------------------------------------------------------------
    # Trip reminders
    # ------------------------------------------------------------------

    async def send_trip_reminders(self, hours_ahead: Sequence[int] = (24, 2), window_minutes: int = 30) -> int:
        """
        SMS reminders for confirmed bookings departing in ``hours_ahead``.

        Returns:
            Number of reminders sent
        """
        sent = 0
        now = self.clock()
        window = timedelta(minutes=window_minutes)

        for hours in hours_ahead:
            target = now + timedelta(hours=hours)
            bookings = await self.bookings.find_departing_between(target - window, target + window)
            logger.info(f"Found {len(bookings)} bookings departing in ~{hours}h")

            for booking in bookings:
                if not booking.contact_phone:
                    continue
                try:
                    await self.notifier.send_sms(
                        booking.contact_phone,
                        "trip-reminder",
                        {
                            "bookingReference": booking.booking_reference,
                            "tripId": booking.trip_id,
                            "departureTime": ensure_aware(booking.departure_time).isoformat(),
                            "hoursUntilDeparture": hours,
                        },
                    )
                    sent += 1
                except Exception as e:
                    logger.warning(
                        f"Trip reminder for {booking.booking_reference} failed: {e}",
                        extra={"booking_id": str(booking.booking_id)},
                    )
        return sent

    # ------------------------------------------------------------------

    async def _get_booking_or_raise(self, booking_id: UUID) -> Booking:
        booking = await self.bookings.find_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        return booking

    async def _get_trip_info(self, booking: Booking) -> TripDetails:
        trip = await self.trips.get_trip(booking.trip_id)
        if trip is None or trip.departure_time is None:
            raise TripNotFoundError(booking.trip_id, error_code=ErrorCode.TRIP_INFO_NOT_FOUND)
        return trip

    @staticmethod
    def _check_ownership(booking: Booking, user_id: Optional[str]) -> None:
        if booking.user_id and user_id and booking.user_id != user_id:
            raise AuthorizationError()

    async def _with_details(self, booking: Booking) -> BookingDetails:
        passengers = await self.passengers.find_by_booking_id(booking.booking_id)
        trip = await best_effort(
            "fetch trip details",
            self.trips.get_trip(booking.trip_id),
            booking_id=booking.booking_id,
        )
        return BookingDetails(booking=booking, passengers=passengers, trip=trip.summary() if trip else None)
