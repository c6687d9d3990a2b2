"""
Tiered cancellation and refund policy.

Tiers are ordered most generous first; the first tier whose lower bound is
met by the hours left before departure applies.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..utils.exceptions import AlreadyCancelledError, PolicyViolationError
from ..utils.helpers import hours_until, to_money

PROCESSING_TIME = "3-5 business days"


@dataclass(frozen=True)
class RefundTier:
    name: str
    min_hours: float
    max_hours: Optional[float]
    refund_percentage: int
    processing_fee: Decimal
    description: str


CANCELLATION_TIERS: List[RefundTier] = [
    RefundTier("Full Refund", 48, None, 100, Decimal("0"),
               "Cancel 48 hours or more before departure for a full refund"),
    RefundTier("Standard Cancellation", 24, 48, 80, Decimal("5000"),
               "Cancel 24-48 hours before departure for an 80% refund"),
    RefundTier("Late Cancellation", 6, 24, 50, Decimal("10000"),
               "Cancel 6-24 hours before departure for a 50% refund"),
    RefundTier("Very Late Cancellation", 2, 6, 20, Decimal("15000"),
               "Cancel 2-6 hours before departure for a 20% refund"),
    RefundTier("No Refund", 0, 2, 0, Decimal("0"),
               "Cancellations less than 2 hours before departure are not refunded"),
]


@dataclass
class RefundCalculation:
    tier: RefundTier
    hours_until_departure: float
    can_cancel: bool
    can_refund: bool
    original_amount: Decimal
    refund_amount: Decimal
    processing_fee: Decimal
    total_refund: Decimal

    def breakdown(self, refund_requested: bool = True) -> Dict[str, Any]:
        """Refund breakdown returned to the caller."""
        total = self.total_refund if refund_requested and self.can_refund else Decimal("0")
        return {
            "tier": self.tier.name,
            "tier_description": self.tier.description,
            "original_amount": self.original_amount,
            "refund_amount": self.refund_amount if total > 0 else Decimal("0"),
            "processing_fee": self.processing_fee if total > 0 else Decimal("0"),
            "total_refund": total,
            "refund_percentage": self.tier.refund_percentage,
            "processing_time": PROCESSING_TIME,
            "status": "processing" if total > 0 else "no_refund",
        }


def get_cancellation_tier(hours: float) -> RefundTier:
    for tier in CANCELLATION_TIERS:
        if hours >= tier.min_hours:
            return tier
    # Departed trips fall into the last bucket
    return CANCELLATION_TIERS[-1]


def calculate_refund(booking: Booking, departure_time: datetime, now: datetime) -> RefundCalculation:
    """Refund for cancelling ``booking`` at ``now``."""
    hours = hours_until(departure_time, now)
    tier = get_cancellation_tier(hours)
    original = Decimal(booking.total_price)

    refund = to_money(original * tier.refund_percentage / 100)
    total = max(Decimal("0"), refund - tier.processing_fee)
    paid = booking.payment_status == PaymentStatus.PAID

    return RefundCalculation(
        tier=tier,
        hours_until_departure=hours,
        can_cancel=hours >= 0,
        can_refund=paid and total > 0,
        original_amount=original,
        refund_amount=refund,
        processing_fee=tier.processing_fee,
        total_refund=total if paid else Decimal("0"),
    )


def validate_cancellation(booking: Booking, departure_time: datetime, now: datetime) -> RefundCalculation:
    """
    Check that ``booking`` may be cancelled now.

    Raises:
        AlreadyCancelledError: If the booking is already cancelled
        PolicyViolationError: If the booking is completed or the trip has departed
    """
    if booking.status == BookingStatus.CANCELLED:
        raise AlreadyCancelledError(str(booking.booking_id))
    if booking.status == BookingStatus.COMPLETED:
        raise PolicyViolationError("Cannot cancel a completed booking")

    calculation = calculate_refund(booking, departure_time, now)
    if not calculation.can_cancel:
        raise PolicyViolationError(
            "Cannot cancel a booking after the trip has departed",
            tier=calculation.tier.name,
        )
    return calculation


def policy_table() -> List[Dict[str, Any]]:
    return [
        {
            "name": tier.name,
            "min_hours": tier.min_hours,
            "max_hours": tier.max_hours,
            "refund_percentage": tier.refund_percentage,
            "processing_fee": tier.processing_fee,
            "description": tier.description,
        }
        for tier in CANCELLATION_TIERS
    ]
