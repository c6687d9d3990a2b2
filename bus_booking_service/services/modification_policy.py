"""
Tiered modification fee policy.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..models.booking import Booking, BookingStatus
from ..utils.exceptions import AlreadyCancelledError, PolicyViolationError
from ..utils.helpers import hours_until


@dataclass(frozen=True)
class ModificationTier:
    name: str
    min_hours: float
    max_hours: Optional[float]
    base_fee: Decimal
    seat_change_fee: Decimal
    allow_seat_change: bool
    allow_passenger_update: bool
    description: str

    @property
    def allows_modification(self) -> bool:
        return self.allow_seat_change or self.allow_passenger_update


MODIFICATION_TIERS: List[ModificationTier] = [
    ModificationTier("Free Modification", 48, None, Decimal("0"), Decimal("0"), True, True,
                     "Free changes 48 hours or more before departure"),
    ModificationTier("Standard Modification", 24, 48, Decimal("10000"), Decimal("5000"), True, True,
                     "Changes 24-48 hours before departure"),
    ModificationTier("Late Modification", 6, 24, Decimal("20000"), Decimal("10000"), True, True,
                     "Changes 6-24 hours before departure"),
    ModificationTier("Very Late Modification", 2, 6, Decimal("30000"), Decimal("15000"), True, True,
                     "Changes 2-6 hours before departure"),
    ModificationTier("No Modifications Allowed", 0, 2, Decimal("0"), Decimal("0"), False, False,
                     "No changes less than 2 hours before departure"),
]


@dataclass
class ModificationFees:
    tier: ModificationTier
    hours_until_departure: float
    seat_change_count: int
    base_fee: Decimal
    seat_change_fee: Decimal
    total_fee: Decimal

    def breakdown(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.name,
            "tier_description": self.tier.description,
            "base_fee": self.base_fee,
            "seat_change_fee": self.seat_change_fee,
            "seat_change_count": self.seat_change_count,
            "total_fee": self.total_fee,
        }


def get_modification_tier(hours: float) -> ModificationTier:
    for tier in MODIFICATION_TIERS:
        if hours >= tier.min_hours:
            return tier
    return MODIFICATION_TIERS[-1]


def calculate_modification_fees(
    departure_time: datetime,
    now: datetime,
    seat_change_count: int = 0,
) -> ModificationFees:
    hours = hours_until(departure_time, now)
    tier = get_modification_tier(hours)
    seat_fee = tier.seat_change_fee * seat_change_count

    return ModificationFees(
        tier=tier,
        hours_until_departure=hours,
        seat_change_count=seat_change_count,
        base_fee=tier.base_fee,
        seat_change_fee=seat_fee,
        total_fee=tier.base_fee + seat_fee,
    )


def validate_modification(
    booking: Booking,
    departure_time: datetime,
    now: datetime,
    seat_change_count: int = 0,
    passenger_update_count: int = 0,
) -> ModificationFees:
    """
    Check that the requested changes are allowed now and price them.

    Raises:
        AlreadyCancelledError: If the booking is cancelled
        PolicyViolationError: If the booking is completed, the trip departed,
            or the current tier disallows the change
    """
    if booking.status == BookingStatus.CANCELLED:
        raise AlreadyCancelledError(str(booking.booking_id))
    if booking.status == BookingStatus.COMPLETED:
        raise PolicyViolationError("Cannot modify a completed booking")

    fees = calculate_modification_fees(departure_time, now, seat_change_count)
    tier = fees.tier

    if fees.hours_until_departure < 0:
        raise PolicyViolationError("Cannot modify a booking after the trip has departed", tier=tier.name)
    if not tier.allows_modification:
        raise PolicyViolationError(
            f"Modifications are not allowed: {tier.description}",
            tier=tier.name,
        )
    if seat_change_count and not tier.allow_seat_change:
        raise PolicyViolationError(f"Seat changes are not allowed in tier {tier.name}", tier=tier.name)
    if passenger_update_count and not tier.allow_passenger_update:
        raise PolicyViolationError(f"Passenger updates are not allowed in tier {tier.name}", tier=tier.name)

    return fees


def policy_table() -> List[Dict[str, Any]]:
    return [
        {
            "name": tier.name,
            "min_hours": tier.min_hours,
            "max_hours": tier.max_hours,
            "base_fee": tier.base_fee,
            "seat_change_fee": tier.seat_change_fee,
            "allow_seat_change": tier.allow_seat_change,
            "allow_passenger_update": tier.allow_passenger_update,
            "description": tier.description,
        }
        for tier in MODIFICATION_TIERS
    ]
