"""
Booking reference, pricing and time helpers.
"""

import asyncio
import logging
import random
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Awaitable, Callable, Optional, Union

from .exceptions import ReferenceGenerationError

logger = logging.getLogger(__name__)

REFERENCE_PATTERN = re.compile(r"^[A-Z]+\d{11}$")

Number = Union[int, float, Decimal, str]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_money(value: Number) -> Decimal:
    """Round to whole currency units, half up."""
    return Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def generate_booking_reference(prefix: str = "BK", now: Optional[datetime] = None) -> str:
    """
    Build a reference candidate: prefix, UTC date, three random digits.

    Example: BK20250101042
    """
    date_part = (now or utc_now()).strftime("%Y%m%d")
    return f"{prefix}{date_part}{random.randint(0, 999):03d}"


def normalize_reference(reference: str) -> str:
    return reference.strip().upper()


def is_valid_reference(reference: str) -> bool:
    return bool(REFERENCE_PATTERN.match(normalize_reference(reference)))


async def generate_unique_reference(
    is_taken: Callable[[str], Awaitable[bool]],
    generate: Callable[[], str] = generate_booking_reference,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    max_attempts: int = 5,
    delay_seconds: float = 0.01,
) -> str:
    """
    Draw reference candidates until one is free.

    Args:
        is_taken: Async predicate checking the candidate against the store
        generate: Candidate generator
        sleep: Delay function awaited between attempts
        max_attempts: Upper bound on candidates tried
        delay_seconds: Pause between attempts

    Raises:
        ReferenceGenerationError: If every candidate collided
    """
    for attempt in range(1, max_attempts + 1):
        candidate = generate()
        if not await is_taken(candidate):
            if attempt > 1:
                logger.info(f"Booking reference {candidate} found on attempt {attempt}")
            return candidate

        logger.warning(f"Booking reference collision on {candidate} (attempt {attempt}/{max_attempts})")
        if attempt < max_attempts:
            await sleep(delay_seconds)

    raise ReferenceGenerationError(max_attempts)


def calculate_service_fee(subtotal: Number, percentage: Number = 3, fixed: Number = 10000) -> Decimal:
    """Percentage of the subtotal plus a flat fee, rounded to whole units."""
    return to_money(Decimal(str(subtotal)) * Decimal(str(percentage)) / Decimal(100) + Decimal(str(fixed)))


def calculate_lock_expiration(now: datetime, minutes: int = 10) -> datetime:
    return now + timedelta(minutes=minutes)


def hours_until(departure: datetime, now: datetime) -> float:
    return (ensure_aware(departure) - ensure_aware(now)).total_seconds() / 3600


def normalize_phone(phone: Optional[str]) -> str:
    """Strip whitespace and read a leading 0 as the +84 country prefix."""
    if not phone:
        return ""
    compact = re.sub(r"\s+", "", phone)
    if compact.startswith("0"):
        return "+84" + compact[1:]
    return compact
