"""
Tests for reference, pricing and phone helpers.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from bus_booking_service.utils.exceptions import ReferenceGenerationError
from bus_booking_service.utils.helpers import (
    calculate_service_fee,
    ensure_aware,
    generate_booking_reference,
    generate_unique_reference,
    hours_until,
    is_valid_reference,
    normalize_phone,
    normalize_reference,
)


class TestBookingReference:
    def test_format(self):
        reference = generate_booking_reference("BK", datetime(2025, 1, 6, tzinfo=timezone.utc))
        assert reference.startswith("BK20250106")
        assert len(reference) == 13
        assert reference[-3:].isdigit()
        assert is_valid_reference(reference)

    def test_lookup_is_case_insensitive(self):
        assert normalize_reference(" bk20250106001 ") == "BK20250106001"
        assert is_valid_reference("bk20250106001")
        assert not is_valid_reference("BK2025")

    async def test_unique_reference_skips_taken(self):
        candidates = iter(["BK20250106001", "BK20250106002"])
        taken = {"BK20250106001"}
        delays = []

        async def is_taken(reference):
            return reference in taken

        async def sleep(seconds):
            delays.append(seconds)

        reference = await generate_unique_reference(is_taken, lambda: next(candidates), sleep=sleep)

        assert reference == "BK20250106002"
        assert delays == [0.01]

    async def test_unique_reference_gives_up(self):
        async def is_taken(reference):
            return True

        async def sleep(seconds):
            pass

        with pytest.raises(ReferenceGenerationError) as exc_info:
            await generate_unique_reference(is_taken, lambda: "BK20250106001", sleep=sleep, max_attempts=3)

        assert exc_info.value.details["attempts"] == 3


class TestServiceFee:
    @pytest.mark.parametrize("subtotal, expected", [
        (200000, Decimal("16000")),
        (0, Decimal("10000")),
        (150050, Decimal("14502")),
    ])
    def test_three_percent_plus_flat_fee(self, subtotal, expected):
        assert calculate_service_fee(subtotal) == expected


class TestNormalizePhone:
    @pytest.mark.parametrize("raw, expected", [
        ("0901234567", "+84901234567"),
        ("090 123 4567", "+84901234567"),
        ("+84901234567", "+84901234567"),
        ("", ""),
        (None, ""),
    ])
    def test_normalizes(self, raw, expected):
        assert normalize_phone(raw) == expected


def test_hours_until_treats_naive_as_utc():
    now = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)
    assert hours_until(datetime(2025, 1, 7, 9, 0), now) == 24
    assert ensure_aware(datetime(2025, 1, 7)).tzinfo is timezone.utc
