"""
Tests for the trip service client against a mocked transport.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from bus_booking_service.clients.trip_client import TripServiceClient, normalize_trip
from bus_booking_service.utils.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from bus_booking_service.utils.exceptions import ExternalServiceError, SeatNotAvailableError
from bus_booking_service.utils.retry import RetryConfig

CAMEL_TRIP = {
    "tripId": "T1",
    "pricing": {"basePrice": 120000},
    "schedule": {"departureTime": "2025-01-09T09:00:00Z", "arrivalTime": "2025-01-09T15:00:00Z"},
    "route": {"originName": "Ha Noi", "destinationName": "Hue"},
    "operator": {"operatorName": "Sao Viet"},
}


def make_client(handler, failure_threshold=5):
    requests = []

    def recording(request):
        requests.append(request)
        return handler(request)

    http = httpx.AsyncClient(base_url="http://trips.test/api/trips", transport=httpx.MockTransport(recording))
    breaker = CircuitBreaker(
        "trip-test",
        CircuitBreakerConfig(failure_threshold=failure_threshold, expected_exception=httpx.HTTPError),
    )
    client = TripServiceClient(
        retry_config=RetryConfig(max_attempts=2, base_delay=0, jitter=False),
        http_client=http,
        breaker=breaker,
    )
    return client, requests


class TestNormalizeTrip:
    def test_camel_case_payload(self):
        trip = normalize_trip(CAMEL_TRIP)

        assert trip.trip_id == "T1"
        assert trip.base_price == Decimal("120000")
        assert trip.departure_time == datetime(2025, 1, 9, 9, 0, tzinfo=timezone.utc)
        assert trip.route.origin == "Ha Noi"
        assert trip.operator.name == "Sao Viet"

    def test_snake_case_payload(self):
        trip = normalize_trip({
            "trip_id": "T2",
            "base_price": "90000",
            "departure_time": "2025-01-09T09:00:00+00:00",
            "route": {"origin": "Hue", "destination": "Da Nang"},
            "operator": "Phuong Trang",
        })

        assert trip.base_price == Decimal("90000")
        assert trip.route.destination == "Da Nang"
        assert trip.operator.name == "Phuong Trang"


class TestGetTrip:
    async def test_unwraps_data_envelope(self):
        client, requests = make_client(lambda r: httpx.Response(200, json={"success": True, "data": CAMEL_TRIP}))

        trip = await client.get_trip("T1")

        assert trip.summary()["route"] == {"origin": "Ha Noi", "destination": "Hue"}
        assert requests[0].url.path == "/api/trips/T1"

    async def test_not_found_is_none(self):
        client, _ = make_client(lambda r: httpx.Response(404, json={"success": False}))
        assert await client.get_trip("missing") is None

    async def test_retries_server_errors(self):
        answers = iter([httpx.Response(503), httpx.Response(200, json={"data": CAMEL_TRIP})])
        client, requests = make_client(lambda r: next(answers))

        trip = await client.get_trip("T1")

        assert trip.trip_id == "T1"
        assert len(requests) == 2

    async def test_gives_up_after_retries(self):
        client, requests = make_client(lambda r: httpx.Response(500))

        with pytest.raises(ExternalServiceError):
            await client.get_trip("T1")
        assert len(requests) == 2

    async def test_transport_errors_open_the_circuit(self):
        def down(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, requests = make_client(down, failure_threshold=2)

        for _ in range(2):
            with pytest.raises(ExternalServiceError):
                await client.get_seat_map("T1")

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.get_seat_map("T1")

        assert client.breaker.stats.state == CircuitState.OPEN
        assert "Circuit breaker is OPEN" in exc_info.value.message
        assert len(requests) == 2


class TestSeatMap:
    async def test_parses_seats(self):
        payload = {"data": {"seatMap": {"seats": [
            {"seatCode": "A1", "status": "booked"},
            {"seatCode": "A2"},
        ]}}}
        client, _ = make_client(lambda r: httpx.Response(200, json=payload))

        seat_map = await client.get_seat_map("T1")

        assert not seat_map.find("A1").is_available
        assert seat_map.find("A2").is_available
        assert seat_map.find("Z9") is None


class TestSeatHolds:
    async def test_lock_conflict_raises_seat_not_available(self):
        client, requests = make_client(lambda r: httpx.Response(409, json={"message": "locked"}))

        with pytest.raises(SeatNotAvailableError):
            await client.lock_seats("T1", ["A3"], "user-1")

        assert json.loads(requests[0].content) == {"seatCodes": ["A3"], "sessionId": "user-1"}
        # A conflict is a business answer, not an outage
        assert client.breaker.stats.failure_count == 0

    async def test_guest_release_is_flagged(self):
        client, requests = make_client(lambda r: httpx.Response(200, json={"success": True}))

        await client.release_seats("T1", ["A1", "A2"])

        assert requests[0].url.path == "/api/trips/T1/seats/release"
        assert json.loads(requests[0].content) == {"seatCodes": ["A1", "A2"], "isGuest": True}

    async def test_user_release_carries_session(self):
        client, requests = make_client(lambda r: httpx.Response(200, json={"success": True}))

        await client.release_seats("T1", ["A1"], "user-1")

        assert json.loads(requests[0].content) == {"seatCodes": ["A1"], "sessionId": "user-1"}

    async def test_rejected_release_raises(self):
        client, _ = make_client(lambda r: httpx.Response(400, json={"message": "bad"}))

        with pytest.raises(ExternalServiceError):
            await client.release_seats("T1", ["A1"])
