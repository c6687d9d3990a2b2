"""
Trip service client: pricing, schedule, seat map and seat holds.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..config import get_settings
from ..schemas.trip import OperatorInfo, RouteInfo, SeatInfo, SeatMap, TripDetails
from ..utils.exceptions import ExternalServiceError, SeatNotAvailableError
from ..utils.retry import RetryConfig, retry_async
from .base import ServiceClient

logger = logging.getLogger(__name__)


def _pick(payload: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        value = payload.get(name)
        if value is not None:
            return value
    return default


def _unwrap(body: Any) -> Any:
    if isinstance(body, Mapping) and "data" in body:
        return body["data"]
    return body


def normalize_trip(payload: Mapping[str, Any], trip_id: Optional[str] = None) -> TripDetails:
    """
    Map a trip payload in either camelCase or snake_case onto TripDetails.
    """
    pricing = _pick(payload, "pricing", default={}) or {}
    schedule = _pick(payload, "schedule", default={}) or {}
    route = _pick(payload, "route", default={}) or {}
    operator = _pick(payload, "operator", default={}) or {}

    if isinstance(operator, str):
        operator = {"name": operator}

    return TripDetails(
        trip_id=str(_pick(payload, "trip_id", "tripId", "id", default=trip_id)),
        base_price=_pick(
            pricing, "base_price", "basePrice",
            default=_pick(payload, "base_price", "basePrice", "price", default=0),
        ),
        departure_time=_pick(
            schedule, "departure_time", "departureTime",
            default=_pick(payload, "departure_time", "departureTime"),
        ),
        arrival_time=_pick(
            schedule, "arrival_time", "arrivalTime",
            default=_pick(payload, "arrival_time", "arrivalTime"),
        ),
        route=RouteInfo(
            origin=_pick(route, "origin", "from", "origin_name", "originName"),
            destination=_pick(route, "destination", "to", "destination_name", "destinationName"),
            distance_km=_pick(route, "distance_km", "distanceKm"),
        ),
        operator=OperatorInfo(
            operator_id=_pick(operator, "operator_id", "operatorId", "id"),
            name=_pick(operator, "name", "operator_name", "operatorName"),
        ),
        bus=_pick(payload, "bus", default={}) or {},
        status=_pick(payload, "status"),
    )


def normalize_seat_map(payload: Mapping[str, Any], trip_id: str) -> SeatMap:
    seat_map = _pick(payload, "seat_map", "seatMap", default=payload) or {}
    raw_seats = _pick(seat_map, "seats", default=[]) or []

    seats = [
        SeatInfo(
            seat_code=str(_pick(seat, "seat_code", "seatCode", "code")),
            status=_pick(seat, "status", default="available"),
            seat_type=_pick(seat, "seat_type", "seatType", "type"),
        )
        for seat in raw_seats
        if _pick(seat, "seat_code", "seatCode", "code") is not None
    ]
    return SeatMap(trip_id=str(trip_id), seats=seats)


class TripServiceClient(ServiceClient):
    """REST client for the trip service."""

    service_name = "trip"

    def __init__(self, base_url: Optional[str] = None, retry_config: Optional[RetryConfig] = None, **kwargs):
        settings = get_settings()
        super().__init__(base_url or settings.trip_service_url, **kwargs)
        self.retry_config = retry_config or RetryConfig(max_attempts=settings.max_retry_attempts)

    async def get_trip(self, trip_id: str) -> Optional[TripDetails]:
        """
        Fetch a trip.

        Returns:
            The trip, or None when the trip service does not know it

        Raises:
            ExternalServiceError: If the trip service stays unreachable after retries
        """
        async def fetch() -> Optional[TripDetails]:
            response = await self._request("GET", f"/{trip_id}")
            if response.status_code == 404:
                return None
            if response.status_code >= 400:
                raise self._unexpected(response, f"trip lookup {trip_id}")

            body = response.json()
            if isinstance(body, Mapping) and body.get("success") is False:
                return None
            data = _unwrap(body)
            if not data:
                return None
            return normalize_trip(data, trip_id=str(trip_id))

        return await retry_async(
            fetch,
            self.retry_config,
            retryable_exceptions=(ExternalServiceError,),
        )

    async def get_seat_map(self, trip_id: str) -> SeatMap:
        response = await self._request("GET", f"/{trip_id}/seats")
        if response.status_code >= 400:
            raise self._unexpected(response, f"seat map {trip_id}")
        return normalize_seat_map(_unwrap(response.json()) or {}, str(trip_id))

    async def lock_seats(self, trip_id: str, seat_codes: Sequence[str], session_id: Optional[str]) -> None:
        """
        Hold seats on the trip.

        Raises:
            SeatNotAvailableError: If another booking holds one of the seats
        """
        response = await self._request(
            "POST",
            f"/{trip_id}/seats/lock",
            json={"seatCodes": list(seat_codes), "sessionId": session_id},
        )
        if response.status_code == 409:
            raise SeatNotAvailableError(", ".join(seat_codes), "locked")
        if response.status_code >= 400:
            raise self._unexpected(response, f"seat lock {list(seat_codes)}")
        logger.info(f"Locked seats {list(seat_codes)} on trip {trip_id}")

    async def release_seats(
        self,
        trip_id: str,
        seat_codes: Sequence[str],
        session_id: Optional[str] = None,
    ) -> None:
        body: Dict[str, Any] = {"seatCodes": list(seat_codes)}
        if session_id:
            body["sessionId"] = session_id
        else:
            body["isGuest"] = True

        response = await self._request("POST", f"/{trip_id}/seats/release", json=body)
        if response.status_code >= 400:
            raise self._unexpected(response, f"seat release {list(seat_codes)}")
        logger.info(f"Released seats {list(seat_codes)} on trip {trip_id}")
