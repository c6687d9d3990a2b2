"""
Canonical trip shapes used inside the service.

Whatever casing the trip service answers with, the client maps it onto
these models once; nothing past the client looks at raw payloads.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RouteInfo(BaseModel):
    origin: Optional[str] = None
    destination: Optional[str] = None
    distance_km: Optional[float] = None


class OperatorInfo(BaseModel):
    operator_id: Optional[str] = None
    name: Optional[str] = None


class TripDetails(BaseModel):
    """Trip pricing, route and schedule."""

    trip_id: str
    base_price: Decimal = Decimal("0")
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    route: RouteInfo = Field(default_factory=RouteInfo)
    operator: OperatorInfo = Field(default_factory=OperatorInfo)
    bus: Dict[str, Any] = Field(default_factory=dict)
    status: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        """Route, operator name and schedule for booking responses and emails."""
        return {
            "trip_id": self.trip_id,
            "route": {"origin": self.route.origin, "destination": self.route.destination},
            "operator": self.operator.name,
            "departure_time": self.departure_time.isoformat() if self.departure_time else None,
            "arrival_time": self.arrival_time.isoformat() if self.arrival_time else None,
        }


class SeatInfo(BaseModel):
    seat_code: str
    status: str = "available"
    seat_type: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.status == "available"


class SeatMap(BaseModel):
    trip_id: str
    seats: List[SeatInfo] = Field(default_factory=list)

    def find(self, seat_code: str) -> Optional[SeatInfo]:
        for seat in self.seats:
            if seat.seat_code == seat_code:
                return seat
        return None
