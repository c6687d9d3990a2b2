"""
Pydantic schemas for booking-related API requests and responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from ..models.booking import BookingStatus, PaymentStatus
from ..models.passenger import BoardingStatus
from .common import PaginationInfo


class PassengerInput(BaseModel):
    """Passenger details for one seat. Price is always taken from the trip."""

    seat_code: str = Field("", max_length=10, description="Seat this passenger occupies")
    full_name: str = Field("", max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    document_id: Optional[str] = Field(None, max_length=50)


class BookingCreateRequest(BaseModel):
    """Schema for creating a new booking."""

    trip_id: str = Field(..., min_length=1, max_length=64, description="ID of the trip to book")
    seats: List[str] = Field(..., min_length=1, max_length=10, description="Seat codes to book")
    passengers: List[PassengerInput] = Field(..., min_length=1, max_length=10)
    contact_email: EmailStr
    contact_phone: str = Field(..., min_length=6, max_length=32)

    @field_validator("seats")
    @classmethod
    def strip_seats(cls, v):
        return [seat.strip() for seat in v]


class PaymentConfirmRequest(BaseModel):
    """Schema for confirming payment of a booking."""

    payment_method: Optional[str] = Field(None, max_length=50, description="Payment method used")


class BookingCancelRequest(BaseModel):
    """Schema for cancelling a booking."""

    reason: Optional[str] = Field(None, max_length=500, description="Optional cancellation reason")
    request_refund: bool = True


class SeatChangeRequest(BaseModel):
    ticket_id: UUID
    new_seat_code: str = Field(..., min_length=1, max_length=10)


class PassengerUpdateRequest(BaseModel):
    ticket_id: UUID
    full_name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    document_id: Optional[str] = Field(None, max_length=50)


class BookingModifyRequest(BaseModel):
    """Schema for seat changes and passenger detail updates."""

    seat_changes: List[SeatChangeRequest] = Field(default_factory=list, max_length=10)
    passenger_updates: List[PassengerUpdateRequest] = Field(default_factory=list, max_length=10)


class GuestLookupRequest(BaseModel):
    """Find a booking without an account: reference plus phone or email."""

    booking_reference: str = Field(..., min_length=1, max_length=20)
    phone: Optional[str] = Field(None, max_length=32)
    email: Optional[str] = Field(None, max_length=255)


class BoardingStatusRequest(BaseModel):
    boarding_status: BoardingStatus


class PassengerResponse(BaseModel):
    """Schema for passenger/ticket information in responses."""

    ticket_id: UUID
    booking_id: UUID
    seat_code: str
    full_name: str
    phone: Optional[str] = None
    document_id: Optional[str] = None
    price: Decimal
    boarding_status: BoardingStatus
    boarded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    """Schema for booking responses."""

    booking_id: UUID
    booking_reference: str
    trip_id: str
    user_id: Optional[str] = None
    contact_email: str
    contact_phone: str
    status: BookingStatus
    payment_status: PaymentStatus
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    locked_until: Optional[datetime] = None
    departure_time: Optional[datetime] = None
    subtotal: Decimal
    service_fee: Decimal
    modification_fees: Decimal = Decimal("0")
    total_price: Decimal
    currency: str
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    cancelled_at: Optional[datetime] = None
    ticket_url: Optional[str] = None
    qr_code_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingDetailResponse(BaseModel):
    """Booking with its passengers and a trip summary."""

    booking: BookingResponse
    passengers: List[PassengerResponse] = []
    trip: Optional[Dict[str, Any]] = None


class CreateBookingResponse(BookingDetailResponse):
    message: str = "Booking created successfully"
    expires_in_minutes: int


class ConfirmPaymentResponse(BookingDetailResponse):
    message: str = "Payment confirmed"
    ticket_ready: bool = False


class RefundBreakdown(BaseModel):
    tier: str
    tier_description: str
    original_amount: Decimal
    refund_amount: Decimal
    processing_fee: Decimal
    total_refund: Decimal
    refund_percentage: int
    processing_time: str
    status: Literal["processing", "no_refund"]


class CancelBookingResponse(BaseModel):
    booking: BookingResponse
    refund: RefundBreakdown
    released_seats: List[str]
    message: str = "Booking cancelled successfully"


class CancellationPreviewResponse(BaseModel):
    booking_id: UUID
    booking_reference: str
    can_cancel: bool
    hours_until_departure: float
    refund: RefundBreakdown


class ModificationFeeBreakdown(BaseModel):
    tier: str
    tier_description: str
    base_fee: Decimal
    seat_change_fee: Decimal
    seat_change_count: int
    total_fee: Decimal


class ModifyBookingResponse(BaseModel):
    booking: BookingResponse
    passengers: List[PassengerResponse]
    modifications: Dict[str, List[Dict[str, Any]]]
    fees: ModificationFeeBreakdown
    message: str = "Booking modified successfully"


class ModificationPreviewResponse(BaseModel):
    booking_id: UUID
    booking_reference: str
    can_modify: bool
    allow_seat_change: bool
    allow_passenger_update: bool
    hours_until_departure: float
    tier: str
    tier_description: str
    base_fee: Decimal
    seat_change_fee: Decimal


class BookingListResponse(BaseModel):
    bookings: List[BookingResponse]
    pagination: PaginationInfo
