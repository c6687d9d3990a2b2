"""
FastAPI routes for the booking lifecycle.
"""

import logging
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from ..config import get_settings
from ..models.booking import BookingStatus
from ..schemas.common import ErrorResponse
from ..schemas.booking import (
    BoardingStatusRequest,
    BookingCancelRequest,
    BookingCreateRequest,
    BookingDetailResponse,
    BookingListResponse,
    BookingModifyRequest,
    BookingResponse,
    CancelBookingResponse,
    CancellationPreviewResponse,
    ConfirmPaymentResponse,
    CreateBookingResponse,
    GuestLookupRequest,
    ModificationPreviewResponse,
    ModifyBookingResponse,
    PassengerResponse,
    PaymentConfirmRequest,
)
from ..services import cancellation_policy, modification_policy
from ..services.booking_service import BookingDetails, BookingService
from ..utils.dependencies import get_booking_service, get_current_user_id, require_admin, require_user_id

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/bookings",
    tags=["bookings"],
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    },
)
settings = get_settings()


def _detail_payload(details: BookingDetails) -> dict:
    return {
        "booking": BookingResponse.model_validate(details.booking),
        "passengers": [PassengerResponse.model_validate(p) for p in details.passengers],
        "trip": details.trip,
    }


@router.post("", response_model=CreateBookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: BookingCreateRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    """
    Create a pending booking.

    Seats are held for a fixed window; unpaid bookings are cancelled by the
    expiration sweep once it elapses. Guests may book without X-User-Id.
    """
    details = await service.create_booking(
        trip_id=request.trip_id,
        seats=request.seats,
        passengers=[p.model_dump() for p in request.passengers],
        contact_email=request.contact_email,
        contact_phone=request.contact_phone,
        user_id=user_id,
    )
    return CreateBookingResponse(
        **_detail_payload(details),
        expires_in_minutes=settings.booking_lock_duration_minutes,
    )


@router.get("/me", response_model=BookingListResponse)
async def list_my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    user_id: str = Depends(require_user_id),
    service: BookingService = Depends(get_booking_service),
):
    bookings, pagination = await service.get_user_bookings(
        user_id, status=status_filter, page=page, limit=limit, sort_order=sort_order
    )
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        pagination=pagination,
    )


@router.get("/policies/cancellation")
async def get_cancellation_policy():
    return {"tiers": cancellation_policy.policy_table(), "processing_time": cancellation_policy.PROCESSING_TIME}


@router.get("/policies/modification")
async def get_modification_policy():
    return {"tiers": modification_policy.policy_table()}


@router.get("/reference/{reference}", response_model=BookingDetailResponse)
async def get_booking_by_reference(
    reference: str,
    email: Optional[str] = Query(None),
    service: BookingService = Depends(get_booking_service),
):
    """Look up a booking by its reference (case-insensitive)."""
    details = await service.get_booking_by_reference(reference, email=email)
    return BookingDetailResponse(**_detail_payload(details))


@router.post("/guest-lookup", response_model=BookingDetailResponse)
async def guest_lookup(
    request: GuestLookupRequest,
    service: BookingService = Depends(get_booking_service),
):
    details = await service.guest_lookup(request.booking_reference, phone=request.phone, email=request.email)
    return BookingDetailResponse(**_detail_payload(details))


@router.patch("/passengers/{ticket_id}/boarding-status", response_model=PassengerResponse)
async def update_boarding_status(
    ticket_id: UUID,
    request: BoardingStatusRequest,
    admin_id: str = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    passenger = await service.update_boarding_status(ticket_id, request.boarding_status)
    logger.info(f"Admin {admin_id} set boarding status of ticket {ticket_id}")
    return PassengerResponse.model_validate(passenger)


@router.get("/{booking_id}", response_model=BookingDetailResponse)
async def get_booking(
    booking_id: UUID,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    details = await service.get_booking(booking_id, user_id=user_id)
    return BookingDetailResponse(**_detail_payload(details))


@router.post("/{booking_id}/confirm-payment", response_model=ConfirmPaymentResponse)
async def confirm_payment(
    booking_id: UUID,
    request: PaymentConfirmRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    """
    Confirm payment for a pending booking.

    The response carries ticket URLs when the e-ticket was ready in time;
    otherwise re-fetch the booking later.
    """
    details = await service.confirm_payment(booking_id, request.payment_method, user_id=user_id)
    return ConfirmPaymentResponse(
        **_detail_payload(details),
        ticket_ready=details.booking.ticket_url is not None,
    )


@router.get("/{booking_id}/cancellation-preview", response_model=CancellationPreviewResponse)
async def cancellation_preview(
    booking_id: UUID,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.get_cancellation_preview(booking_id, user_id=user_id)


@router.put("/{booking_id}/cancel", response_model=CancelBookingResponse)
async def cancel_booking(
    booking_id: UUID,
    request: BookingCancelRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    result = await service.cancel_booking(
        booking_id,
        user_id=user_id,
        reason=request.reason,
        request_refund=request.request_refund,
    )
    return CancelBookingResponse(
        booking=BookingResponse.model_validate(result.booking),
        refund=result.refund,
        released_seats=result.released_seats,
    )


@router.get("/{booking_id}/modification-preview", response_model=ModificationPreviewResponse)
async def modification_preview(
    booking_id: UUID,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.get_modification_preview(booking_id, user_id=user_id)


@router.put("/{booking_id}/modify", response_model=ModifyBookingResponse)
async def modify_booking(
    booking_id: UUID,
    request: BookingModifyRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    result = await service.modify_booking(
        booking_id,
        user_id=user_id,
        seat_changes=[c.model_dump() for c in request.seat_changes],
        passenger_updates=[u.model_dump(exclude_none=True) for u in request.passenger_updates],
    )
    return ModifyBookingResponse(
        booking=BookingResponse.model_validate(result.booking),
        passengers=[PassengerResponse.model_validate(p) for p in result.passengers],
        modifications=result.modifications,
        fees=result.fees,
    )


__all__: List[str] = ["router"]
