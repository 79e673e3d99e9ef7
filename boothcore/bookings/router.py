from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from boothcore.database import get_db
from boothcore.dependencies import get_clock, get_tenant_id, get_user_id
from boothcore.bookings.schemas import (
    BookingCreateRequest, BookingResponse, BookingCancelRequest, BookingCancelResponse,
    BookingExtendRequest, BookingExtendResponse, AccessCodeResponse,
)
from boothcore.bookings.service import BookingService

router = APIRouter()


def get_booking_service(
    tenant_id: int = Depends(get_tenant_id),
    clock = Depends(get_clock),
    db: Session = Depends(get_db)
) -> BookingService:
    return BookingService(db, tenant_id, clock)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingCreateRequest,
    user_id: Optional[int] = Depends(get_user_id),
    service: BookingService = Depends(get_booking_service)
):
    """Reserve a booth slot; members pay with credits, guests stay pending until paid"""
    return service.create_booking(request, user_id)

@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service)
):
    return service.get_booking(booking_id)

@router.post("/{booking_id}/confirm", response_model=BookingResponse)
def confirm_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service)
):
    """Called by the payment collaborator once a guest booking is paid"""
    return service.confirm(booking_id)

@router.post("/{booking_id}/cancel", response_model=BookingCancelResponse)
def cancel_booking(
    booking_id: str,
    request: Optional[BookingCancelRequest] = None,
    service: BookingService = Depends(get_booking_service)
):
    """Cancel a booking and refund according to the tenant's cancellation policy"""
    booking = service.cancel(booking_id, request.reason if request else None)
    return BookingCancelResponse(
        id=booking.id,
        status=booking.status,
        refund_amount=booking.refund_amount,
        currency=booking.currency,
    )

@router.post("/{booking_id}/check-in", response_model=BookingResponse)
def check_in(
    booking_id: str,
    service: BookingService = Depends(get_booking_service)
):
    return service.check_in(booking_id)

@router.post("/{booking_id}/checkout", response_model=BookingResponse)
def checkout(
    booking_id: str,
    service: BookingService = Depends(get_booking_service)
):
    return service.checkout(booking_id)

@router.post("/{booking_id}/extend", response_model=BookingExtendResponse)
def extend_booking(
    booking_id: str,
    request: BookingExtendRequest,
    service: BookingService = Depends(get_booking_service)
):
    booking, charged = service.extend(booking_id, request.minutes)
    return BookingExtendResponse(
        booking=BookingResponse.model_validate(booking),
        extension_price=charged,
    )

@router.get("/{booking_id}/access-code", response_model=AccessCodeResponse)
def get_access_code(
    booking_id: str,
    user_id: Optional[int] = Depends(get_user_id),
    service: BookingService = Depends(get_booking_service)
):
    """The booth access code, available from shortly before the booking starts"""
    booking = service.access_code(booking_id, user_id)
    return AccessCodeResponse(
        booking_id=booking.id,
        access_code=booking.access_code,
        valid_from=booking.start_at - timedelta(minutes=service.policy.early_access_minutes),
        valid_until=booking.end_at,
    )
