from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime, date, time
from decimal import Decimal

from boothcore.bookings.state_machine import BookingStatus

# Requests
class GuestContact(BaseModel):
    """Contact details for a booking made without an account"""
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)

    @validator("phone", always=True)
    def email_or_phone(cls, v, values):
        if not v and not values.get("email"):
            raise ValueError("Guest contact needs an email or a phone number")
        return v

class BookingCreateRequest(BaseModel):
    booth_id: int
    booking_date: date
    start_time: time
    end_time: time
    guest: Optional[GuestContact] = None

    @validator("end_time")
    def end_after_start(cls, v, values):
        start = values.get("start_time")
        if start is not None and v <= start:
            raise ValueError("end_time must be after start_time")
        return v

class BookingCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

class BookingExtendRequest(BaseModel):
    minutes: int = Field(..., gt=0, le=12 * 60)

# Responses
class BookingResponse(BaseModel):
    id: str
    booth_id: int
    user_id: Optional[int] = None
    guest_name: Optional[str] = None
    booking_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    status: BookingStatus
    total_price: Decimal
    currency: str
    applied_multiplier: Optional[Decimal] = None
    applied_discount_pct: Optional[Decimal] = None
    paid_with_credits: bool = False
    confirmed_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BookingCancelResponse(BaseModel):
    id: str
    status: BookingStatus
    refund_amount: Decimal
    currency: str

class BookingExtendResponse(BaseModel):
    booking: BookingResponse
    extension_price: Decimal

class AccessCodeResponse(BaseModel):
    booking_id: str
    access_code: str
    valid_from: datetime
    valid_until: datetime
