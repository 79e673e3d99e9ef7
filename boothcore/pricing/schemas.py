from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum

class DiscountType(str, Enum):
    """Discount type enumeration"""
    PERCENTAGE = "percentage"
    FIXED = "fixed"

class AppliesTo(str, Enum):
    """Which days a discount applies to"""
    ALL = "all"
    WEEKDAYS = "weekdays"
    WEEKENDS = "weekends"

# Quote
class PriceQuoteRequest(BaseModel):
    booth_id: int
    booking_date: date
    start_time: time
    end_time: time

    @validator("end_time")
    def end_after_start(cls, v, values):
        start = values.get("start_time")
        if start is not None and v <= start:
            raise ValueError("end_time must be after start_time")
        return v

class PriceQuoteResponse(BaseModel):
    booth_id: int
    amount: Decimal
    base_amount: Decimal
    currency: str
    duration_minutes: int
    applied_multiplier: Decimal
    applied_discount_pct: Decimal
    discount_amount: Decimal
    discount_id: Optional[int] = None
    peak_rule_id: Optional[int] = None

# Discounts
class DiscountBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: DiscountType
    value: Decimal = Field(..., gt=0)
    min_hours: Decimal = Field(Decimal("0"), ge=0)
    applies_to: AppliesTo = AppliesTo.ALL.value
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    is_active: bool = True

    class Config:
        use_enum_values = True

    @validator("value")
    def cap_percentage(cls, v, values):
        if values.get("type") == DiscountType.PERCENTAGE and v > 100:
            raise ValueError("Percentage discounts are capped at 100")
        return v

    @validator("valid_until")
    def validity_window(cls, v, values):
        start = values.get("valid_from")
        if v is not None and start is not None and v < start:
            raise ValueError("valid_until must not be before valid_from")
        return v

class DiscountCreate(DiscountBase):
    pass

class DiscountUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    value: Optional[Decimal] = Field(None, gt=0)
    min_hours: Optional[Decimal] = Field(None, ge=0)
    applies_to: Optional[AppliesTo] = None
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    is_active: Optional[bool] = None

    class Config:
        use_enum_values = True

class DiscountResponse(DiscountBase):
    id: int
    tenant_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Peak hours
class PeakHoursBase(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday")
    start_hour: int = Field(..., ge=0, le=23)
    end_hour: int = Field(..., ge=1, le=24, description="Exclusive")
    multiplier: Decimal = Field(..., ge=1, le=5)
    is_active: bool = True

    @validator("end_hour")
    def end_after_start(cls, v, values):
        start = values.get("start_hour")
        if start is not None and v <= start:
            raise ValueError("end_hour must be after start_hour")
        return v

class PeakHoursCreate(PeakHoursBase):
    pass

class PeakHoursUpdate(BaseModel):
    multiplier: Optional[Decimal] = Field(None, ge=1, le=5)
    is_active: Optional[bool] = None

class PeakHoursResponse(PeakHoursBase):
    id: int
    tenant_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Credit packages
class CreditPackageBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    credits: int = Field(..., gt=0)
    bonus_credits: int = Field(0, ge=0)
    price: Decimal = Field(..., gt=0)
    currency: str = Field("PLN", min_length=3, max_length=3)
    is_active: bool = True

class CreditPackageCreate(CreditPackageBase):
    pass

class CreditPackageUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    credits: Optional[int] = Field(None, gt=0)
    bonus_credits: Optional[int] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, gt=0)
    is_active: Optional[bool] = None

class CreditPackageResponse(CreditPackageBase):
    id: int
    tenant_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
