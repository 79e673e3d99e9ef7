"""
Tenant policy.

The policy is read from ``Tenant.settings`` on every call that needs it and
passed explicitly into the pricing, reservation and lifecycle code. Nothing
here is cached on the process, so an operator change takes effect on the
next request.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, validator
from sqlalchemy.orm import Session

from boothcore.exceptions import ConfigurationError, NotAuthorized, NotFound
from boothcore.models import Tenant

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: an aware UTC timestamp"""
    return datetime.now(timezone.utc)


class TenantPolicy(BaseModel):
    """Per-tenant booking, pricing and access settings"""
    currency: str = "PLN"
    currency_decimals: int = Field(2, ge=0, le=2)
    timezone: str = "UTC"

    min_booking_minutes: int = Field(15, ge=1)
    max_booking_hours: int = Field(8, ge=1)

    grace_period_minutes: int = Field(15, ge=0)
    early_access_minutes: int = Field(5, ge=0)
    pending_hold_minutes: int = Field(15, ge=1)

    no_show_penalty_percent: Decimal = Field(Decimal("50"), ge=0, le=100)
    free_cancellation_hours: Decimal = Field(Decimal("1"), ge=0)
    late_cancellation_refund_percent: Decimal = Field(Decimal("0"), ge=0, le=100)

    access_code_length: int = Field(6, ge=4, le=12)

    @validator("timezone")
    def validate_timezone(cls, v):
        if v != "UTC":
            try:
                ZoneInfo(v)
            except (ZoneInfoNotFoundError, ValueError):
                raise ValueError(f"Unknown timezone: {v}")
        return v

    @validator("currency")
    def validate_currency(cls, v):
        if len(v) != 3:
            raise ValueError("Currency must be a 3-letter code")
        return v.upper()

    @property
    def tzinfo(self):
        return timezone.utc if self.timezone == "UTC" else ZoneInfo(self.timezone)

    def local_now(self, clock: Optional[Clock] = None) -> datetime:
        """Current wall-clock time at the tenant's locations, as a naive datetime"""
        now = (clock or utc_now)()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.tzinfo).replace(tzinfo=None)


def policy_from_settings(raw: Optional[dict]) -> TenantPolicy:
    try:
        return TenantPolicy(**(raw or {}))
    except PydanticValidationError as e:
        logger.error("Rejected tenant settings: %s", e)
        raise ConfigurationError(f"Invalid tenant settings: {e}")


def load_policy(db: Session, tenant_id: int) -> TenantPolicy:
    """Read the tenant's policy fresh from the database"""
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if not tenant:
        raise NotFound(f"Tenant {tenant_id} not found", code="TENANT_001")
    if tenant.status == "suspended":
        raise NotAuthorized(f"Tenant {tenant_id} is suspended", code="TENANT_002")
    return policy_from_settings(tenant.settings)
