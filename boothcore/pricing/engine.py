import logging
from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from boothcore.exceptions import ConfigurationError, NotFound, ValidationError
from boothcore.models import Booth
from boothcore.pricing.rules import DiscountRule, PeakHoursRule, PricingRule, HUNDRED, load_rules
from boothcore.tenants import TenantPolicy, load_policy

logger = logging.getLogger(__name__)

# A peak window must cover at least this much of a booking to apply
PEAK_MIN_OVERLAP_MINUTES = 60


@dataclass(frozen=True)
class PriceQuote:
    amount: Decimal
    base_amount: Decimal
    applied_multiplier: Decimal
    applied_discount_pct: Decimal
    discount_amount: Decimal
    currency: str
    duration_minutes: int
    discount_id: Optional[int] = None
    peak_rule_id: Optional[int] = None


def quantize_money(value: Decimal, decimals: int) -> Decimal:
    """Round half-up to the tenant's minor units"""
    return value.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


def check_duration(duration_minutes: int, policy: TenantPolicy) -> None:
    if duration_minutes <= 0:
        raise ValidationError("Booking must end after it starts")
    if duration_minutes < policy.min_booking_minutes:
        raise ValidationError(
            f"Minimum booking duration is {policy.min_booking_minutes} minutes"
        )
    if duration_minutes > policy.max_booking_hours * 60:
        raise ValidationError(
            f"Maximum booking duration is {policy.max_booking_hours} hours"
        )


def calculate_price(
    rate: Decimal,
    currency: str,
    booking_date: date,
    start_time: time,
    duration_minutes: int,
    rules: Iterable[PricingRule],
    policy: TenantPolicy,
    enforce_limits: bool = True,
) -> PriceQuote:
    """
    Price a booking.

    base = rate x hours; the single highest matching peak multiplier is
    applied; then the single discount with the largest effective reduction.
    Pure: the same inputs always give the same quote.
    """
    if enforce_limits:
        check_duration(duration_minutes, policy)
    elif duration_minutes <= 0:
        raise ValidationError("Duration must be positive")

    if rate is None or Decimal(rate) <= 0:
        raise ConfigurationError("Booth hourly rate must be positive")
    rate = Decimal(rate)

    hours = Decimal(duration_minutes) / Decimal(60)
    base = rate * hours
    start_minute = start_time.hour * 60 + start_time.minute
    required_overlap = min(PEAK_MIN_OVERLAP_MINUTES, duration_minutes)

    peak: Optional[PeakHoursRule] = None
    discounts = []
    for rule in rules:
        if isinstance(rule, PeakHoursRule):
            overlap = rule.overlap_minutes(booking_date, start_minute, duration_minutes)
            if overlap >= required_overlap and (peak is None or rule.multiplier > peak.multiplier):
                peak = rule
        elif isinstance(rule, DiscountRule):
            if rule.applies(booking_date, hours):
                discounts.append(rule)
        else:
            raise ConfigurationError(f"Unsupported pricing rule: {type(rule).__name__}")

    multiplier = peak.multiplier if peak else Decimal("1")
    amount = base * multiplier

    best: Optional[DiscountRule] = None
    best_reduction = Decimal("0")
    for rule in discounts:
        reduction = rule.reduction(amount)
        if reduction > best_reduction:
            best, best_reduction = rule, reduction

    final = quantize_money(amount - best_reduction, policy.currency_decimals)
    discount_pct = Decimal("0")
    if best is not None and amount > 0:
        discount_pct = (best_reduction / amount * HUNDRED).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    return PriceQuote(
        amount=final,
        base_amount=quantize_money(base, policy.currency_decimals),
        applied_multiplier=multiplier,
        applied_discount_pct=discount_pct,
        discount_amount=quantize_money(best_reduction, policy.currency_decimals),
        currency=currency,
        duration_minutes=duration_minutes,
        discount_id=best.id if best else None,
        peak_rule_id=peak.id if peak else None,
    )


class PricingService:
    """Prices bookings for a tenant using its current rules and policy"""

    def __init__(self, db: Session, tenant_id: int, policy: Optional[TenantPolicy] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.policy = policy or load_policy(db, tenant_id)

    def get_booth(self, booth_id: int) -> Booth:
        booth = (
            self.db.query(Booth)
            .filter(Booth.id == booth_id, Booth.tenant_id == self.tenant_id)
            .first()
        )
        if not booth:
            raise NotFound(f"Booth {booth_id} not found")
        return booth

    def quote(
        self,
        booth: Booth,
        booking_date: date,
        start_time: time,
        duration_minutes: int,
        enforce_limits: bool = True,
    ) -> PriceQuote:
        rules = load_rules(self.db, self.tenant_id)
        quote = calculate_price(
            booth.base_hourly_rate,
            booth.currency,
            booking_date,
            start_time,
            duration_minutes,
            rules,
            self.policy,
            enforce_limits=enforce_limits,
        )
        logger.debug(
            "Priced booth %s on %s %s for %s min: %s %s (x%s, -%s%%)",
            booth.id, booking_date, start_time, duration_minutes,
            quote.amount, quote.currency, quote.applied_multiplier, quote.applied_discount_pct,
        )
        return quote
