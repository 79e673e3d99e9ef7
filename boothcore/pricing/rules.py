"""
Pricing rules as an explicit tagged variant.

``PricingRule = DiscountRule | PeakHoursRule``. Rules are immutable values
built from the database rows on every pricing call; the engine dispatches
on the variant and refuses anything else.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from boothcore.exceptions import ConfigurationError
from boothcore.models import Discount, PeakHours

HUNDRED = Decimal("100")

DISCOUNT_TYPES = ("percentage", "fixed")
APPLIES_TO = ("all", "weekdays", "weekends")


def js_weekday(day: date) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday"""
    return (day.weekday() + 1) % 7


def is_weekend(day: date) -> bool:
    return js_weekday(day) in (0, 6)


@dataclass(frozen=True)
class DiscountRule:
    id: Optional[int]
    name: str
    type: str
    value: Decimal
    min_hours: Decimal = Decimal("0")
    applies_to: str = "all"
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None

    def applies(self, day: date, duration_hours: Decimal) -> bool:
        if self.min_hours > duration_hours:
            return False
        if self.applies_to == "weekdays" and is_weekend(day):
            return False
        if self.applies_to == "weekends" and not is_weekend(day):
            return False
        if self.valid_from and day < self.valid_from:
            return False
        if self.valid_until and day > self.valid_until:
            return False
        return True

    def reduction(self, amount: Decimal) -> Decimal:
        """Money taken off ``amount``; never more than the amount itself"""
        if self.type == "percentage":
            return amount * min(self.value, HUNDRED) / HUNDRED
        return min(self.value, amount)


@dataclass(frozen=True)
class PeakHoursRule:
    id: Optional[int]
    day_of_week: int
    start_hour: int
    end_hour: int
    multiplier: Decimal

    def overlap_minutes(self, day: date, start_minute: int, duration_minutes: int) -> int:
        """Minutes of ``[start, start + duration)`` that fall inside this window"""
        if js_weekday(day) != self.day_of_week:
            return 0
        lo = max(start_minute, self.start_hour * 60)
        hi = min(start_minute + duration_minutes, self.end_hour * 60)
        return max(0, hi - lo)


PricingRule = Union[DiscountRule, PeakHoursRule]


def discount_rule_from_model(row: Discount) -> DiscountRule:
    if row.type not in DISCOUNT_TYPES:
        raise ConfigurationError(f"Discount {row.id} has unknown type '{row.type}'")
    if row.applies_to not in APPLIES_TO:
        raise ConfigurationError(f"Discount {row.id} has unknown applies_to '{row.applies_to}'")
    value = Decimal(row.value)
    if value < 0:
        raise ConfigurationError(f"Discount {row.id} has a negative value")
    if row.type == "percentage":
        value = min(value, HUNDRED)
    return DiscountRule(
        id=row.id,
        name=row.name,
        type=row.type,
        value=value,
        min_hours=Decimal(row.min_hours or 0),
        applies_to=row.applies_to,
        valid_from=row.valid_from,
        valid_until=row.valid_until,
    )


def peak_rule_from_model(row: PeakHours) -> PeakHoursRule:
    if not 0 <= row.day_of_week <= 6:
        raise ConfigurationError(f"Peak hours {row.id} has day_of_week {row.day_of_week}")
    if not 0 <= row.start_hour < row.end_hour <= 24:
        raise ConfigurationError(f"Peak hours {row.id} has an empty or invalid hour range")
    multiplier = Decimal(row.multiplier)
    if not Decimal("1") <= multiplier <= Decimal("5"):
        raise ConfigurationError(f"Peak hours {row.id} multiplier {multiplier} outside 1..5")
    return PeakHoursRule(
        id=row.id,
        day_of_week=row.day_of_week,
        start_hour=row.start_hour,
        end_hour=row.end_hour,
        multiplier=multiplier,
    )


def load_rules(db: Session, tenant_id: int) -> List[PricingRule]:
    """Load the tenant's active rules straight from the database"""
    rules: List[PricingRule] = []
    discounts = (
        db.query(Discount)
        .filter(Discount.tenant_id == tenant_id, Discount.is_active.is_(True))
        .order_by(Discount.id)
        .all()
    )
    rules.extend(discount_rule_from_model(d) for d in discounts)
    peaks = (
        db.query(PeakHours)
        .filter(PeakHours.tenant_id == tenant_id, PeakHours.is_active.is_(True))
        .order_by(PeakHours.id)
        .all()
    )
    rules.extend(peak_rule_from_model(p) for p in peaks)
    return rules
