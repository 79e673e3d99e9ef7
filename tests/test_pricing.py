from datetime import date, time
from decimal import Decimal

import pytest

from boothcore.exceptions import ConfigurationError, ValidationError
from boothcore.models import Discount, PeakHours
from boothcore.pricing.engine import PricingService, calculate_price, quantize_money
from boothcore.pricing.rules import DiscountRule, PeakHoursRule, js_weekday
from boothcore.tenants import TenantPolicy

MONDAY = date(2025, 7, 21)
SATURDAY = date(2025, 7, 26)

POLICY = TenantPolicy()


def price(duration, rules=(), start=time(10, 0), day=MONDAY, rate="30", policy=POLICY, **kwargs):
    return calculate_price(Decimal(rate), "PLN", day, start, duration, list(rules), policy, **kwargs)


def peak(multiplier, day_of_week=1, start_hour=9, end_hour=17, rule_id=1):
    return PeakHoursRule(id=rule_id, day_of_week=day_of_week, start_hour=start_hour,
                         end_hour=end_hour, multiplier=Decimal(multiplier))


def discount(type_, value, rule_id=10, **kwargs):
    return DiscountRule(id=rule_id, name=f"{type_} {value}", type=type_, value=Decimal(value), **kwargs)


def test_weekday_numbering_starts_on_sunday():
    assert js_weekday(date(2025, 7, 20)) == 0
    assert js_weekday(MONDAY) == 1
    assert js_weekday(SATURDAY) == 6


def test_base_price_is_rate_times_hours():
    quote = price(120)

    assert quote.amount == Decimal("60.00")
    assert quote.base_amount == Decimal("60.00")
    assert quote.applied_multiplier == Decimal("1")
    assert quote.applied_discount_pct == Decimal("0")
    assert quote.currency == "PLN"


def test_peak_multiplier_applies_inside_window():
    quote = price(120, [peak("1.2")])

    assert quote.amount == Decimal("72.00")
    assert quote.applied_multiplier == Decimal("1.2")
    assert quote.peak_rule_id == 1


def test_fixed_discount_after_peak():
    quote = price(120, [peak("1.2"), discount("fixed", "10", min_hours=Decimal("2"))])

    assert quote.amount == Decimal("62.00")
    assert quote.discount_amount == Decimal("10.00")
    assert quote.discount_id == 10


def test_only_highest_multiplier_applies():
    quote = price(120, [peak("1.2", rule_id=1), peak("1.5", rule_id=2)])

    assert quote.amount == Decimal("90.00")
    assert quote.peak_rule_id == 2


def test_largest_discount_wins_without_stacking():
    rules = [discount("fixed", "10", rule_id=1), discount("percentage", "10", rule_id=2)]

    short = price(120, rules)
    long = price(480, rules)

    # 10% of 60 is 6, the fixed 10 is larger
    assert short.amount == Decimal("50.00")
    assert short.discount_id == 1
    # 10% of 240 is 24
    assert long.amount == Decimal("216.00")
    assert long.discount_id == 2
    assert long.applied_discount_pct == Decimal("10.00")


def test_peak_needs_an_hour_of_overlap():
    # 16:30-18:30 overlaps the 9-17 window by only 30 minutes
    assert price(120, [peak("1.2")], start=time(16, 30)).amount == Decimal("60.00")
    # 16:00-18:00 overlaps by a full hour
    assert price(120, [peak("1.2")], start=time(16, 0)).amount == Decimal("72.00")


def test_short_booking_fully_inside_peak_gets_multiplier():
    quote = price(30, [peak("1.2")])

    assert quote.amount == Decimal("18.00")


def test_peak_only_on_its_weekday():
    assert price(120, [peak("1.2", day_of_week=2)]).amount == Decimal("60.00")


def test_discount_min_hours():
    rules = [discount("fixed", "10", min_hours=Decimal("3"))]

    assert price(120, rules).amount == Decimal("60.00")
    assert price(180, rules).amount == Decimal("80.00")


def test_weekend_and_weekday_discounts():
    weekend = [discount("percentage", "20", applies_to="weekends")]
    weekdays = [discount("percentage", "20", applies_to="weekdays")]

    assert price(60, weekend, day=MONDAY).amount == Decimal("30.00")
    assert price(60, weekend, day=SATURDAY).amount == Decimal("24.00")
    assert price(60, weekdays, day=MONDAY).amount == Decimal("24.00")
    assert price(60, weekdays, day=SATURDAY).amount == Decimal("30.00")


def test_discount_validity_window():
    rules = [discount("fixed", "5", valid_from=date(2025, 8, 1), valid_until=date(2025, 8, 31))]

    assert price(60, rules, day=MONDAY).amount == Decimal("30.00")
    assert price(60, rules, day=date(2025, 8, 4)).amount == Decimal("25.00")
    assert price(60, rules, day=date(2025, 9, 1)).amount == Decimal("30.00")


def test_fixed_discount_never_goes_below_zero():
    quote = price(60, [discount("fixed", "100")])

    assert quote.amount == Decimal("0.00")
    assert quote.discount_amount == Decimal("30.00")


def test_pricing_is_deterministic():
    rules = [peak("1.2"), discount("percentage", "15"), discount("fixed", "4", rule_id=11)]

    first = price(95, rules, start=time(8, 10))
    second = price(95, list(reversed(rules)), start=time(8, 10))

    assert first == second


def test_duration_limits():
    with pytest.raises(ValidationError):
        price(10)
    with pytest.raises(ValidationError):
        price(9 * 60)
    with pytest.raises(ValidationError):
        price(0)


def test_extension_pricing_skips_minimum_duration():
    quote = price(10, enforce_limits=False)

    assert quote.amount == Decimal("5.00")


@pytest.mark.parametrize("rate", ["0", "-5"])
def test_non_positive_rate_is_a_configuration_error(rate):
    with pytest.raises(ConfigurationError):
        price(60, rate=rate)


def test_unknown_rule_type_is_refused():
    with pytest.raises(ConfigurationError):
        price(60, [object()])


def test_rounding_follows_currency_decimals():
    whole = TenantPolicy(currency_decimals=0)

    assert price(15, policy=whole).amount == Decimal("8")
    assert price(50, rate="25", policy=whole).amount == Decimal("21")
    assert quantize_money(Decimal("2.345"), 2) == Decimal("2.35")


def test_service_reads_rules_fresh_from_database(db, tenant, booth):
    service = PricingService(db, tenant.id)
    row = PeakHours(tenant_id=tenant.id, day_of_week=1, start_hour=9, end_hour=17, multiplier=Decimal("1.2"))
    db.add(row)
    db.commit()

    assert service.quote(booth, MONDAY, time(10, 0), 120).amount == Decimal("72.00")

    row.is_active = False
    db.add(Discount(tenant_id=tenant.id, name="Launch", type="fixed", value=Decimal("10"),
                    min_hours=Decimal("2"), applies_to="all"))
    db.commit()

    assert service.quote(booth, MONDAY, time(10, 0), 120).amount == Decimal("50.00")


def test_invalid_stored_rule_is_a_configuration_error(db, tenant, booth):
    db.add(Discount(tenant_id=tenant.id, name="Broken", type="bogus", value=Decimal("10"),
                    min_hours=Decimal("0"), applies_to="all"))
    db.commit()

    with pytest.raises(ConfigurationError):
        PricingService(db, tenant.id).quote(booth, MONDAY, time(10, 0), 60)
