"""
Pricing Module

Layered booking prices for booths:

- Base hourly rate of the booth
- Peak-hour multipliers (the highest matching one, never stacked)
- Duration discounts (the one with the largest effective reduction)
- Rounding to the tenant's currency minor units

Key Components:
- rules.py: DiscountRule / PeakHoursRule variants loaded fresh per quote
- engine.py: calculate_price and the tenant-scoped PricingService
- service.py: Discount, PeakHours and CreditPackage management
- router.py: FastAPI endpoints for quotes and rule management
- schemas.py: Pydantic models for pricing requests and responses
"""

from .router import router
from .engine import PriceQuote, PricingService, calculate_price
from .rules import DiscountRule, PeakHoursRule, PricingRule, load_rules
from .service import PricingRuleService

__all__ = [
    "router",
    "PriceQuote",
    "PricingService",
    "calculate_price",
    "DiscountRule",
    "PeakHoursRule",
    "PricingRule",
    "load_rules",
    "PricingRuleService",
]
