import logging
from typing import List

from sqlalchemy.orm import Session

from boothcore.exceptions import NotFound, ValidationError
from boothcore.models import CreditPackage, Discount, PeakHours
from boothcore.pricing.schemas import (
    DiscountCreate, DiscountUpdate, DiscountType,
    PeakHoursCreate, PeakHoursUpdate,
    CreditPackageCreate, CreditPackageUpdate,
)

logger = logging.getLogger(__name__)


class PricingRuleService:
    """Operator-facing CRUD for discounts, peak hours and credit packages.

    Writes commit immediately; the pricing engine reads the tables fresh on
    every quote, so changes apply to the next booking.
    """

    def __init__(self, db: Session, tenant_id: int):
        self.db = db
        self.tenant_id = tenant_id

    def _get(self, model, item_id: int, label: str):
        item = (
            self.db.query(model)
            .filter(model.id == item_id, model.tenant_id == self.tenant_id)
            .first()
        )
        if not item:
            raise NotFound(f"{label} {item_id} not found")
        return item

    def _save(self, item):
        try:
            self.db.add(item)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(item)
        return item

    def _delete(self, item) -> None:
        try:
            self.db.delete(item)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # Discounts
    def list_discounts(self) -> List[Discount]:
        return (
            self.db.query(Discount)
            .filter(Discount.tenant_id == self.tenant_id)
            .order_by(Discount.id)
            .all()
        )

    def create_discount(self, data: DiscountCreate) -> Discount:
        discount = Discount(tenant_id=self.tenant_id, **data.model_dump())
        discount = self._save(discount)
        logger.info("Created discount %s (%s %s) for tenant %s",
                    discount.id, discount.type, discount.value, self.tenant_id)
        return discount

    def update_discount(self, discount_id: int, data: DiscountUpdate) -> Discount:
        discount = self._get(Discount, discount_id, "Discount")
        changes = data.model_dump(exclude_unset=True)
        value = changes.get("value", discount.value)
        if discount.type == DiscountType.PERCENTAGE.value and value > 100:
            raise ValidationError("Percentage discounts are capped at 100")
        valid_from = changes.get("valid_from", discount.valid_from)
        valid_until = changes.get("valid_until", discount.valid_until)
        if valid_from and valid_until and valid_until < valid_from:
            raise ValidationError("valid_until must not be before valid_from")
        for field, v in changes.items():
            setattr(discount, field, v)
        return self._save(discount)

    def delete_discount(self, discount_id: int) -> None:
        self._delete(self._get(Discount, discount_id, "Discount"))
        logger.info("Deleted discount %s for tenant %s", discount_id, self.tenant_id)

    # Peak hours
    def list_peak_hours(self) -> List[PeakHours]:
        return (
            self.db.query(PeakHours)
            .filter(PeakHours.tenant_id == self.tenant_id)
            .order_by(PeakHours.day_of_week, PeakHours.start_hour)
            .all()
        )

    def create_peak_hours(self, data: PeakHoursCreate) -> PeakHours:
        rule = self._save(PeakHours(tenant_id=self.tenant_id, **data.model_dump()))
        logger.info("Created peak hours %s (day %s %s-%s x%s) for tenant %s",
                    rule.id, rule.day_of_week, rule.start_hour, rule.end_hour,
                    rule.multiplier, self.tenant_id)
        return rule

    def update_peak_hours(self, rule_id: int, data: PeakHoursUpdate) -> PeakHours:
        rule = self._get(PeakHours, rule_id, "Peak hours rule")
        for field, v in data.model_dump(exclude_unset=True).items():
            setattr(rule, field, v)
        return self._save(rule)

    def delete_peak_hours(self, rule_id: int) -> None:
        self._delete(self._get(PeakHours, rule_id, "Peak hours rule"))
        logger.info("Deleted peak hours %s for tenant %s", rule_id, self.tenant_id)

    # Credit packages
    def list_packages(self, active_only: bool = False) -> List[CreditPackage]:
        query = self.db.query(CreditPackage).filter(CreditPackage.tenant_id == self.tenant_id)
        if active_only:
            query = query.filter(CreditPackage.is_active.is_(True))
        return query.order_by(CreditPackage.price).all()

    def get_package(self, package_id: int) -> CreditPackage:
        return self._get(CreditPackage, package_id, "Credit package")

    def create_package(self, data: CreditPackageCreate) -> CreditPackage:
        package = self._save(CreditPackage(tenant_id=self.tenant_id, **data.model_dump()))
        logger.info("Created credit package %s for tenant %s", package.id, self.tenant_id)
        return package

    def update_package(self, package_id: int, data: CreditPackageUpdate) -> CreditPackage:
        package = self.get_package(package_id)
        for field, v in data.model_dump(exclude_unset=True).items():
            setattr(package, field, v)
        return self._save(package)

    def delete_package(self, package_id: int) -> None:
        self._delete(self.get_package(package_id))
        logger.info("Deleted credit package %s for tenant %s", package_id, self.tenant_id)
