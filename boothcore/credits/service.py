import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from boothcore.credits.ledger import CreditReason, CreditsLedger
from boothcore.credits.schemas import BalanceResponse, CreditTransactionResponse
from boothcore.exceptions import ValidationError
from boothcore.pricing.service import PricingRuleService
from boothcore.tenants import Clock

logger = logging.getLogger(__name__)


class CreditsService:
    """Tenant-scoped entry points to the ledger for operators and payments"""

    def __init__(self, db: Session, tenant_id: int, clock: Optional[Clock] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.ledger = CreditsLedger(db, clock)

    def adjust(self, user_id: int, amount: Decimal) -> Decimal:
        return self.ledger.apply(
            user_id, amount, CreditReason.ADMIN_ADJUSTMENT, tenant_id=self.tenant_id
        )

    def grant_package(self, package_id: int, user_id: int, payment_reference: Optional[str] = None) -> Decimal:
        package = PricingRuleService(self.db, self.tenant_id).get_package(package_id)
        if not package.is_active:
            raise ValidationError(f"Credit package {package_id} is not on sale")
        total = Decimal(package.credits) + Decimal(package.bonus_credits or 0)
        balance = self.ledger.apply(
            user_id, total, CreditReason.PACKAGE_PURCHASE, tenant_id=self.tenant_id
        )
        logger.info("Granted package %s (%s credits) to user %s, payment %s",
                    package_id, total, user_id, payment_reference or "-")
        return balance

    def summary(self, user_id: int, limit: int = 50) -> BalanceResponse:
        balance = self.ledger.balance(user_id, tenant_id=self.tenant_id)
        transactions = self.ledger.history(user_id, limit)
        return BalanceResponse(
            user_id=user_id,
            balance=balance,
            transactions=[CreditTransactionResponse.model_validate(t) for t in transactions],
        )
