"""
Append-only credits ledger.

Every balance change writes one ``CreditTransaction`` row and updates the
cached ``User.credits`` in the same database transaction. Mutations for a
user are serialized by the in-process user lock plus a row lock on the
user, so a balance is never read and written without holding both.
"""
import logging
from datetime import timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from boothcore.exceptions import InsufficientCredits, NotFound, ValidationError
from boothcore.locks import user_locks
from boothcore.models import CreditTransaction, User
from boothcore.tenants import Clock, utc_now

logger = logging.getLogger(__name__)


class CreditReason:
    BOOKING_PAYMENT = "booking_payment"
    BOOKING_EXTENSION = "booking_extension"
    CANCELLATION_REFUND = "cancellation_refund"
    NO_SHOW_REFUND = "no_show_refund"
    PACKAGE_PURCHASE = "package_purchase"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class CreditsLedger:

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or utc_now

    def _now(self):
        return self.clock().astimezone(timezone.utc).replace(tzinfo=None)

    def _locked_user(self, user_id: int, tenant_id: Optional[int] = None) -> User:
        query = self.db.query(User).filter(User.id == user_id)
        if tenant_id is not None:
            query = query.filter(User.tenant_id == tenant_id)
        user = query.with_for_update().populate_existing().first()
        if not user:
            raise NotFound(f"User {user_id} not found")
        return user

    def balance(self, user_id: int, tenant_id: Optional[int] = None) -> Decimal:
        query = self.db.query(User).filter(User.id == user_id)
        if tenant_id is not None:
            query = query.filter(User.tenant_id == tenant_id)
        user = query.populate_existing().first()
        if not user:
            raise NotFound(f"User {user_id} not found")
        return Decimal(user.credits or 0)

    def history(self, user_id: int, limit: int = 50) -> List[CreditTransaction]:
        return (
            self.db.query(CreditTransaction)
            .filter(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.created_at.desc())
            .limit(limit)
            .all()
        )

    def apply(
        self,
        user_id: int,
        delta: Decimal,
        reason: str,
        booking_id: Optional[str] = None,
        tenant_id: Optional[int] = None,
        commit: bool = True,
    ) -> Decimal:
        """
        Add ``delta`` (signed) to the user's balance and return the new balance.

        With ``commit=False`` the change joins the caller's unit of work; the
        caller must then hold ``user_locks.hold(user_id)`` until it commits.
        """
        delta = Decimal(delta)
        if delta == 0:
            raise ValidationError("Credit adjustment must be non-zero")

        with user_locks.hold(user_id):
            try:
                user = self._locked_user(user_id, tenant_id)
                current = Decimal(user.credits or 0)
                new_balance = current + delta
                if new_balance < 0:
                    raise InsufficientCredits(
                        f"Insufficient credits: balance {current}, required {-delta}"
                    )

                user.credits = new_balance
                self.db.add(CreditTransaction(
                    tenant_id=user.tenant_id,
                    user_id=user.id,
                    booking_id=booking_id,
                    delta=delta,
                    reason=reason,
                    resulting_balance=new_balance,
                    created_at=self._now(),
                ))
                self.db.flush()
                if commit:
                    self.db.commit()
            except Exception:
                if commit:
                    self.db.rollback()
                raise

        logger.info("Credits %+.2f for user %s (%s): balance %s", delta, user_id, reason, new_balance)
        return new_balance
