import threading
from decimal import Decimal

import pytest

from boothcore.credits.ledger import CreditReason, CreditsLedger
from boothcore.exceptions import InsufficientCredits, NotFound, ValidationError
from boothcore.models import CreditTransaction


def test_apply_writes_transaction_and_balance(db, user, clock):
    ledger = CreditsLedger(db, clock)

    assert ledger.apply(user.id, Decimal("-25"), CreditReason.BOOKING_PAYMENT) == Decimal("75")
    assert ledger.apply(user.id, Decimal("10.50"), CreditReason.ADMIN_ADJUSTMENT) == Decimal("85.50")

    rows = db.query(CreditTransaction).filter_by(user_id=user.id).order_by(CreditTransaction.resulting_balance).all()
    assert [r.delta for r in rows] == [Decimal("-25.00"), Decimal("10.50")]
    assert [r.resulting_balance for r in rows] == [Decimal("75.00"), Decimal("85.50")]
    assert ledger.balance(user.id) == Decimal("85.50")
    assert rows[0].created_at == clock().replace(tzinfo=None)


def test_insufficient_credits_leaves_balance_untouched(db, user, clock):
    ledger = CreditsLedger(db, clock)

    with pytest.raises(InsufficientCredits):
        ledger.apply(user.id, Decimal("-100.01"), CreditReason.BOOKING_PAYMENT)

    assert ledger.balance(user.id) == Decimal("100")
    assert db.query(CreditTransaction).count() == 0


def test_zero_delta_is_rejected(db, user):
    with pytest.raises(ValidationError):
        CreditsLedger(db).apply(user.id, Decimal("0"), CreditReason.ADMIN_ADJUSTMENT)


def test_unknown_user(db, tenant):
    with pytest.raises(NotFound):
        CreditsLedger(db).apply(999, Decimal("5"), CreditReason.ADMIN_ADJUSTMENT)


def test_balance_is_scoped_to_tenant(db, user):
    with pytest.raises(NotFound):
        CreditsLedger(db).balance(user.id, tenant_id=user.tenant_id + 1)


def test_concurrent_debits_never_overdraw(session_factory, user, clock):
    user_id = user.id
    results = []
    barrier = threading.Barrier(12)

    def debit():
        session = session_factory()
        try:
            barrier.wait()
            CreditsLedger(session, clock).apply(user_id, Decimal("-10"), CreditReason.BOOKING_PAYMENT)
            results.append("ok")
        except InsufficientCredits:
            results.append("insufficient")
        finally:
            session.close()

    threads = [threading.Thread(target=debit) for _ in range(12)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count("ok") == 10
    assert results.count("insufficient") == 2

    session = session_factory()
    try:
        assert CreditsLedger(session).balance(user_id) == Decimal("0")
        balances = [r.resulting_balance for r in session.query(CreditTransaction).all()]
        assert len(balances) == 10
        assert min(balances) == Decimal("0")
        assert sorted(balances) == [Decimal(n) for n in range(0, 100, 10)]
    finally:
        session.close()
