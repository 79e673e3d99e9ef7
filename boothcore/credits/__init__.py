"""
Credits Module

Prepaid, tenant-scoped credits debited per booking.

Key Components:
- ledger.py: append-only CreditsLedger with per-user serialization
- service.py: operator adjustments, package grants and balance summaries
- router.py: FastAPI endpoints for the credits API
- schemas.py: Pydantic models for credit requests and responses
"""

from .router import router
from .ledger import CreditReason, CreditsLedger
from .service import CreditsService

__all__ = [
    "router",
    "CreditReason",
    "CreditsLedger",
    "CreditsService",
]
