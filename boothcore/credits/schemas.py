from pydantic import BaseModel, Field, validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

class CreditAdjustmentRequest(BaseModel):
    """Operator adjustment; positive adds credits, negative removes them"""
    user_id: int
    amount: Decimal
    note: Optional[str] = Field(None, max_length=255)

    @validator("amount")
    def non_zero(cls, v):
        if v == 0:
            raise ValueError("amount must be non-zero")
        return v

class PackageGrantRequest(BaseModel):
    """Sent by the payment collaborator once a package purchase has settled"""
    user_id: int
    payment_reference: Optional[str] = Field(None, max_length=100)

class CreditTransactionResponse(BaseModel):
    id: str
    user_id: int
    booking_id: Optional[str] = None
    delta: Decimal
    reason: str
    resulting_balance: Decimal
    created_at: datetime

    class Config:
        from_attributes = True

class BalanceResponse(BaseModel):
    user_id: int
    balance: Decimal
    transactions: List[CreditTransactionResponse] = []
