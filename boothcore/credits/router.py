from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from boothcore.database import get_db
from boothcore.dependencies import get_clock, get_tenant_id
from boothcore.credits.schemas import BalanceResponse, CreditAdjustmentRequest, PackageGrantRequest
from boothcore.credits.service import CreditsService

router = APIRouter()

@router.post("/adjust", response_model=BalanceResponse)
def adjust_credits(
    request: CreditAdjustmentRequest,
    tenant_id: int = Depends(get_tenant_id),
    clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """Operator credit adjustment routed through the ledger"""
    service = CreditsService(db, tenant_id, clock)
    service.adjust(request.user_id, request.amount)
    return service.summary(request.user_id, limit=1)

@router.post("/packages/{package_id}/grant", response_model=BalanceResponse)
def grant_package(
    package_id: int,
    request: PackageGrantRequest,
    tenant_id: int = Depends(get_tenant_id),
    clock = Depends(get_clock),
    db: Session = Depends(get_db)
):
    """Credit a purchased package (credits plus bonus) to a user"""
    service = CreditsService(db, tenant_id, clock)
    service.grant_package(package_id, request.user_id, request.payment_reference)
    return service.summary(request.user_id, limit=1)

@router.get("/{user_id}", response_model=BalanceResponse)
def get_balance(
    user_id: int,
    limit: int = Query(50, ge=1, le=500),
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    """Current balance and recent ledger entries"""
    return CreditsService(db, tenant_id).summary(user_id, limit)
