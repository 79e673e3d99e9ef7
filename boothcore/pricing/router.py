from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List

from boothcore.database import get_db
from boothcore.dependencies import get_tenant_id, get_policy
from boothcore.pricing.engine import PricingService
from boothcore.pricing.service import PricingRuleService
from boothcore.pricing.schemas import (
    PriceQuoteRequest, PriceQuoteResponse,
    DiscountCreate, DiscountUpdate, DiscountResponse,
    PeakHoursCreate, PeakHoursUpdate, PeakHoursResponse,
    CreditPackageCreate, CreditPackageUpdate, CreditPackageResponse,
)
from boothcore.reservations.manager import minutes_between, combine
from boothcore.tenants import TenantPolicy

router = APIRouter()

# Quote
@router.post("/quote", response_model=PriceQuoteResponse)
def quote_price(
    request: PriceQuoteRequest,
    tenant_id: int = Depends(get_tenant_id),
    policy: TenantPolicy = Depends(get_policy),
    db: Session = Depends(get_db)
):
    """Price a prospective booking without reserving anything"""
    pricing = PricingService(db, tenant_id, policy)
    booth = pricing.get_booth(request.booth_id)
    duration = minutes_between(
        combine(request.booking_date, request.start_time),
        combine(request.booking_date, request.end_time),
    )
    quote = pricing.quote(booth, request.booking_date, request.start_time, duration)
    return PriceQuoteResponse(booth_id=booth.id, **quote.__dict__)

# Discounts
@router.get("/discounts", response_model=List[DiscountResponse])
def list_discounts(
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    return PricingRuleService(db, tenant_id).list_discounts()

@router.post("/discounts", response_model=DiscountResponse, status_code=status.HTTP_201_CREATED)
def create_discount(
    data: DiscountCreate,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    return PricingRuleService(db, tenant_id).create_discount(data)

@router.patch("/discounts/{discount_id}", response_model=DiscountResponse)
def update_discount(
    discount_id: int,
    data: DiscountUpdate,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    return PricingRuleService(db, tenant_id).update_discount(discount_id, data)

@router.delete("/discounts/{discount_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_discount(
    discount_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    PricingRuleService(db, tenant_id).delete_discount(discount_id)

# Peak hours
@router.get("/peak-hours", response_model=List[PeakHoursResponse])
def list_peak_hours(
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    return PricingRuleService(db, tenant_id).list_peak_hours()

@router.post("/peak-hours", response_model=PeakHoursResponse, status_code=status.HTTP_201_CREATED)
def create_peak_hours(
    data: PeakHoursCreate,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    return PricingRuleService(db, tenant_id).create_peak_hours(data)

@router.patch("/peak-hours/{rule_id}", response_model=PeakHoursResponse)
def update_peak_hours(
    rule_id: int,
    data: PeakHoursUpdate,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    return PricingRuleService(db, tenant_id).update_peak_hours(rule_id, data)

@router.delete("/peak-hours/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_peak_hours(
    rule_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    PricingRuleService(db, tenant_id).delete_peak_hours(rule_id)

# Credit packages
@router.get("/packages", response_model=List[CreditPackageResponse])
def list_packages(
    active_only: bool = Query(False, description="Only packages on sale"),
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    return PricingRuleService(db, tenant_id).list_packages(active_only)

@router.post("/packages", response_model=CreditPackageResponse, status_code=status.HTTP_201_CREATED)
def create_package(
    data: CreditPackageCreate,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    return PricingRuleService(db, tenant_id).create_package(data)

@router.patch("/packages/{package_id}", response_model=CreditPackageResponse)
def update_package(
    package_id: int,
    data: CreditPackageUpdate,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    return PricingRuleService(db, tenant_id).update_package(package_id, data)

@router.delete("/packages/{package_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_package(
    package_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    PricingRuleService(db, tenant_id).delete_package(package_id)
