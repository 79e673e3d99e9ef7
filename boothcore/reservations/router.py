from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from boothcore.database import get_db
from boothcore.dependencies import get_tenant_id
from boothcore.reservations.manager import ReservationManager
from boothcore.reservations.schemas import AvailabilityResponse

router = APIRouter()

@router.get("/{booth_id}/availability", response_model=AvailabilityResponse)
def get_availability(
    booth_id: int,
    day: date = Query(..., alias="date", description="Local date at the booth"),
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db)
):
    """Booked intervals and current status of a booth for a date"""
    return ReservationManager(db, tenant_id).availability(booth_id, day)
