from pydantic import BaseModel
from typing import List
from datetime import date, datetime

class BusyIntervalResponse(BaseModel):
    booking_id: str
    start_at: datetime
    end_at: datetime
    status: str

    class Config:
        from_attributes = True

class AvailabilityResponse(BaseModel):
    """Busy intervals for one booth on one local date"""
    booth_id: int
    date: date
    booth_status: str
    busy: List[BusyIntervalResponse] = []

    class Config:
        from_attributes = True
