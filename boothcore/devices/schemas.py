from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

class LockStatus(str, Enum):
    """Physical lock state"""
    LOCKED = "locked"
    UNLOCKED = "unlocked"

class TelemetryPayload(BaseModel):
    """Periodic push from the IoT bridge"""
    device_id: int
    last_seen: datetime
    battery_level: Optional[int] = Field(None, ge=0, le=100)
    lock_status: Optional[LockStatus] = None

class DeviceResponse(BaseModel):
    id: int
    booth_id: Optional[int] = None
    external_id: str
    name: Optional[str] = None
    status: str
    last_seen: Optional[datetime] = None
    battery_level: Optional[int] = None
    is_online: bool = False

    class Config:
        from_attributes = True

class GatewayLockStatus(BaseModel):
    """Lock state as answered by the IoT bridge"""
    lock_status: LockStatus
    battery_level: Optional[int] = Field(None, ge=0, le=100)
    last_seen: Optional[datetime] = None
