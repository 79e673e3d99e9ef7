"""
Reservations Module

Owns booth time-slot allocation: overlap checks, per-booth serialization
of reserve/extend/release, and per-day availability.
"""

from .router import router
from .manager import ReservationManager, HOLDING_STATUSES, overlaps

__all__ = [
    "router",
    "ReservationManager",
    "HOLDING_STATUSES",
    "overlaps",
]
