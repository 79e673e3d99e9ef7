"""
Booking Lifecycle Module

Drives a booth booking from request to completion:

- Creation: reserve the slot, price it, pay with credits
- Confirmation of guest bookings by the payment collaborator
- Check-in, checkout and extension
- Cancellation with free-window, late and prorated refunds
- No-show detection and pending-hold expiry in a periodic sweep

Key Components:
- state_machine.py: transition table and per-transition side effects
- service.py: BookingService, one locked unit of work per operation
- sweep.py: BookingSweeper background task
- router.py: FastAPI endpoints for bookings
- schemas.py: Pydantic models for booking requests and responses
"""

from .router import router
from .state_machine import BookingEvent, BookingStateMachine, BookingStatus, TRANSITIONS
from .service import BookingService
from .sweep import BookingSweeper, SweepSummary

__all__ = [
    "router",
    "BookingEvent",
    "BookingStateMachine",
    "BookingStatus",
    "TRANSITIONS",
    "BookingService",
    "BookingSweeper",
    "SweepSummary",
]
