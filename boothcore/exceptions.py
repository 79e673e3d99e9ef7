"""
Typed errors raised by the reservation and access engine.

Every error carries the HTTP status it maps to and a stable error code
that clients can switch on. ``main.py`` registers a single handler that
renders them as ``{"success": false, "error": {"code", "message"}}``.
"""
from typing import Optional


class BoothCoreError(Exception):
    """Base class for all engine errors"""
    status_code = 500
    code = "INTERNAL_001"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(BoothCoreError):
    """Malformed or out-of-policy input; rejected before any state change"""
    status_code = 400
    code = "VALIDATION_001"


class NotFound(BoothCoreError):
    status_code = 404
    code = "NOT_FOUND_001"


class SlotConflict(BoothCoreError):
    """The requested time range overlaps an existing booking"""
    status_code = 409
    code = "BOOKING_001"


class InsufficientCredits(BoothCoreError):
    status_code = 402
    code = "BOOKING_002"


class InvalidTransition(BoothCoreError):
    """A booking event that the lifecycle table does not allow"""
    status_code = 409
    code = "BOOKING_004"


class NotAuthorized(BoothCoreError):
    status_code = 403
    code = "ACCESS_001"


class DeviceUnreachable(BoothCoreError):
    status_code = 503
    code = "IOT_003"


class DeviceTimeout(BoothCoreError):
    status_code = 504
    code = "IOT_002"


class ConfigurationError(BoothCoreError):
    """Tenant or rule configuration that makes an operation impossible"""
    status_code = 500
    code = "CONFIG_001"
