import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from boothcore.config import settings
from boothcore.exceptions import (
    ConfigurationError, DeviceTimeout, DeviceUnreachable, InvalidTransition, NotAuthorized, NotFound,
    ValidationError,
)
from boothcore.models import AccessLog, Booking, Device
from boothcore.devices.gateway import LockGateway, LockStatusReport
from boothcore.devices.schemas import TelemetryPayload
from boothcore.tenants import Clock, TenantPolicy, load_policy, utc_now

logger = logging.getLogger(__name__)

ACCESS_STATUSES = ("confirmed", "active")
CODE_ATTEMPTS = 20


class DeviceAccessController:
    """Access codes for bookings and lock/unlock/sync against booth devices.

    Access codes live on the booking and are managed inside the caller's
    unit of work. Device actions talk to the lock gateway and commit their
    own access log entry, whether the action succeeded or not.
    """

    def __init__(
        self,
        db: Session,
        tenant_id: int,
        gateway: Optional[LockGateway] = None,
        clock: Optional[Clock] = None,
        policy: Optional[TenantPolicy] = None,
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.gateway = gateway
        self.clock = clock or utc_now
        self._policy = policy

    @property
    def policy(self) -> TenantPolicy:
        if self._policy is None:
            self._policy = load_policy(self.db, self.tenant_id)
        return self._policy

    def _utc_now(self) -> datetime:
        return self.clock().astimezone(timezone.utc).replace(tzinfo=None)

    def _log(self, action: str, booking_id: Optional[str] = None, device_id: Optional[int] = None,
             success: bool = True, error: Optional[str] = None) -> None:
        self.db.add(AccessLog(
            tenant_id=self.tenant_id,
            booking_id=booking_id,
            device_id=device_id,
            action=action,
            success=success,
            error_message=error,
            created_at=self._utc_now(),
        ))

    def _booth_device_id(self, booth_id: int) -> Optional[int]:
        row = self.db.query(Device.id).filter(Device.booth_id == booth_id).order_by(Device.id).first()
        return row[0] if row else None

    # Access codes

    def _generate_code(self, booking: Booking) -> str:
        length = self.policy.access_code_length
        in_use = {
            code for (code,) in self.db.query(Booking.access_code).filter(
                Booking.booth_id == booking.booth_id,
                Booking.access_code.isnot(None),
                Booking.id != booking.id,
            )
        }
        for _ in range(CODE_ATTEMPTS):
            code = "".join(secrets.choice(string.digits) for _ in range(length))
            if code not in in_use:
                return code
        raise ConfigurationError(f"Could not find a free {length}-digit access code for booth {booking.booth_id}")

    def issue_access(self, booking: Booking) -> str:
        """Issue the booking's access code; returns the existing one if already issued"""
        if booking.status not in ACCESS_STATUSES:
            raise InvalidTransition(f"Cannot issue access for a {booking.status} booking")
        if booking.access_code:
            return booking.access_code

        booking.access_code = self._generate_code(booking)
        booking.access_code_issued_at = self._utc_now()
        self._log("code_issued", booking.id, self._booth_device_id(booking.booth_id))
        self.db.flush()
        logger.info("Issued access code for booking %s on booth %s", booking.id, booking.booth_id)
        return booking.access_code

    def revoke_access(self, booking: Booking) -> bool:
        if not booking.access_code:
            return False
        booking.access_code = None
        self._log("code_revoked", booking.id, self._booth_device_id(booking.booth_id))
        self.db.flush()
        logger.info("Revoked access code for booking %s", booking.id)
        return True

    def in_access_window(self, booking: Booking, local_now: datetime) -> bool:
        opens = booking.start_at - timedelta(minutes=self.policy.early_access_minutes)
        return opens <= local_now <= booking.end_at

    # Devices

    def get_device(self, device_id: int) -> Device:
        device = (
            self.db.query(Device)
            .filter(Device.id == device_id, Device.tenant_id == self.tenant_id)
            .first()
        )
        if not device:
            raise NotFound(f"Device {device_id} not found", code="IOT_004")
        return device

    def is_online(self, device: Device) -> bool:
        if device.last_seen is None:
            return False
        age = self._utc_now() - device.last_seen
        return age < timedelta(seconds=settings.DEVICE_OFFLINE_AFTER_SECONDS)

    def active_booking_for(self, booth_id: int) -> Optional[Booking]:
        now = self.policy.local_now(self.clock)
        return (
            self.db.query(Booking)
            .filter(
                Booking.booth_id == booth_id,
                Booking.status == "active",
                Booking.start_at <= now,
                Booking.end_at > now,
            )
            .first()
        )

    def _require_gateway(self) -> LockGateway:
        if self.gateway is None:
            raise ConfigurationError("No lock gateway configured")
        return self.gateway

    def _call_device(self, device: Device, action: str, booking_id: Optional[str] = None):
        """Run one gateway call against an online device; failures are logged and re-raised"""
        if not self.is_online(device):
            self._log(action, booking_id, device.id, success=False, error="device offline")
            self.db.commit()
            logger.warning("Device %s is offline (last seen %s); %s refused", device.id, device.last_seen, action)
            raise DeviceUnreachable(f"Device {device.id} is offline")

        gateway = self._require_gateway()
        call = {"lock": gateway.lock, "unlock": gateway.unlock, "sync": gateway.status}[action]
        try:
            return call(device.external_id)
        except (DeviceTimeout, DeviceUnreachable) as e:
            self._log(action, booking_id, device.id, success=False, error=e.message)
            self.db.commit()
            logger.warning("Device %s %s failed: %s", device.id, action, e.message)
            raise

    def lock(self, device_id: int) -> Device:
        device = self.get_device(device_id)
        self._call_device(device, "lock")
        device.status = "locked"
        self._log("lock", device_id=device.id)
        self.db.commit()
        logger.info("Device %s locked", device.id)
        return device

    def unlock(self, device_id: int) -> Device:
        """Unlock only while an active booking for the device's booth covers now"""
        device = self.get_device(device_id)
        booking = self.active_booking_for(device.booth_id) if device.booth_id else None
        if booking is None:
            self._log("unlock", device_id=device.id, success=False, error="no active booking")
            self.db.commit()
            logger.warning("Refused unlock of device %s: no active booking on booth %s", device.id, device.booth_id)
            raise NotAuthorized(f"No active booking covers booth {device.booth_id} now")

        self._call_device(device, "unlock", booking.id)
        device.status = "unlocked"
        self._log("unlock", booking.id, device.id)
        self.db.commit()
        logger.info("Device %s unlocked for booking %s", device.id, booking.id)
        return device

    def sync(self, device_id: int) -> Device:
        device = self.get_device(device_id)
        report = self._call_device(device, "sync")
        self.apply_report(device, report.lock_status, report.battery_level, self.report_seen_at(report))
        self._log("sync", device_id=device.id)
        self.db.commit()
        return device

    def report_seen_at(self, report: LockStatusReport) -> datetime:
        """When the bridge last heard from the lock, never later than now"""
        now = self._utc_now()
        seen_at = report.reported_at
        if seen_at is None:
            return now
        if seen_at.tzinfo is not None:
            seen_at = seen_at.astimezone(timezone.utc).replace(tzinfo=None)
        return min(seen_at, now)

    def apply_report(self, device: Device, lock_status: Optional[str], battery_level: Optional[int],
                     seen_at: datetime) -> None:
        device.last_seen = seen_at
        if lock_status:
            device.status = lock_status
        if battery_level is not None:
            device.battery_level = battery_level
            if battery_level < settings.LOW_BATTERY_THRESHOLD:
                logger.warning("Device %s battery low: %s%%", device.id, battery_level)

    def ingest_telemetry(self, payload: TelemetryPayload) -> Device:
        """Record a telemetry push.

        Reports older than the last one seen are ignored; reports dated in the
        future beyond ``TELEMETRY_MAX_SKEW_SECONDS`` are rejected so they cannot
        shadow later real ones.
        """
        device = self.get_device(payload.device_id)
        seen_at = payload.last_seen
        if seen_at.tzinfo is not None:
            seen_at = seen_at.astimezone(timezone.utc).replace(tzinfo=None)

        latest_allowed = self._utc_now() + timedelta(seconds=settings.TELEMETRY_MAX_SKEW_SECONDS)
        if seen_at > latest_allowed:
            logger.warning("Rejected telemetry for device %s dated in the future: %s", device.id, seen_at)
            raise ValidationError(f"Telemetry for device {device.id} is dated in the future ({seen_at})")

        if device.last_seen is not None and seen_at <= device.last_seen:
            logger.debug("Ignoring stale telemetry for device %s (%s <= %s)", device.id, seen_at, device.last_seen)
            return device

        lock_status = payload.lock_status.value if payload.lock_status else None
        self.apply_report(device, lock_status, payload.battery_level, seen_at)
        self.db.commit()
        return device
