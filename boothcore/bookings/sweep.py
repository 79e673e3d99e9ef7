"""
Periodic lifecycle sweep.

Finds bookings whose clock deadline has passed and applies the matching
step through ``BookingService``, one booking per unit of work:

- unpaid pending holds older than ``pending_hold_minutes`` are cancelled
- confirmed bookings get their access code when the access window opens
- confirmed bookings past ``start + grace_period_minutes`` without a
  check-in become no-shows
- active bookings past their end are completed
- access codes outside their status or window are revoked

Each step re-checks its deadline after taking the locks, so the sweep can
run alongside request traffic.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from boothcore.bookings.service import BookingService
from boothcore.exceptions import BoothCoreError
from boothcore.models import Booking, Tenant
from boothcore.tenants import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass
class SweepSummary:
    expired_holds: int = 0
    access_issued: int = 0
    no_shows: int = 0
    completed: int = 0
    codes_revoked: int = 0
    failed: int = 0

    def total(self) -> int:
        return self.expired_holds + self.access_issued + self.no_shows + self.completed + self.codes_revoked


class BookingSweeper:

    def __init__(self, session_factory: Callable[[], Session], clock: Optional[Clock] = None):
        self.session_factory = session_factory
        self.clock = clock or utc_now

    def _step(self, db: Session, summary: SweepSummary, counter: str, action, booking_id: str) -> None:
        try:
            if action(booking_id):
                setattr(summary, counter, getattr(summary, counter) + 1)
        except BoothCoreError as e:
            summary.failed += 1
            logger.error("Sweep step %s failed for booking %s: %s", counter, booking_id, e.message)
        except SQLAlchemyError:
            db.rollback()
            summary.failed += 1
            logger.exception("Sweep step %s hit a database error for booking %s", counter, booking_id)

    def sweep_tenant(self, db: Session, tenant_id: int, summary: SweepSummary) -> None:
        service = BookingService(db, tenant_id, self.clock)
        policy = service.policy
        now = policy.local_now(self.clock)
        utc_now_naive = self.clock().astimezone(timezone.utc).replace(tzinfo=None)

        def ids(*criteria):
            rows = db.query(Booking.id).filter(Booking.tenant_id == tenant_id, *criteria).order_by(Booking.start_at)
            return [row[0] for row in rows]

        hold_cutoff = utc_now_naive - timedelta(minutes=policy.pending_hold_minutes)
        for booking_id in ids(Booking.status == "pending", Booking.created_at <= hold_cutoff):
            self._step(db, summary, "expired_holds", service.expire_hold, booking_id)

        no_show_cutoff = now - timedelta(minutes=policy.grace_period_minutes)
        for booking_id in ids(
            Booking.status == "confirmed",
            Booking.checked_in_at.is_(None),
            Booking.start_at <= no_show_cutoff,
        ):
            self._step(db, summary, "no_shows", service.mark_no_show, booking_id)

        for booking_id in ids(Booking.status == "active", Booking.end_at <= now):
            self._step(db, summary, "completed", service.complete_ended, booking_id)

        access_cutoff = now + timedelta(minutes=policy.early_access_minutes)
        for booking_id in ids(
            Booking.status.in_(("confirmed", "active")),
            Booking.access_code.is_(None),
            Booking.start_at <= access_cutoff,
            Booking.end_at >= now,
        ):
            self._step(db, summary, "access_issued", service.issue_due_access, booking_id)

        for booking_id in ids(Booking.access_code.isnot(None)):
            self._step(db, summary, "codes_revoked", service.revoke_stale_access, booking_id)

    def run_once(self) -> SweepSummary:
        summary = SweepSummary()
        db = self.session_factory()
        try:
            tenant_ids = [row[0] for row in db.query(Tenant.id).filter(Tenant.status == "active")]
            for tenant_id in tenant_ids:
                try:
                    self.sweep_tenant(db, tenant_id, summary)
                except BoothCoreError as e:
                    summary.failed += 1
                    logger.error("Sweep of tenant %s failed: %s", tenant_id, e.message)
        finally:
            db.close()
        if summary.total() or summary.failed:
            logger.info("Lifecycle sweep: %s", summary)
        return summary

    async def run(self, stop_event: asyncio.Event, interval: float) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("Lifecycle sweep failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
