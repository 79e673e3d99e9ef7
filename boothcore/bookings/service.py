import logging
from contextlib import contextmanager, nullcontext
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from boothcore.bookings.schemas import BookingCreateRequest
from boothcore.bookings.state_machine import BookingStateMachine
from boothcore.credits.ledger import CreditsLedger
from boothcore.devices.controller import DeviceAccessController
from boothcore.exceptions import NotAuthorized, NotFound
from boothcore.locks import user_locks
from boothcore.models import Booking, User
from boothcore.pricing.engine import PricingService
from boothcore.reservations.manager import ReservationManager
from boothcore.tenants import Clock, TenantPolicy, load_policy, utc_now

logger = logging.getLogger(__name__)


class BookingService:
    """Unit-of-work boundary for booking operations.

    Each public method locks the booth (and the paying user), applies one
    lifecycle step and commits; any error rolls the whole step back.
    """

    def __init__(self, db: Session, tenant_id: int, clock: Optional[Clock] = None,
                 policy: Optional[TenantPolicy] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.clock = clock or utc_now
        self.policy = policy or load_policy(db, tenant_id)
        self.reservations = ReservationManager(db, tenant_id)
        self.pricing = PricingService(db, tenant_id, self.policy)
        self.ledger = CreditsLedger(db, self.clock)
        self.access = DeviceAccessController(db, tenant_id, clock=self.clock, policy=self.policy)
        self.machine = BookingStateMachine(
            db, tenant_id, self.policy, self.clock,
            self.reservations, self.pricing, self.ledger, self.access,
        )

    @contextmanager
    def _unit_of_work(self, booth_id: int, user_id: Optional[int] = None):
        with self.reservations.booth_guard(booth_id) as booth:
            with user_locks.hold(user_id) if user_id is not None else nullcontext():
                try:
                    yield booth
                    self.db.commit()
                except Exception:
                    self.db.rollback()
                    raise

    def get_booking(self, booking_id: str) -> Booking:
        booking = (
            self.db.query(Booking)
            .filter(Booking.id == booking_id, Booking.tenant_id == self.tenant_id)
            .first()
        )
        if not booking:
            raise NotFound(f"Booking {booking_id} not found", code="BOOKING_003")
        return booking

    def _reload(self, booking_id: str) -> Booking:
        """Re-read a booking once its locks are held"""
        return (
            self.db.query(Booking)
            .filter(Booking.id == booking_id)
            .with_for_update()
            .populate_existing()
            .one()
        )

    @contextmanager
    def _locked_booking(self, booking_id: str):
        booking = self.get_booking(booking_id)
        with self._unit_of_work(booking.booth_id, booking.user_id):
            yield self._reload(booking_id)

    def create_booking(self, request: BookingCreateRequest, user_id: Optional[int] = None) -> Booking:
        if user_id is not None:
            user = self.db.query(User).filter(User.id == user_id, User.tenant_id == self.tenant_id).first()
            if not user:
                raise NotFound(f"User {user_id} not found")

        guest = request.guest
        with self._unit_of_work(request.booth_id, user_id) as booth:
            booking = self.machine.create(
                booth,
                request.booking_date,
                request.start_time,
                request.end_time,
                user_id=user_id,
                guest_name=guest.name if guest else None,
                guest_email=guest.email if guest else None,
                guest_phone=guest.phone if guest else None,
            )
        return booking

    def confirm(self, booking_id: str) -> Booking:
        """Payment collaborator reports that a pending booking has been paid"""
        with self._locked_booking(booking_id) as booking:
            self.machine.confirm(booking)
        return booking

    def check_in(self, booking_id: str) -> Booking:
        with self._locked_booking(booking_id) as booking:
            self.machine.check_in(booking)
        return booking

    def checkout(self, booking_id: str) -> Booking:
        with self._locked_booking(booking_id) as booking:
            self.machine.complete(booking, checkout=True)
        return booking

    def cancel(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        with self._locked_booking(booking_id) as booking:
            self.machine.cancel(booking, reason)
        return booking

    def extend(self, booking_id: str, minutes: int) -> Tuple[Booking, Decimal]:
        with self._locked_booking(booking_id) as booking:
            charged = self.machine.extend(booking, minutes)
        return booking, charged

    def access_code(self, booking_id: str, user_id: Optional[int] = None) -> Booking:
        """Return the booking with its code, issuing it if the window is open"""
        booking = self.get_booking(booking_id)
        if user_id is not None and booking.user_id != user_id:
            raise NotAuthorized("Booking belongs to another user")
        if not booking.access_code:
            with self._locked_booking(booking_id) as booking:
                self.machine.issue_due_access(booking)
        if not booking.access_code:
            opens = self.machine.access_opens_at(booking)
            raise NotAuthorized(
                f"No access code for a {booking.status} booking; access opens at {opens:%Y-%m-%d %H:%M}"
            )
        return booking

    # Sweep steps; each re-checks its deadline under the locks

    def expire_hold(self, booking_id: str) -> bool:
        with self._locked_booking(booking_id) as booking:
            if booking.status != "pending":
                return False
            self.machine.cancel(booking, "Payment not received in time")
        return True

    def mark_no_show(self, booking_id: str) -> bool:
        with self._locked_booking(booking_id) as booking:
            if booking.status != "confirmed" or booking.checked_in_at is not None:
                return False
            if self.machine.local_now() < self.machine.no_show_at(booking):
                return False
            self.machine.mark_no_show(booking)
        return True

    def complete_ended(self, booking_id: str) -> bool:
        with self._locked_booking(booking_id) as booking:
            if booking.status != "active" or self.machine.local_now() < booking.end_at:
                return False
            self.machine.complete(booking)
        return True

    def issue_due_access(self, booking_id: str) -> bool:
        with self._locked_booking(booking_id) as booking:
            return self.machine.issue_due_access(booking) is not None

    def revoke_stale_access(self, booking_id: str) -> bool:
        """Drop a code that outlived its booking's status or window"""
        with self._locked_booking(booking_id) as booking:
            live = booking.status in ("confirmed", "active") and self.access.in_access_window(
                booking, self.machine.local_now()
            )
            if live:
                return False
            return self.access.revoke_access(booking)
