"""
Booking lifecycle.

    pending -> confirmed -> active -> completed
    pending | confirmed | active -> cancelled
    confirmed -> no_show

Every status change goes through ``next_status``; anything outside the
table raises ``InvalidTransition``. Side effects (slot, credits, access code)
are applied inside the caller's unit of work and never committed here.
"""
import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from boothcore.credits.ledger import CreditReason, CreditsLedger
from boothcore.devices.controller import DeviceAccessController
from boothcore.exceptions import InvalidTransition, ValidationError
from boothcore.models import Booking, Booth
from boothcore.pricing.engine import PricingService, check_duration, quantize_money
from boothcore.reservations.manager import BOOKABLE_BOOTH_STATUSES, ReservationManager, combine, minutes_between
from boothcore.tenants import Clock, TenantPolicy

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class BookingStatus(str, Enum):
    """Booking status enumeration"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class BookingEvent(str, Enum):
    """Events that move a booking between statuses"""
    CONFIRM = "confirm"
    CHECK_IN = "check_in"
    NO_SHOW = "no_show"
    COMPLETE = "complete"
    CANCEL = "cancel"


TERMINAL_STATUSES = (BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW)

TRANSITIONS = {
    (BookingStatus.PENDING, BookingEvent.CONFIRM): BookingStatus.CONFIRMED,
    (BookingStatus.CONFIRMED, BookingEvent.CHECK_IN): BookingStatus.ACTIVE,
    (BookingStatus.CONFIRMED, BookingEvent.NO_SHOW): BookingStatus.NO_SHOW,
    (BookingStatus.ACTIVE, BookingEvent.COMPLETE): BookingStatus.COMPLETED,
    (BookingStatus.PENDING, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.ACTIVE, BookingEvent.CANCEL): BookingStatus.CANCELLED,
}


def next_status(booking: Booking, event: BookingEvent) -> BookingStatus:
    current = BookingStatus(booking.status)
    target = TRANSITIONS.get((current, event))
    if target is None:
        logger.error("Rejected transition for booking %s: %s on %s", booking.id, event.value, current.value)
        raise InvalidTransition(f"Cannot {event.value} a {current.value} booking")
    return target


class BookingStateMachine:

    def __init__(
        self,
        db: Session,
        tenant_id: int,
        policy: TenantPolicy,
        clock: Clock,
        reservations: ReservationManager,
        pricing: PricingService,
        ledger: CreditsLedger,
        access: DeviceAccessController,
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.policy = policy
        self.clock = clock
        self.reservations = reservations
        self.pricing = pricing
        self.ledger = ledger
        self.access = access

    def local_now(self) -> datetime:
        return self.policy.local_now(self.clock)

    def utc_now(self) -> datetime:
        return self.clock().astimezone(timezone.utc).replace(tzinfo=None)

    def _move(self, booking: Booking, event: BookingEvent) -> None:
        previous = booking.status
        booking.status = next_status(booking, event).value
        logger.info("Booking %s: %s -> %s (%s)", booking.id, previous, booking.status, event.value)

    def access_opens_at(self, booking: Booking) -> datetime:
        return booking.start_at - timedelta(minutes=self.policy.early_access_minutes)

    def no_show_at(self, booking: Booking) -> datetime:
        return booking.start_at + timedelta(minutes=self.policy.grace_period_minutes)

    def _money(self, value: Decimal) -> Decimal:
        return quantize_money(value, self.policy.currency_decimals)

    # Creation

    def create(
        self,
        booth: Booth,
        booking_date: date,
        start_time: time,
        end_time: time,
        user_id: Optional[int] = None,
        guest_name: Optional[str] = None,
        guest_email: Optional[str] = None,
        guest_phone: Optional[str] = None,
    ) -> Booking:
        """
        Reserve the slot, price it and, for a member, pay with credits.

        Credit-paid bookings come out ``confirmed``; guest bookings stay
        ``pending`` until the payment collaborator confirms them.
        """
        start_at = combine(booking_date, start_time)
        end_at = combine(booking_date, end_time)
        duration = minutes_between(start_at, end_at)
        check_duration(duration, self.policy)
        if start_at < self.local_now():
            raise ValidationError("Cannot book a slot that has already started")
        if booth.status not in BOOKABLE_BOOTH_STATUSES:
            raise ValidationError(f"Booth {booth.id} is {booth.status} and cannot be booked")
        if user_id is None and not (guest_name and (guest_email or guest_phone)):
            raise ValidationError("Guest bookings need a name and an email or phone number")

        quote = self.pricing.quote(booth, booking_date, start_time, duration)

        booking = Booking(
            id=str(uuid.uuid4()),
            tenant_id=self.tenant_id,
            booth_id=booth.id,
            user_id=user_id,
            guest_name=guest_name,
            guest_email=guest_email,
            guest_phone=guest_phone,
            booking_date=booking_date,
            start_time=start_time,
            end_time=end_time,
            start_at=start_at,
            end_at=end_at,
            duration_minutes=duration,
            status=BookingStatus.PENDING.value,
            total_price=quote.amount,
            currency=quote.currency,
            applied_multiplier=quote.applied_multiplier,
            applied_discount_pct=quote.applied_discount_pct,
            paid_with_credits=user_id is not None,
            created_at=self.utc_now(),
        )
        self.reservations.reserve(booking)
        logger.info("Booking %s created as pending for booth %s (%s %s)",
                    booking.id, booth.id, booking.total_price, booking.currency)

        if user_id is not None:
            if quote.amount > 0:
                self.ledger.apply(
                    user_id, -quote.amount, CreditReason.BOOKING_PAYMENT,
                    booking_id=booking.id, tenant_id=self.tenant_id, commit=False,
                )
            self.confirm(booking)
        return booking

    # Transitions

    def confirm(self, booking: Booking) -> Booking:
        self._move(booking, BookingEvent.CONFIRM)
        booking.confirmed_at = self.utc_now()
        self.issue_due_access(booking)
        return booking

    def issue_due_access(self, booking: Booking) -> Optional[str]:
        """Issue the code once the access window has opened; no-op otherwise"""
        if booking.status not in (BookingStatus.CONFIRMED.value, BookingStatus.ACTIVE.value):
            return None
        if not self.access.in_access_window(booking, self.local_now()):
            return None
        return self.access.issue_access(booking)

    def check_in(self, booking: Booking) -> Booking:
        target = next_status(booking, BookingEvent.CHECK_IN)
        now = self.local_now()
        if now < self.access_opens_at(booking):
            raise ValidationError(f"Check-in opens at {self.access_opens_at(booking):%H:%M}")
        if now >= booking.end_at or now >= self.no_show_at(booking):
            logger.error("Rejected check-in for booking %s at %s: window closed", booking.id, now)
            raise InvalidTransition("Check-in window has closed")

        booking.status = target.value
        booking.checked_in_at = self.utc_now()
        logger.info("Booking %s: confirmed -> active (check_in)", booking.id)
        self.access.issue_access(booking)
        self.reservations.occupy(booking)
        return booking

    def mark_no_show(self, booking: Booking) -> Booking:
        target = next_status(booking, BookingEvent.NO_SHOW)
        if booking.checked_in_at is not None or self.local_now() < self.no_show_at(booking):
            logger.error("Rejected no-show for booking %s: grace period not over", booking.id)
            raise InvalidTransition("Grace period has not elapsed")

        booking.status = target.value
        logger.info("Booking %s: confirmed -> no_show", booking.id)
        keep = (HUNDRED - self.policy.no_show_penalty_percent) / HUNDRED
        self._refund(booking, self._paid_amount(booking) * keep, CreditReason.NO_SHOW_REFUND)
        self.access.revoke_access(booking)
        self.reservations.release(booking.id)
        return booking

    def complete(self, booking: Booking, checkout: bool = False) -> Booking:
        target = next_status(booking, BookingEvent.COMPLETE)
        if not checkout and self.local_now() < booking.end_at:
            logger.error("Rejected completion for booking %s before its end", booking.id)
            raise InvalidTransition("Booking has not ended yet")

        booking.status = target.value
        booking.checked_out_at = self.utc_now()
        logger.info("Booking %s: active -> completed (%s)", booking.id, "checkout" if checkout else "ended")
        self.access.revoke_access(booking)
        self.reservations.release(booking.id)
        return booking

    def cancel(self, booking: Booking, reason: Optional[str] = None) -> Booking:
        was = booking.status
        next_status(booking, BookingEvent.CANCEL)
        refund = self.cancellation_refund(booking)
        self._move(booking, BookingEvent.CANCEL)
        booking.cancelled_at = self.utc_now()
        booking.cancellation_reason = reason
        self._refund(booking, refund, CreditReason.CANCELLATION_REFUND)
        self.access.revoke_access(booking)
        self.reservations.release(booking.id)
        logger.info("Booking %s cancelled from %s, refund %s %s", booking.id, was, booking.refund_amount, booking.currency)
        return booking

    def extend(self, booking: Booking, minutes: int) -> Decimal:
        """Add ``minutes`` to a confirmed or active booking and charge for them"""
        if booking.status not in (BookingStatus.CONFIRMED.value, BookingStatus.ACTIVE.value):
            logger.error("Rejected extension for booking %s in status %s", booking.id, booking.status)
            raise InvalidTransition(f"Cannot extend a {booking.status} booking")
        if minutes <= 0:
            raise ValidationError("Extension must be positive")
        new_end = booking.end_at + timedelta(minutes=minutes)
        if new_end.date() != booking.booking_date:
            raise ValidationError("Bookings cannot extend past midnight")
        if booking.duration_minutes + minutes > self.policy.max_booking_hours * 60:
            raise ValidationError(f"Maximum booking duration is {self.policy.max_booking_hours} hours")
        if self.local_now() >= booking.end_at:
            raise ValidationError("Booking has already ended")

        # The whole booking is re-priced so it still carries at most one discount
        quote = self.pricing.quote(booking.booth, booking.booking_date, booking.start_time,
                                   booking.duration_minutes + minutes, enforce_limits=False)
        paid = Decimal(booking.total_price)
        charge = max(quote.amount - paid, Decimal("0"))

        self.reservations.extend(booking, new_end)
        booking.duration_minutes += minutes
        booking.total_price = paid + charge
        booking.applied_multiplier = quote.applied_multiplier
        booking.applied_discount_pct = quote.applied_discount_pct

        if booking.paid_with_credits and booking.user_id is not None and charge > 0:
            self.ledger.apply(
                booking.user_id, -charge, CreditReason.BOOKING_EXTENSION,
                booking_id=booking.id, tenant_id=self.tenant_id, commit=False,
            )
        logger.info("Booking %s extended by %s min to %s for %s %s",
                    booking.id, minutes, new_end, charge, quote.currency)
        return charge

    # Refunds

    def _paid_amount(self, booking: Booking) -> Decimal:
        """What the customer has paid so far; unconfirmed guest bookings have paid nothing"""
        if booking.status == BookingStatus.PENDING.value and not booking.paid_with_credits:
            return Decimal("0")
        return Decimal(booking.total_price)

    def cancellation_refund(self, booking: Booking) -> Decimal:
        paid = self._paid_amount(booking)
        now = self.local_now()
        if booking.status == BookingStatus.ACTIVE.value:
            remaining = max(0, minutes_between(now, booking.end_at))
            return paid * Decimal(remaining) / Decimal(booking.duration_minutes)
        free_until = booking.start_at - timedelta(hours=float(self.policy.free_cancellation_hours))
        if now <= free_until:
            return paid
        return paid * self.policy.late_cancellation_refund_percent / HUNDRED

    def _refund(self, booking: Booking, amount: Decimal, reason: str) -> None:
        amount = self._money(amount)
        booking.refund_amount = amount
        if amount > 0 and booking.paid_with_credits and booking.user_id is not None:
            self.ledger.apply(
                booking.user_id, amount, reason,
                booking_id=booking.id, tenant_id=self.tenant_id, commit=False,
            )
