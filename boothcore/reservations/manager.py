"""
Booth time-slot allocation.

A slot is never stored on its own: it is the ``(booth, start_at, end_at)``
of a booking in a non-terminal status, and the slot id is the booking id.
Two slots on a booth conflict iff ``s1 < e2 and s2 < e1``.

``booth_guard`` serializes every slot-changing unit of work for a booth. The
caller must commit (or roll back) before leaving the guard, so a competing
reserve always sees the winner's booking.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from boothcore.exceptions import InvalidTransition, NotFound, SlotConflict, ValidationError
from boothcore.locks import booth_locks
from boothcore.models import Booking, Booth

logger = logging.getLogger(__name__)

# Statuses that hold their slot
HOLDING_STATUSES = ("pending", "confirmed", "active")

BOOKABLE_BOOTH_STATUSES = ("available", "occupied")


def combine(day: date, at: time) -> datetime:
    return datetime.combine(day, at)


def minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start) / timedelta(minutes=1))


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


@dataclass
class BusyInterval:
    booking_id: str
    start_at: datetime
    end_at: datetime
    status: str


@dataclass
class BoothAvailability:
    booth_id: int
    date: date
    booth_status: str
    busy: List[BusyInterval] = field(default_factory=list)


class ReservationManager:

    def __init__(self, db: Session, tenant_id: int):
        self.db = db
        self.tenant_id = tenant_id

    def get_booth(self, booth_id: int, for_update: bool = False) -> Booth:
        query = self.db.query(Booth).filter(Booth.id == booth_id, Booth.tenant_id == self.tenant_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        booth = query.first()
        if not booth:
            raise NotFound(f"Booth {booth_id} not found")
        return booth

    @contextmanager
    def booth_guard(self, booth_id: int):
        """Hold the booth's mutex and row lock; yields the locked booth"""
        with booth_locks.hold(booth_id):
            yield self.get_booth(booth_id, for_update=True)

    def conflicts(
        self,
        booth_id: int,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        query = self.db.query(Booking).filter(
            Booking.booth_id == booth_id,
            Booking.status.in_(HOLDING_STATUSES),
            Booking.start_at < end_at,
            Booking.end_at > start_at,
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.start_at).all()

    def reserve(self, booking: Booking) -> str:
        """
        Admit ``booking``'s slot or raise ``SlotConflict``.

        Must run inside ``booth_guard(booking.booth_id)``; the booking is
        added to the session and flushed, the caller owns the commit.
        """
        if booking.end_at <= booking.start_at:
            raise ValidationError("Slot must end after it starts")
        clashes = self.conflicts(booking.booth_id, booking.start_at, booking.end_at, booking.id)
        if clashes:
            logger.info(
                "Slot conflict on booth %s for %s-%s (held by %s)",
                booking.booth_id, booking.start_at, booking.end_at, clashes[0].id,
            )
            raise SlotConflict(
                f"Booth {booking.booth_id} is already booked between "
                f"{clashes[0].start_at:%H:%M} and {clashes[0].end_at:%H:%M}"
            )
        self.db.add(booking)
        self.db.flush()
        logger.info("Reserved booth %s %s-%s as slot %s",
                    booking.booth_id, booking.start_at, booking.end_at, booking.id)
        return booking.id

    def extend(self, booking: Booking, new_end_at: datetime) -> None:
        """Grow a held slot to ``new_end_at``; same guard rules as ``reserve``"""
        if new_end_at <= booking.end_at:
            raise ValidationError("Extension must move the end time later")
        clashes = self.conflicts(booking.booth_id, booking.end_at, new_end_at, booking.id)
        if clashes:
            raise SlotConflict(
                f"Booth {booking.booth_id} is booked from {clashes[0].start_at:%H:%M}"
            )
        booking.end_at = new_end_at
        booking.end_time = new_end_at.time()
        self.db.flush()

    def release(self, slot_id: str) -> Booking:
        """
        Release a slot whose booking has reached a terminal status.

        The booth goes back to ``available`` unless another booking is
        still active on it.
        """
        booking = self.db.query(Booking).filter(Booking.id == slot_id).first()
        if not booking:
            raise NotFound(f"Slot {slot_id} not found")
        if booking.status in HOLDING_STATUSES:
            raise InvalidTransition(f"Slot {slot_id} is still held by a {booking.status} booking")

        booth = booking.booth
        if booth.status == "occupied":
            still_active = (
                self.db.query(Booking.id)
                .filter(
                    Booking.booth_id == booth.id,
                    Booking.status == "active",
                    Booking.id != booking.id,
                )
                .first()
            )
            if not still_active:
                booth.status = "available"
        self.db.flush()
        logger.info("Released slot %s on booth %s", slot_id, booth.id)
        return booking

    def occupy(self, booking: Booking) -> None:
        if booking.booth.status == "available":
            booking.booth.status = "occupied"

    def availability(self, booth_id: int, day: date) -> BoothAvailability:
        booth = self.get_booth(booth_id)
        day_start = datetime.combine(day, time.min)
        day_end = day_start + timedelta(days=1)
        busy = [
            BusyInterval(booking_id=b.id, start_at=b.start_at, end_at=b.end_at, status=b.status)
            for b in self.conflicts(booth_id, day_start, day_end)
        ]
        return BoothAvailability(booth_id=booth.id, date=day, booth_status=booth.status, busy=busy)
