import random
import threading
from datetime import datetime, time
from decimal import Decimal

import pytest

from boothcore.bookings.service import BookingService
from boothcore.exceptions import InvalidTransition, SlotConflict, ValidationError
from boothcore.models import Booking
from boothcore.reservations.manager import HOLDING_STATUSES, ReservationManager, overlaps

from .conftest import BOOKING_DAY, booking_request


def test_overlap_is_half_open():
    ten, eleven, noon = (datetime(2025, 7, 21, h) for h in (10, 11, 12))

    assert overlaps(ten, noon, eleven, noon)
    assert not overlaps(ten, eleven, eleven, noon)


def test_adjacent_bookings_are_allowed(service, booth):
    first = service.create_booking(booking_request(booth.id, "10:00", "12:00", guest=True))
    second = service.create_booking(booking_request(booth.id, "12:00", "13:00", guest=True))

    assert first.status == second.status == "pending"


def test_overlapping_booking_is_rejected(service, booth):
    service.create_booking(booking_request(booth.id, "10:00", "12:00", guest=True))

    with pytest.raises(SlotConflict):
        service.create_booking(booking_request(booth.id, "11:45", "12:30", guest=True))
    assert service.db.query(Booking).count() == 1


def test_same_slot_on_another_booth_is_free(service, booth, other_booth):
    service.create_booking(booking_request(booth.id, "10:00", "12:00", guest=True))
    booking = service.create_booking(booking_request(other_booth.id, "10:00", "12:00", guest=True))

    assert booking.booth_id == other_booth.id


def test_cancelled_booking_frees_its_slot(service, booth):
    first = service.create_booking(booking_request(booth.id, "10:00", "12:00", guest=True))
    service.cancel(first.id, "changed plans")

    again = service.create_booking(booking_request(booth.id, "10:00", "12:00", guest=True))

    assert again.id != first.id
    assert again.status == "pending"


def test_release_refuses_a_held_slot(service, booth):
    booking = service.create_booking(booking_request(booth.id, "10:00", "12:00", guest=True))

    with pytest.raises(InvalidTransition):
        ReservationManager(service.db, booth.tenant_id).release(booking.id)


def test_randomized_bookings_never_overlap(service, booth, other_booth):
    rng = random.Random(20250721)
    booths = [booth.id, other_booth.id]
    accepted = rejected = 0

    for i in range(80):
        start = rng.randrange(8 * 4, 20 * 4)
        length = rng.randrange(1, 12)
        end = min(start + length, 24 * 4 - 1)
        request = booking_request(
            rng.choice(booths),
            f"{start // 4:02d}:{start % 4 * 15:02d}",
            f"{end // 4:02d}:{end % 4 * 15:02d}",
            guest=True,
        )
        try:
            booking = service.create_booking(request)
            accepted += 1
            if rng.random() < 0.2:
                service.cancel(booking.id)
        except SlotConflict:
            rejected += 1

    assert accepted and rejected

    holding = service.db.query(Booking).filter(Booking.status.in_(HOLDING_STATUSES)).all()
    for i, a in enumerate(holding):
        for b in holding[i + 1:]:
            if a.booth_id == b.booth_id:
                assert not overlaps(a.start_at, a.end_at, b.start_at, b.end_at), (a.id, b.id)


def test_concurrent_overlapping_reservations_admit_exactly_one(session_factory, tenant, booth, clock):
    tenant_id, booth_id = tenant.id, booth.id
    barrier = threading.Barrier(2)
    outcomes = []

    def reserve(start, end):
        session = session_factory()
        try:
            service = BookingService(session, tenant_id, clock)
            barrier.wait()
            service.create_booking(booking_request(booth_id, start, end, guest=True))
            outcomes.append("ok")
        except SlotConflict:
            outcomes.append("conflict")
        finally:
            session.close()

    threads = [
        threading.Thread(target=reserve, args=("14:00", "15:00")),
        threading.Thread(target=reserve, args=("14:30", "15:30")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["conflict", "ok"]
    session = session_factory()
    try:
        assert session.query(Booking).count() == 1
    finally:
        session.close()


def test_booking_in_the_past_is_rejected(service, booth, clock):
    clock.set(11, 0)

    with pytest.raises(ValidationError):
        service.create_booking(booking_request(booth.id, "10:00", "12:00", guest=True))


def test_maintenance_booth_cannot_be_booked(service, booth):
    booth.status = "maintenance"
    service.db.commit()

    with pytest.raises(ValidationError):
        service.create_booking(booking_request(booth.id, "10:00", "12:00", guest=True))


def test_availability_lists_held_slots(service, booth):
    kept = service.create_booking(booking_request(booth.id, "10:00", "12:00", guest=True))
    dropped = service.create_booking(booking_request(booth.id, "13:00", "14:00", guest=True))
    service.cancel(dropped.id)

    availability = ReservationManager(service.db, booth.tenant_id).availability(booth.id, BOOKING_DAY)

    assert availability.booth_status == "available"
    assert [b.booking_id for b in availability.busy] == [kept.id]
    assert availability.busy[0].start_at.time() == time(10, 0)
    assert kept.total_price == Decimal("60.00")
