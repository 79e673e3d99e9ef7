from datetime import timedelta

import pytest

from boothcore.bookings.service import BookingService
from boothcore.bookings.sweep import BookingSweeper
from boothcore.devices import controller as controller_module
from boothcore.exceptions import InvalidTransition, NotAuthorized
from boothcore.models import AccessLog, Booking

from .conftest import booking_request, set_tenant_settings

EARLY_ACCESS = timedelta(minutes=5)


def assert_code_matches_window(booking, now):
    live = booking.status in ("confirmed", "active") and booking.start_at - EARLY_ACCESS <= now <= booking.end_at
    assert (booking.access_code is not None) == live, (booking.status, now, booking.access_code)


def test_access_code_follows_status_and_window(db, session_factory, service, booth, user, clock):
    member = service.create_booking(booking_request(booth.id, "10:00", "12:00"), user.id)
    guest = service.create_booking(booking_request(booth.id, "13:00", "14:00", guest=True))
    service.confirm(guest.id)
    sweeper = BookingSweeper(session_factory, clock)

    timeline = [(8, 0), (9, 54), (9, 55), (10, 0), (11, 0), (12, 0), (12, 55), (13, 10), (14, 0), (14, 1)]
    for hour, minute in timeline:
        clock.set(hour, minute)
        if (hour, minute) == (10, 0):
            service.check_in(member.id)
        if (hour, minute) == (13, 10):
            service.cancel(guest.id)
        sweeper.run_once()
        db.expire_all()

        now = clock().replace(tzinfo=None)
        for booking_id in (member.id, guest.id):
            assert_code_matches_window(db.get(Booking, booking_id), now)

    assert db.get(Booking, member.id).status == "completed"
    assert db.get(Booking, guest.id).status == "cancelled"


def test_issue_access_is_idempotent(db, service, booth, user, clock):
    booking = service.create_booking(booking_request(booth.id, "10:00", "12:00"), user.id)
    clock.set(9, 55)

    first = service.access_code(booking.id, user.id).access_code
    second = service.access_code(booking.id, user.id).access_code

    assert first == second
    assert db.query(AccessLog).filter_by(action="code_issued").count() == 1


def test_access_code_length_and_alphabet(db, tenant, booth, user, clock):
    set_tenant_settings(db, tenant, access_code_length=8)
    service = BookingService(db, tenant.id, clock)
    booking = service.create_booking(booking_request(booth.id, "10:00", "12:00"), user.id)
    clock.set(10, 0)

    code = service.check_in(booking.id).access_code

    assert len(code) == 8
    assert code.isdigit()


def test_access_code_before_window_is_refused(service, booth, user):
    booking = service.create_booking(booking_request(booth.id, "10:00", "12:00"), user.id)

    with pytest.raises(NotAuthorized):
        service.access_code(booking.id, user.id)


def test_access_code_for_another_user_is_refused(db, service, booth, user, clock):
    booking = service.create_booking(booking_request(booth.id, "10:00", "12:00"), user.id)
    clock.set(10, 0)

    with pytest.raises(NotAuthorized):
        service.access_code(booking.id, user.id + 1)


def test_codes_are_unique_among_live_codes_on_a_booth(monkeypatch, service, booth, user, clock):
    digits = iter("111111" "111111" "222222")
    monkeypatch.setattr(controller_module.secrets, "choice", lambda alphabet: next(digits))

    first = service.create_booking(booking_request(booth.id, "10:00", "12:00"), user.id)
    second = service.create_booking(booking_request(booth.id, "12:00", "13:00", guest=True))
    service.confirm(second.id)
    clock.set(10, 0)
    assert service.check_in(first.id).access_code == "111111"

    clock.set(11, 55)
    assert service.access_code(second.id).access_code == "222222"


def test_cannot_issue_access_for_pending_booking(service, booth):
    booking = service.create_booking(booking_request(booth.id, "10:00", "12:00", guest=True))

    with pytest.raises(InvalidTransition):
        service.access.issue_access(booking)
