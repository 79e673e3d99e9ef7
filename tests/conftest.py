"""Shared fixtures: a SQLite database per test, a frozen clock and a fake lock gateway."""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from boothcore.bookings.schemas import BookingCreateRequest, GuestContact
from boothcore.bookings.service import BookingService
from boothcore.database import build_engine, init_db
from boothcore.devices.gateway import LockStatusReport
from boothcore.models import Booth, Device, Tenant, User

# Monday
BOOKING_DAY = date(2025, 7, 21)


class FrozenClock:
    """Callable clock returning an aware UTC datetime that tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def set(self, hour: int, minute: int = 0, day: date = BOOKING_DAY) -> None:
        self.now = datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


class FakeLockGateway:
    """Records calls; can be told to fail or to run a hook during status polls."""

    def __init__(self, report: LockStatusReport = None):
        self.calls = []
        self.report = report or LockStatusReport(lock_status="locked", battery_level=80)
        self.error = None
        self.on_status = None
        self.closed = False

    def _record(self, action, external_id):
        self.calls.append((action, external_id))
        if self.error is not None:
            raise self.error

    def lock(self, external_id):
        self._record("lock", external_id)

    def unlock(self, external_id):
        self._record("unlock", external_id)

    def status(self, external_id):
        self._record("status", external_id)
        if self.on_status is not None:
            self.on_status(external_id)
        return self.report

    def close(self):
        self.closed = True


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'boothcore_test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 7, 21, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def tenant(db):
    tenant = Tenant(slug="acme", name="Acme Booths", settings={"currency": "PLN"})
    db.add(tenant)
    db.commit()
    return tenant


@pytest.fixture
def booth(db, tenant):
    booth = Booth(tenant_id=tenant.id, name="Booth 1", location_name="Centrum",
                  base_hourly_rate=Decimal("30"), currency="PLN")
    db.add(booth)
    db.commit()
    return booth


@pytest.fixture
def other_booth(db, tenant):
    booth = Booth(tenant_id=tenant.id, name="Booth 2", location_name="Centrum",
                  base_hourly_rate=Decimal("30"), currency="PLN")
    db.add(booth)
    db.commit()
    return booth


@pytest.fixture
def user(db, tenant):
    user = User(tenant_id=tenant.id, email="anna@example.com", full_name="Anna", credits=Decimal("100"))
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def device(db, tenant, booth, clock):
    device = Device(tenant_id=tenant.id, booth_id=booth.id, external_id="lock-001", name="Front door",
                    status="locked", battery_level=90,
                    last_seen=clock().replace(tzinfo=None) - timedelta(minutes=1))
    db.add(device)
    db.commit()
    return device


@pytest.fixture
def gateway():
    return FakeLockGateway()


@pytest.fixture
def service(db, tenant, clock):
    return BookingService(db, tenant.id, clock)


def booking_request(booth_id, start, end, day=BOOKING_DAY, guest=False):
    """Build a create request from 'HH:MM' strings"""
    return BookingCreateRequest(
        booth_id=booth_id,
        booking_date=day,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
        guest=GuestContact(name="Walk-in", email="walkin@example.com") if guest else None,
    )


def set_tenant_settings(db, tenant, **values):
    tenant.settings = {**(tenant.settings or {}), **values}
    db.commit()
