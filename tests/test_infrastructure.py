import logging
import threading
import time
from datetime import datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from boothcore.exceptions import ConfigurationError, NotFound
from boothcore.locks import KeyedLock
from boothcore.logging_config import setup_logging
from boothcore.tenants import TenantPolicy, load_policy, policy_from_settings


# Tenant policy

def test_policy_defaults():
    policy = policy_from_settings(None)

    assert policy.currency == "PLN"
    assert policy.currency_decimals == 2
    assert policy.grace_period_minutes == 15
    assert policy.no_show_penalty_percent == Decimal("50")
    assert policy.access_code_length == 6


def test_policy_normalizes_currency():
    assert policy_from_settings({"currency": "eur"}).currency == "EUR"


@pytest.mark.parametrize("raw", [
    {"currency_decimals": 3},
    {"timezone": "Mars/Olympus_Mons"},
    {"no_show_penalty_percent": 120},
    {"access_code_length": 3},
    {"currency": "ZLOTY"},
])
def test_invalid_settings_are_configuration_errors(raw, caplog):
    with caplog.at_level(logging.ERROR):
        with pytest.raises(ConfigurationError):
            policy_from_settings(raw)
    assert any("Rejected tenant settings" in r.message for r in caplog.records)


def test_local_now_uses_tenant_timezone():
    try:
        ZoneInfo("Europe/Warsaw")
    except ZoneInfoNotFoundError:
        pytest.skip("no tz database available")
    policy = TenantPolicy(timezone="Europe/Warsaw")
    clock = lambda: datetime(2025, 7, 21, 8, 0, tzinfo=timezone.utc)

    assert policy.local_now(clock) == datetime(2025, 7, 21, 10, 0)


def test_local_now_in_utc():
    clock = lambda: datetime(2025, 7, 21, 8, 0, tzinfo=timezone.utc)

    assert TenantPolicy().local_now(clock) == datetime(2025, 7, 21, 8, 0)


def test_load_policy_unknown_tenant(db):
    with pytest.raises(NotFound) as exc:
        load_policy(db, 42)
    assert exc.value.code == "TENANT_001"


# Keyed locks

def test_keyed_lock_is_reentrant():
    locks = KeyedLock("test")

    with locks.hold(1):
        with locks.hold(1):
            assert len(locks) == 1

    assert len(locks) == 0


def test_keyed_lock_forgets_released_keys():
    locks = KeyedLock("booth")

    for key in range(100):
        with locks.hold(key):
            pass

    assert len(locks) == 0
    assert repr(locks) == "<KeyedLock booth: 0 keys in use>"


def test_keyed_lock_serializes_same_key_only():
    locks = KeyedLock("test")
    events = []

    def worker(key, tag):
        with locks.hold(key):
            events.append(f"{tag}-in")
            time.sleep(0.05)
            events.append(f"{tag}-out")

    with locks.hold("a"):
        same = threading.Thread(target=worker, args=("a", "same"))
        other = threading.Thread(target=worker, args=("b", "other"))
        same.start()
        other.start()
        other.join()
        events.append("main-out")
    same.join()

    assert events.index("other-out") < events.index("main-out") < events.index("same-in")


# Logging

@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    devices = logging.getLogger("boothcore.devices")
    saved = (root.level, list(root.handlers), list(devices.handlers))
    yield
    for handler in root.handlers + devices.handlers:
        if handler not in saved[1] + saved[2]:
            handler.close()
    root.setLevel(saved[0])
    root.handlers = saved[1]
    devices.handlers = saved[2]


def test_setup_logging_writes_rotating_files(tmp_path, restore_logging):
    setup_logging(level="info", log_dir=str(tmp_path))
    setup_logging(level="info", log_dir=str(tmp_path))

    logging.getLogger("boothcore.devices.controller").warning("Device 7 battery low: 9%")
    logging.getLogger("boothcore.bookings.state_machine").error("Rejected transition")
    for handler in logging.getLogger().handlers + logging.getLogger("boothcore.devices").handlers:
        handler.flush()

    assert len(logging.getLogger("boothcore.devices").handlers) == 1
    assert "battery low" in (tmp_path / "devices.log").read_text()
    assert "Rejected transition" in (tmp_path / "boothcore_errors.log").read_text()
    assert "battery low" not in (tmp_path / "boothcore_errors.log").read_text()
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
