import uuid

from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, Date, Time, Text, ForeignKey, Numeric, JSON, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from boothcore.database import Base

# SQLite only autoincrements INTEGER primary keys
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def _uuid() -> str:
    return str(uuid.uuid4())

# ================================
# Tenants & Users
# ================================
class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(BigIntPK, primary_key=True, index=True)
    slug = Column(String(50), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    status = Column(String(20), default="active")
    settings = Column(JSON, default=dict)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    booths = relationship("Booth", back_populates="tenant")
    users = relationship("User", back_populates="tenant")

class User(Base):
    __tablename__ = "users"

    id = Column(BigIntPK, primary_key=True, index=True)
    tenant_id = Column(BigIntPK, ForeignKey("tenants.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255))
    # Cached running sum of credit_transactions.delta; only CreditsLedger writes it
    credits = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship("Tenant", back_populates="users")
    credit_transactions = relationship("CreditTransaction", back_populates="user")
    bookings = relationship("Booking", back_populates="user")

# ================================
# Booths
# ================================
class Booth(Base):
    __tablename__ = "booths"

    id = Column(BigIntPK, primary_key=True, index=True)
    tenant_id = Column(BigIntPK, ForeignKey("tenants.id"), nullable=False, index=True)
    location_name = Column(String(255))
    name = Column(String(255), nullable=False)
    base_hourly_rate = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    capacity = Column(Integer, default=1)
    status = Column(String(20), default="available", index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship("Tenant", back_populates="booths")
    bookings = relationship("Booking", back_populates="booth")
    devices = relationship("Device", back_populates="booth")

# ================================
# Bookings
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(BigIntPK, ForeignKey("tenants.id"), nullable=False, index=True)
    booth_id = Column(BigIntPK, ForeignKey("booths.id"), nullable=False)
    user_id = Column(BigIntPK, ForeignKey("users.id"), index=True)
    guest_name = Column(String(255))
    guest_email = Column(String(255))
    guest_phone = Column(String(50))

    # Wall-clock time at the booth's location
    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default="pending", index=True)
    total_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    applied_multiplier = Column(Numeric(4, 2), default=1)
    applied_discount_pct = Column(Numeric(5, 2), default=0)
    paid_with_credits = Column(Boolean, default=False)

    access_code = Column(String(12))
    access_code_issued_at = Column(DateTime)

    confirmed_at = Column(DateTime)
    checked_in_at = Column(DateTime)
    checked_out_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    cancellation_reason = Column(Text)
    refund_amount = Column(Numeric(12, 2))

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    booth = relationship("Booth", back_populates="bookings")
    user = relationship("User", back_populates="bookings")
    access_logs = relationship("AccessLog", back_populates="booking")

    __table_args__ = (
        Index("ix_bookings_booth_window", "booth_id", "start_at", "end_at"),
    )

# ================================
# Credits
# ================================
class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(BigIntPK, ForeignKey("tenants.id"), nullable=False)
    user_id = Column(BigIntPK, ForeignKey("users.id"), nullable=False, index=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), index=True)
    delta = Column(Numeric(12, 2), nullable=False)
    reason = Column(String(50), nullable=False)
    resulting_balance = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime, nullable=False)

    # Relationships
    user = relationship("User", back_populates="credit_transactions")

class CreditPackage(Base):
    __tablename__ = "credit_packages"

    id = Column(BigIntPK, primary_key=True, index=True)
    tenant_id = Column(BigIntPK, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    credits = Column(Integer, nullable=False)
    bonus_credits = Column(Integer, default=0)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="PLN")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())

# ================================
# Pricing Rules
# ================================
class Discount(Base):
    __tablename__ = "discounts"

    id = Column(BigIntPK, primary_key=True, index=True)
    tenant_id = Column(BigIntPK, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    min_hours = Column(Numeric(5, 2), default=0)
    applies_to = Column(String(20), default="all")
    valid_from = Column(Date)
    valid_until = Column(Date)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, server_default=func.now())

class PeakHours(Base):
    __tablename__ = "peak_hours"

    id = Column(BigIntPK, primary_key=True, index=True)
    tenant_id = Column(BigIntPK, ForeignKey("tenants.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_hour = Column(Integer, nullable=False)
    end_hour = Column(Integer, nullable=False)
    multiplier = Column(Numeric(4, 2), nullable=False)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, server_default=func.now())

# ================================
# Devices & Access
# ================================
class Device(Base):
    __tablename__ = "devices"

    id = Column(BigIntPK, primary_key=True, index=True)
    tenant_id = Column(BigIntPK, ForeignKey("tenants.id"), nullable=False, index=True)
    booth_id = Column(BigIntPK, ForeignKey("booths.id"), index=True)
    external_id = Column(String(100), nullable=False)
    name = Column(String(255))
    status = Column(String(20), default="locked")
    last_seen = Column(DateTime)
    battery_level = Column(Integer)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    booth = relationship("Booth", back_populates="devices")
    access_logs = relationship("AccessLog", back_populates="device")

class AccessLog(Base):
    __tablename__ = "access_logs"

    id = Column(BigIntPK, primary_key=True, index=True)
    tenant_id = Column(BigIntPK, ForeignKey("tenants.id"), nullable=False)
    booking_id = Column(String(36), ForeignKey("bookings.id"), index=True)
    device_id = Column(BigIntPK, ForeignKey("devices.id"), index=True)
    action = Column(String(20), nullable=False)
    success = Column(Boolean, default=True)
    error_message = Column(Text)
    created_at = Column(DateTime, nullable=False)

    # Relationships
    booking = relationship("Booking", back_populates="access_logs")
    device = relationship("Device", back_populates="access_logs")
