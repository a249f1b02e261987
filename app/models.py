import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .domain.bookings.state import BookingStatus, active_status_values


def generate_group_id():
    """Generate the shared identifier of a multi-session booking group"""
    return str(uuid.uuid4())


# Partial index predicate shared by PostgreSQL and SQLite
ACTIVE_SLOT_PREDICATE = text(
    "status IN (" + ", ".join(f"'{s}'" for s in active_status_values()) + ")"
)


class Branch(Base):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    address = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    barbers = relationship("Barber", back_populates="branch")


class Barber(Base):
    __tablename__ = "barbers"

    id = Column(Integer, primary_key=True, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True, index=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(50), nullable=True)
    telegram_chat_id = Column(String(64), nullable=True)  # Where booking notifications go
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    branch = relationship("Branch", back_populates="barbers")
    weekly_entries = relationship(
        "WeeklyScheduleEntry", back_populates="barber", cascade="all, delete-orphan"
    )
    exceptional_days = relationship(
        "ExceptionalDay", back_populates="barber", cascade="all, delete-orphan"
    )


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    price = Column(Integer, nullable=False, default=0)  # Whole ARS
    duration_minutes = Column(Integer, nullable=True)  # Null means one grid step
    sessions = Column(Integer, nullable=False, default=1)  # Multi-session services book a group
    is_extra = Column(Boolean, default=False, nullable=False)  # Add-on only
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class WeeklyScheduleEntry(Base):
    __tablename__ = "weekly_schedule_entries"
    __table_args__ = (
        UniqueConstraint("barber_id", "day_of_week", "shift", name="uq_weekly_barber_day_shift"),
    )

    id = Column(Integer, primary_key=True, index=True)
    barber_id = Column(Integer, ForeignKey("barbers.id"), nullable=False, index=True)
    day_of_week = Column(SmallInteger, nullable=False)  # 0=Monday .. 6=Sunday
    shift = Column(SmallInteger, nullable=False, default=1)  # 1=T1, 2=T2
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    barber = relationship("Barber", back_populates="weekly_entries")


class ExceptionalDay(Base):
    __tablename__ = "exceptional_days"

    id = Column(Integer, primary_key=True, index=True)
    barber_id = Column(Integer, ForeignKey("barbers.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    barber = relationship("Barber", back_populates="exceptional_days")


class Block(Base):
    """A single grid slot manually removed from availability"""

    __tablename__ = "slot_blocks"
    __table_args__ = (
        UniqueConstraint("barber_id", "date", "time", name="uq_slot_blocks_barber_date_time"),
    )

    id = Column(Integer, primary_key=True, index=True)
    barber_id = Column(Integer, ForeignKey("barbers.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # At most one slot-occupying booking per (barber, date, start)
        Index(
            "uq_bookings_active_slot",
            "barber_id",
            "date",
            "start_time",
            unique=True,
            postgresql_where=ACTIVE_SLOT_PREDICATE,
            sqlite_where=ACTIVE_SLOT_PREDICATE,
        ),
        Index("ix_bookings_status_created", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    barber_id = Column(Integer, ForeignKey("barbers.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    client_name = Column(String(120), nullable=True)
    client_phone = Column(String(50), nullable=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)  # Copied from the service at booking time
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING_PAYMENT.value)
    # Payment fields, written by confirm()
    payment_ref = Column(String(64), nullable=True, index=True)
    amount_paid = Column(Integer, nullable=False, default=0)
    cash_amount = Column(Integer, nullable=False, default=0)  # Balance paid at the shop
    deposit = Column(Boolean, nullable=False, default=False)
    group_id = Column(String(36), nullable=True, index=True)
    extras = Column(Text, nullable=True)  # Comma-joined add-on names
    created_at = Column(DateTime, nullable=False)
    confirmed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    barber = relationship("Barber")
    branch = relationship("Branch")
    service = relationship("Service")

    @property
    def status_enum(self) -> BookingStatus:
        return BookingStatus(self.status)


class Payment(Base):
    """Checkout attempt for a booking (or a booking group)"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    group_id = Column(String(36), nullable=True)
    amount = Column(Integer, nullable=False)  # Charged online
    total_amount = Column(Integer, nullable=False)  # Full price of the reservation
    currency = Column(String(3), nullable=False, default="ARS")
    deposit = Column(Boolean, nullable=False, default=False)
    preference_id = Column(String(100), nullable=True, index=True)
    init_point = Column(String(500), nullable=True)
    payment_id = Column(String(64), nullable=True, index=True)  # Gateway payment id once known
    status = Column(String(30), nullable=False, default="pending")
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    booking = relationship("Booking")
