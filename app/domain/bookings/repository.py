"""Booking repository - Database operations for the booking ledger"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ...models import Block, Booking
from .state import BookingStatus, active_status_values


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_by_id(db: Session, booking_id: int) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def get_group(db: Session, group_id: str, lock: bool = False) -> list[Booking]:
        query = (
            db.query(Booking)
            .filter(Booking.group_id == group_id)
            .order_by(Booking.date, Booking.start_time, Booking.id)
        )
        if lock:
            query = query.with_for_update()
        return query.all()

    @staticmethod
    def get_active_for_day(db: Session, barber_id: int, day: date) -> list[Booking]:
        """Slot-occupying bookings for a barber and day, locked for the current transaction"""
        return (
            db.query(Booking)
            .filter(
                Booking.barber_id == barber_id,
                Booking.date == day,
                Booking.status.in_(active_status_values()),
            )
            .with_for_update()
            .all()
        )

    @staticmethod
    def get_blocks_for_day(db: Session, barber_id: int, day: date) -> list[Block]:
        return db.query(Block).filter(Block.barber_id == barber_id, Block.date == day).all()

    @staticmethod
    def get_blocked_at(db: Session, barber_id: int, day: date, at) -> Optional[Booking]:
        return (
            db.query(Booking)
            .filter(
                Booking.barber_id == barber_id,
                Booking.date == day,
                Booking.start_time == at,
                Booking.status == BookingStatus.BLOCKED.value,
            )
            .first()
        )

    @staticmethod
    def transition(
        db: Session,
        booking_id: int,
        expected: BookingStatus,
        target: BookingStatus,
        **values,
    ) -> bool:
        """
        Conditional status update. Returns False when the row was not in the
        expected status anymore, leaving it untouched.
        """
        result = db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == expected.value)
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def get_stale_pending_ids(db: Session, created_before: datetime) -> list[int]:
        rows = (
            db.query(Booking.id)
            .filter(
                Booking.status == BookingStatus.PENDING_PAYMENT.value,
                Booking.created_at < created_before,
            )
            .order_by(Booking.created_at)
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def list_bookings(
        db: Session,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        status: Optional[str] = None,
        barber_id: Optional[int] = None,
        descending: bool = False,
    ) -> list[Booking]:
        query = db.query(Booking)
        if date_from:
            query = query.filter(Booking.date >= date_from)
        if date_to:
            query = query.filter(Booking.date <= date_to)
        if status:
            query = query.filter(Booking.status == status)
        if barber_id:
            query = query.filter(Booking.barber_id == barber_id)

        if descending:
            query = query.order_by(Booking.date.desc(), Booking.start_time.desc(), Booking.id.desc())
        else:
            query = query.order_by(Booking.date.asc(), Booking.start_time.asc(), Booking.id.asc())
        return query.all()
