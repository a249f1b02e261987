"""Scheduling repository - Database operations for schedules, exceptions and blocks"""

from datetime import date, time
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Barber, Block, Booking, ExceptionalDay, WeeklyScheduleEntry
from ..bookings.state import active_status_values


class ScheduleRepository:
    """Repository for schedule database operations"""

    @staticmethod
    def get_barber(db: Session, barber_id: int) -> Optional[Barber]:
        return db.query(Barber).filter(Barber.id == barber_id).first()

    # Weekly template

    @staticmethod
    def get_weekly_entries(db: Session, barber_id: int, day_of_week: Optional[int] = None):
        query = db.query(WeeklyScheduleEntry).filter(WeeklyScheduleEntry.barber_id == barber_id)
        if day_of_week is not None:
            query = query.filter(WeeklyScheduleEntry.day_of_week == day_of_week)
        return query.order_by(
            WeeklyScheduleEntry.day_of_week, WeeklyScheduleEntry.start_time
        ).all()

    @staticmethod
    def replace_weekly_day(
        db: Session, barber_id: int, day_of_week: int, shifts: list[tuple[time, time]]
    ) -> list[WeeklyScheduleEntry]:
        db.query(WeeklyScheduleEntry).filter(
            WeeklyScheduleEntry.barber_id == barber_id,
            WeeklyScheduleEntry.day_of_week == day_of_week,
        ).delete(synchronize_session=False)
        # Flush the delete before re-inserting under the (barber, day, shift) constraint
        db.flush()

        entries = []
        for index, (start, end) in enumerate(shifts, start=1):
            entry = WeeklyScheduleEntry(
                barber_id=barber_id,
                day_of_week=day_of_week,
                shift=index,
                start_time=start,
                end_time=end,
            )
            db.add(entry)
            entries.append(entry)
        db.commit()
        for entry in entries:
            db.refresh(entry)
        return entries

    @staticmethod
    def delete_weekly_day(db: Session, barber_id: int, day_of_week: int) -> int:
        deleted = (
            db.query(WeeklyScheduleEntry)
            .filter(
                WeeklyScheduleEntry.barber_id == barber_id,
                WeeklyScheduleEntry.day_of_week == day_of_week,
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted

    # Exceptional days

    @staticmethod
    def get_exceptional_for_date(db: Session, barber_id: int, day: date):
        return (
            db.query(ExceptionalDay)
            .filter(ExceptionalDay.barber_id == barber_id, ExceptionalDay.date == day)
            .order_by(ExceptionalDay.start_time)
            .all()
        )

    @staticmethod
    def list_exceptional(
        db: Session,
        barber_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ):
        query = db.query(ExceptionalDay).filter(ExceptionalDay.barber_id == barber_id)
        if date_from:
            query = query.filter(ExceptionalDay.date >= date_from)
        if date_to:
            query = query.filter(ExceptionalDay.date <= date_to)
        return query.order_by(ExceptionalDay.date, ExceptionalDay.start_time).all()

    @staticmethod
    def create_exceptional(
        db: Session, barber_id: int, day: date, start: time, end: time
    ) -> ExceptionalDay:
        entry = ExceptionalDay(barber_id=barber_id, date=day, start_time=start, end_time=end)
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def get_exceptional_by_id(db: Session, entry_id: int) -> Optional[ExceptionalDay]:
        return db.query(ExceptionalDay).filter(ExceptionalDay.id == entry_id).first()

    # Blocks

    @staticmethod
    def get_blocks_for_date(db: Session, barber_id: int, day: date) -> list[Block]:
        return (
            db.query(Block)
            .filter(Block.barber_id == barber_id, Block.date == day)
            .order_by(Block.time)
            .all()
        )

    # Occupancy

    @staticmethod
    def get_active_bookings_for_date(db: Session, barber_id: int, day: date) -> list[Booking]:
        return (
            db.query(Booking)
            .filter(
                Booking.barber_id == barber_id,
                Booking.date == day,
                Booking.status.in_(active_status_values()),
            )
            .order_by(Booking.start_time)
            .all()
        )

    @staticmethod
    def delete(db: Session, obj) -> None:
        db.delete(obj)
        db.commit()
