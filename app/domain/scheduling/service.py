"""Schedule administration - weekly shifts, exceptional days and slot blocks"""

import logging
from datetime import date, time
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Barber, Block, ExceptionalDay, WeeklyScheduleEntry
from ...shared.clock import Clock
from ...shared.errors import NotFoundError, ValidationError
from ..bookings.ledger import BookingLedger
from .repository import ScheduleRepository
from .schemas import ShiftIn
from .timegrid import format_hhmm

logger = logging.getLogger(__name__)


class ScheduleAdminService:
    """Service layer for schedule administration"""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.repo = ScheduleRepository()
        # Blocks occupy slots, so they are written through the ledger's locks
        self.ledger = BookingLedger(db, clock)

    def _get_barber(self, barber_id: int) -> Barber:
        barber = self.repo.get_barber(self.db, barber_id)
        if not barber:
            raise NotFoundError(f"Barber {barber_id} not found")
        return barber

    # Weekly template

    def upsert_weekly(
        self, barber_id: int, day_of_week: int, shifts: list[ShiftIn]
    ) -> list[WeeklyScheduleEntry]:
        """Replace the shifts of one weekday. Overlapping shifts are rejected."""
        self._get_barber(barber_id)
        if not 0 <= day_of_week <= 6:
            raise ValidationError("day_of_week must be between 0 (Monday) and 6 (Sunday)")
        if len(shifts) > 2:
            raise ValidationError("At most two shifts per day")

        ordered = sorted(((s.start, s.end) for s in shifts), key=lambda s: s[0])
        for start, end in ordered:
            if start >= end:
                raise ValidationError(
                    f"Shift {format_hhmm(start)}-{format_hhmm(end)} must end after it starts"
                )
        if len(ordered) == 2 and ordered[0][1] > ordered[1][0]:
            raise ValidationError("Shifts overlap: the first shift must end before the second starts")

        entries = self.repo.replace_weekly_day(self.db, barber_id, day_of_week, ordered)
        logger.info(f"🗓️ Weekly day {day_of_week} set for barber {barber_id}: {len(entries)} shift(s)")
        return entries

    def list_weekly(self, barber_id: int) -> list[WeeklyScheduleEntry]:
        self._get_barber(barber_id)
        return self.repo.get_weekly_entries(self.db, barber_id)

    def delete_weekly(self, barber_id: int, day_of_week: int) -> int:
        self._get_barber(barber_id)
        return self.repo.delete_weekly_day(self.db, barber_id, day_of_week)

    # Exceptional days

    def add_exceptional(self, barber_id: int, day: date, start: time, end: time) -> ExceptionalDay:
        self._get_barber(barber_id)
        if start >= end:
            raise ValidationError("Exceptional shift must end after it starts")
        entry = self.repo.create_exceptional(self.db, barber_id, day, start, end)
        logger.info(
            f"🗓️ Exceptional day {day} {format_hhmm(start)}-{format_hhmm(end)} added for barber {barber_id}"
        )
        return entry

    def list_exceptional(
        self, barber_id: int, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> list[ExceptionalDay]:
        self._get_barber(barber_id)
        return self.repo.list_exceptional(self.db, barber_id, date_from, date_to)

    def delete_exceptional(self, entry_id: int) -> None:
        entry = self.repo.get_exceptional_by_id(self.db, entry_id)
        if not entry:
            raise NotFoundError(f"Exceptional day {entry_id} not found")
        self.repo.delete(self.db, entry)

    # Blocks

    def add_block(self, barber_id: int, day: date, at: time, reason: Optional[str] = None) -> Block:
        return self.ledger.add_slot_block(barber_id, day, at, reason)

    def list_blocks(self, barber_id: int, day: date) -> list[Block]:
        self._get_barber(barber_id)
        return self.repo.get_blocks_for_date(self.db, barber_id, day)

    def delete_block(self, block_id: int) -> None:
        self.ledger.remove_slot_block(block_id)
