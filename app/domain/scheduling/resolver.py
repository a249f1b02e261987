"""Open intervals for a barber on a given date"""

import logging
from datetime import date, time

from sqlalchemy.orm import Session

from ...shared.errors import NotFoundError
from .repository import ScheduleRepository
from .timegrid import from_minutes, to_minutes

logger = logging.getLogger(__name__)

Interval = tuple[time, time]


def merge_intervals(intervals: list[Interval]) -> list[Interval]:
    """Sort by start and merge overlapping ranges; touching ranges stay separate"""
    ranges = sorted(
        (to_minutes(start), to_minutes(end)) for start, end in intervals if start < end
    )
    merged: list[list[int]] = []
    for start, end in ranges:
        if merged and start < merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])
    return [(from_minutes(start), from_minutes(end)) for start, end in merged]


class ScheduleResolver:
    def __init__(self, db: Session):
        self.db = db
        self.repo = ScheduleRepository()

    def open_intervals(self, barber_id: int, day: date) -> list[Interval]:
        """
        Exceptional entries for the date replace the weekly template entirely.
        Without either, the barber is unavailable and the result is empty.
        """
        if not self.repo.get_barber(self.db, barber_id):
            raise NotFoundError(f"Barber {barber_id} not found")

        exceptional = self.repo.get_exceptional_for_date(self.db, barber_id, day)
        if exceptional:
            raw = [(e.start_time, e.end_time) for e in exceptional]
            source = "exceptional"
        else:
            weekly = self.repo.get_weekly_entries(self.db, barber_id, day.weekday())
            raw = [(e.start_time, e.end_time) for e in weekly]
            source = "weekly"

        intervals = merge_intervals(raw)
        if len(intervals) < len(raw):
            logger.warning(
                f"⚠️ Overlapping {source} shifts merged for barber {barber_id} on {day}"
            )
        return intervals
