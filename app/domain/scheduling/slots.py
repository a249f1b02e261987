"""Bookable start times for a barber, date and service duration"""

from datetime import date, time
from typing import Iterator, Optional

from sqlalchemy.orm import Session

from ...config import SLOT_MINUTES
from ...shared.clock import Clock, get_clock
from ...shared.errors import ValidationError
from .repository import ScheduleRepository
from .resolver import ScheduleResolver
from .timegrid import from_minutes, overlaps, to_minutes


class SlotGenerator:
    """
    Walks each open interval in grid steps and drops candidates that collide
    with an active booking or a block, or that start in the past.

    Nothing is cached: every call reads the current schedule and occupancy.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None, grid_minutes: int = SLOT_MINUTES):
        if grid_minutes <= 0:
            raise ValueError("grid_minutes must be positive")
        self.db = db
        self.clock = clock or get_clock()
        self.grid_minutes = grid_minutes
        self.resolver = ScheduleResolver(db)
        self.repo = ScheduleRepository()

    def available_slots(
        self, barber_id: int, day: date, duration_minutes: Optional[int] = None
    ) -> Iterator[time]:
        duration = self.grid_minutes if duration_minutes is None else duration_minutes
        if duration <= 0:
            raise ValidationError("Service duration must be positive")

        intervals = self.resolver.open_intervals(barber_id, day)
        occupied = self._occupied_windows(barber_id, day)
        earliest = self._earliest_start(day)
        return self._walk(intervals, occupied, duration, earliest)

    def is_available(
        self, barber_id: int, day: date, start: time, duration_minutes: Optional[int] = None
    ) -> bool:
        return start in set(self.available_slots(barber_id, day, duration_minutes))

    def _walk(self, intervals, occupied, duration: int, earliest: Optional[int]) -> Iterator[time]:
        for interval_start, interval_end in intervals:
            start = to_minutes(interval_start)
            end = to_minutes(interval_end)
            while start + duration <= end:
                if (earliest is None or start >= earliest) and not any(
                    overlaps(start, start + duration, busy_start, busy_end)
                    for busy_start, busy_end in occupied
                ):
                    yield from_minutes(start)
                start += self.grid_minutes

    def _occupied_windows(self, barber_id: int, day: date) -> list[tuple[int, int]]:
        windows = []
        for booking in self.repo.get_active_bookings_for_date(self.db, barber_id, day):
            start = to_minutes(booking.start_time)
            duration = self.grid_minutes if booking.duration_minutes is None else booking.duration_minutes
            windows.append((start, start + duration))
        for block in self.repo.get_blocks_for_date(self.db, barber_id, day):
            start = to_minutes(block.time)
            windows.append((start, start + self.grid_minutes))
        return windows

    def _earliest_start(self, day: date) -> Optional[int]:
        """Minute of day before which candidates are in the past; None if the whole day is open"""
        today = self.clock.today()
        if day > today:
            return None
        if day < today:
            return 24 * 60
        now = self.clock.now()
        # A start that passed by any fraction of a minute is already in the past
        partial = 1 if now.second or now.microsecond else 0
        return now.hour * 60 + now.minute + partial
