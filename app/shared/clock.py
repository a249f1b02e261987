"""Injectable time source"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ..config import BUSINESS_TIMEZONE

BUSINESS_TZ = ZoneInfo(BUSINESS_TIMEZONE)


class Clock:
    """System clock in the business timezone"""

    tz = BUSINESS_TZ

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def utcnow(self) -> datetime:
        """Naive UTC timestamp, the format persisted in DateTime columns"""
        return self.now().astimezone(timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    """Clock frozen at a given instant; advance() moves it forward"""

    def __init__(self, instant: datetime):
        self.set(instant)

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=self.tz)
        self._now = instant.astimezone(self.tz)

    def advance(self, minutes: int = 0, seconds: int = 0) -> None:
        self._now = self._now + timedelta(minutes=minutes, seconds=seconds)

    def now(self) -> datetime:
        return self._now


_system_clock: Optional[Clock] = None


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a FixedClock"""
    global _system_clock
    if _system_clock is None:
        _system_clock = Clock()
    return _system_clock
