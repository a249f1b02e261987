"""Helpers for wall-clock times on the slot grid"""

from datetime import time

from ...shared.errors import ValidationError


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def parse_hhmm(value: str) -> time:
    """Parse "HH:MM" (seconds are tolerated and dropped)"""
    try:
        parts = [int(p) for p in value.strip().split(":")]
        if len(parts) not in (2, 3):
            raise ValueError(value)
        return time(parts[0], parts[1])
    except (ValueError, AttributeError) as e:
        raise ValidationError(f"Invalid time '{value}', expected HH:MM") from e


def is_on_grid(value: time, grid_minutes: int) -> bool:
    return value.second == 0 and to_minutes(value) % grid_minutes == 0


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval intersection on minutes of day"""
    return start_a < end_b and start_b < end_a
