"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, time
from typing import Optional

from pydantic import BaseModel, field_validator


class ShiftIn(BaseModel):
    start: time
    end: time


class WeeklyDayUpsert(BaseModel):
    """Up to two shifts (T1, T2) for one weekday; an empty list clears the day"""

    shifts: list[ShiftIn] = []

    @field_validator("shifts")
    @classmethod
    def validate_shift_count(cls, v):
        if len(v) > 2:
            raise ValueError("At most two shifts per day")
        return v


class WeeklyEntryResponse(BaseModel):
    id: int
    day_of_week: int
    shift: int
    start: str
    end: str


class ExceptionalDayCreate(BaseModel):
    date: date
    start: time
    end: time


class ExceptionalDayResponse(BaseModel):
    id: int
    barber_id: int
    date: date
    start: str
    end: str


class BlockCreate(BaseModel):
    date: date
    time: time
    reason: Optional[str] = None


class BlockResponse(BaseModel):
    id: int
    barber_id: int
    date: date
    time: str
    reason: Optional[str] = None
