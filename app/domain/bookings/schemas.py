"""Booking domain schemas - Pydantic models for validation"""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_ar_phone
from ...utils.sanitization import validate_and_sanitize_input


class ClientInfo(BaseModel):
    """Person the booking is for"""

    name: str
    phone: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = validate_and_sanitize_input(v, max_length=120)
        if not v:
            raise ValueError("Client name is required")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_ar_phone(v)


class SlotRequest(BaseModel):
    """One session of a reservation"""

    date: date
    start_time: time
    extras: Optional[str] = None  # Comma-joined add-on names


class PaymentAmounts(BaseModel):
    amount_paid: int = 0
    cash_amount: int = 0


class BookingResponse(BaseModel):
    id: int
    barber_id: int
    branch_id: Optional[int] = None
    service_id: Optional[int] = None
    service_name: Optional[str] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    date: date
    start_time: str
    duration_minutes: int
    status: str
    payment_ref: Optional[str] = None
    amount_paid: int
    cash_amount: int
    deposit: bool
    group_id: Optional[str] = None
    extras: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BlockedBookingCreate(BaseModel):
    """In-person booking entered by an operator; occupies the slot without payment"""

    barber_id: int
    date: date
    time: str
    service_id: Optional[int] = None
    client_name: Optional[str] = None
    amount_paid: int = 0  # Paid by transfer
    cash_amount: int = 0

    @field_validator("amount_paid", "cash_amount")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Amounts cannot be negative")
        return v


class GroupCancellationResponse(BaseModel):
    group_id: str
    cancelled: list[int]


class ExpirySummary(BaseModel):
    expired: int
    booking_ids: list[int]
