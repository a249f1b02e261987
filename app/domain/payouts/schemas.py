"""Payout schemas"""

from datetime import date

from pydantic import BaseModel


class ServiceDetail(BaseModel):
    service_name: str
    quantity: int
    unit_price: float
    subtotal: float


class BarberPayout(BaseModel):
    barber_id: int
    barber_name: str
    booking_count: int
    app_gross: float  # Paid online
    transfer_gross: float  # Paid by transfer on in-person bookings
    cash_gross: float  # Paid at the shop
    total_gross: float
    commission: float
    bonus_count: int
    bonus_amount: float
    total_to_pay: float
    bonuses_by_day: dict[str, int]  # "dd/MM" -> bonuses
    service_details: list[ServiceDetail]


class PayoutReport(BaseModel):
    date_from: date
    date_to: date
    barbers: list[BarberPayout]
