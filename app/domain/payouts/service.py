"""
Payout aggregation

Read-only pass over CONFIRMED and BLOCKED bookings in a date range. All
income goes to the business; each barber is paid a commission over the gross
plus a volume bonus per day.
"""

import logging
from collections import Counter, defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...config import BONUS_EVERY_BOOKINGS, BONUS_SERVICE_ID, COMMISSION_PERCENT
from ...models import Booking
from ...shared.errors import ValidationError
from ..bookings.state import BookingStatus
from ..catalog.repository import CatalogRepository
from .schemas import BarberPayout, PayoutReport, ServiceDetail

logger = logging.getLogger(__name__)

EXTRA_PREFIX = "➕ "
BONUS_SHARE = Decimal("0.5")  # Of the bonus service price


def bonuses_by_day(bookings: list[Booking], every: int = BONUS_EVERY_BOOKINGS) -> dict[str, int]:
    """One bonus per `every` bookings on the same day, keyed "dd/MM" in date order"""
    per_day = Counter(b.date for b in bookings)
    result = {}
    for day in sorted(per_day):
        bonuses = per_day[day] // every
        if bonuses > 0:
            result[day.strftime("%d/%m")] = bonuses
    return result


class PayoutAggregator:
    def __init__(
        self,
        db: Session,
        commission_percent: int = COMMISSION_PERCENT,
        bonus_every: int = BONUS_EVERY_BOOKINGS,
        bonus_service_id: int = BONUS_SERVICE_ID,
    ):
        self.db = db
        self.catalog = CatalogRepository()
        self.commission_rate = Decimal(commission_percent) / Decimal(100)
        self.bonus_every = bonus_every
        self.bonus_service_id = bonus_service_id

    def _payable_bookings(self, date_from: date, date_to: date) -> list[Booking]:
        return (
            self.db.query(Booking)
            .options(joinedload(Booking.barber), joinedload(Booking.service))
            .filter(
                Booking.date >= date_from,
                Booking.date <= date_to,
                Booking.status.in_([BookingStatus.CONFIRMED.value, BookingStatus.BLOCKED.value]),
            )
            .order_by(Booking.barber_id, Booking.date, Booking.start_time)
            .all()
        )

    def _bonus_unit(self) -> Decimal:
        service = self.catalog.get_service(self.db, self.bonus_service_id)
        if not service:
            logger.warning(f"⚠️ Bonus service {self.bonus_service_id} not found, bonuses pay 0")
            return Decimal(0)
        return Decimal(service.price) * BONUS_SHARE

    def compute(self, date_from: date, date_to: date) -> PayoutReport:
        if date_from > date_to:
            raise ValidationError("date_from must not be after date_to")

        by_barber: dict[int, list[Booking]] = defaultdict(list)
        for booking in self._payable_bookings(date_from, date_to):
            by_barber[booking.barber_id].append(booking)

        bonus_unit: Optional[Decimal] = None
        payouts = []
        for barber_id, bookings in by_barber.items():
            app_gross = transfer_gross = cash_gross = Decimal(0)
            for b in bookings:
                paid = Decimal(b.amount_paid or 0)
                cash = Decimal(b.cash_amount or 0)
                if b.status == BookingStatus.CONFIRMED.value:
                    app_gross += paid
                else:
                    transfer_gross += paid
                cash_gross += cash

            total_gross = app_gross + transfer_gross + cash_gross
            commission = total_gross * self.commission_rate

            daily = bonuses_by_day(bookings, self.bonus_every)
            bonus_count = sum(daily.values())
            bonus_amount = Decimal(0)
            if bonus_count:
                if bonus_unit is None:
                    bonus_unit = self._bonus_unit()
                bonus_amount = bonus_unit * bonus_count

            total_to_pay = commission + bonus_amount
            payouts.append(
                BarberPayout(
                    barber_id=barber_id,
                    barber_name=bookings[0].barber.name if bookings[0].barber else str(barber_id),
                    booking_count=len(bookings),
                    app_gross=float(app_gross),
                    transfer_gross=float(transfer_gross),
                    cash_gross=float(cash_gross),
                    total_gross=float(total_gross),
                    commission=float(commission),
                    bonus_count=bonus_count,
                    bonus_amount=float(bonus_amount),
                    total_to_pay=float(total_to_pay),
                    bonuses_by_day=daily,
                    service_details=self._service_details(bookings),
                )
            )

        payouts.sort(key=lambda p: p.total_to_pay, reverse=True)
        logger.info(f"💰 Payouts computed for {len(payouts)} barber(s) from {date_from} to {date_to}")
        return PayoutReport(date_from=date_from, date_to=date_to, barbers=payouts)

    def _service_details(self, bookings: list[Booking]) -> list[ServiceDetail]:
        details = []

        main = defaultdict(list)
        for b in bookings:
            if b.service:
                main[b.service.name].append(b)
        for name, group in main.items():
            unit_price = group[0].service.price
            details.append(
                ServiceDetail(
                    service_name=name,
                    quantity=len(group),
                    unit_price=unit_price,
                    subtotal=unit_price * len(group),
                )
            )

        extra_counts = Counter(
            name.strip()
            for b in bookings
            if b.extras
            for name in b.extras.split(",")
            if name.strip()
        )
        catalog = self.catalog.get_services_by_names(self.db, list(extra_counts))
        for name, quantity in extra_counts.items():
            service = catalog.get(name)
            if not service:
                logger.warning(f"⚠️ Extra service '{name}' not found in catalog")
                continue
            details.append(
                ServiceDetail(
                    service_name=f"{EXTRA_PREFIX}{name}",
                    quantity=quantity,
                    unit_price=service.price,
                    subtotal=service.price * quantity,
                )
            )

        details.sort(key=lambda d: d.subtotal, reverse=True)
        return details
