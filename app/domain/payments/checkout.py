"""Checkout service - reserve slots and open a payment for them"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...config import DEPOSIT_PERCENT, PAYMENT_CURRENCY
from ...models import Booking, Payment, Service
from ...shared.clock import Clock
from ...shared.errors import BookingError, ConflictError, NotFoundError, ValidationError
from ..bookings.ledger import BookingLedger
from ..bookings.schemas import SlotRequest
from ..catalog.repository import CatalogRepository
from ..scheduling.slots import SlotGenerator
from ..scheduling.timegrid import format_hhmm
from .gateway import MercadoPagoClient
from .repository import PaymentRepository
from .schemas import ReservationRequest

logger = logging.getLogger(__name__)


def deposit_amount(total: int, percent: int = DEPOSIT_PERCENT) -> int:
    """Share of the total charged online, rounded half-up to whole pesos"""
    value = Decimal(total) * Decimal(percent) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split_amounts(bookings: list[Booking], charged: int, total: int) -> dict[int, tuple[int, int]]:
    """
    (amount_paid, cash_amount) per booking id. The whole payment is recorded on
    the first session of the group; later sessions carry zero.
    """
    ordered = sorted(bookings, key=lambda b: (b.date, b.start_time, b.id))
    amounts = {b.id: (0, 0) for b in ordered}
    if ordered:
        amounts[ordered[0].id] = (charged, max(total - charged, 0))
    return amounts


class CheckoutService:
    """Service layer for reservations paid through the gateway"""

    def __init__(self, db: Session, gateway: MercadoPagoClient, clock: Optional[Clock] = None):
        self.db = db
        self.gateway = gateway
        self.catalog = CatalogRepository()
        self.payments = PaymentRepository()
        self.ledger = BookingLedger(db, clock)
        self.slots = SlotGenerator(db, clock)

    def _load_service(self, service_id: int) -> Service:
        service = self.catalog.get_service(self.db, service_id)
        if not service or not service.active:
            raise NotFoundError(f"Service {service_id} not found")
        if service.is_extra:
            raise ValidationError(f"Service {service.name} can only be added as an extra")
        return service

    def _load_extras(self, extra_ids: list[int]) -> list[Service]:
        if not extra_ids:
            return []
        found = {s.id: s for s in self.catalog.get_services_by_ids(self.db, list(set(extra_ids)))}
        extras = []
        for extra_id in extra_ids:
            extra = found.get(extra_id)
            if not extra or not extra.active:
                raise NotFoundError(f"Extra service {extra_id} not found")
            if not extra.is_extra:
                raise ValidationError(f"Service {extra.name} is not an extra")
            extras.append(extra)
        return extras

    async def create_reservation(self, request: ReservationRequest) -> tuple[list[Booking], Payment]:
        """
        Validate the request against current availability, reserve every
        session in one ledger call and open a gateway checkout for the total.
        """
        barber = self.catalog.get_barber(self.db, request.barber_id)
        if not barber or not barber.active:
            raise NotFoundError(f"Barber {request.barber_id} not found")
        branch_id = request.branch_id or barber.branch_id
        if request.branch_id and not self.catalog.get_branch(self.db, request.branch_id):
            raise NotFoundError(f"Branch {request.branch_id} not found")

        service = self._load_service(request.service_id)
        expected_sessions = service.sessions or 1
        if len(request.sessions) != expected_sessions:
            raise ValidationError(
                f"Service {service.name} requires {expected_sessions} session(s), got {len(request.sessions)}"
            )

        total = service.price
        slot_requests = []
        for session in request.sessions:
            if not self.slots.is_available(
                barber.id, session.date, session.time, service.duration_minutes
            ):
                raise ConflictError(
                    f"{session.date} {format_hhmm(session.time)} is not available for barber {barber.id}"
                )
            extras = self._load_extras(session.extra_service_ids)
            total += sum(extra.price for extra in extras)
            slot_requests.append(
                SlotRequest(
                    date=session.date,
                    start_time=session.time,
                    extras=", ".join(extra.name for extra in extras) or None,
                )
            )

        charged = deposit_amount(total) if request.deposit else total
        if charged <= 0:
            raise ValidationError("Reservation amount must be positive")

        bookings = self.ledger.reserve_group(
            barber.id,
            slot_requests,
            service,
            request.client,
            branch_id=branch_id,
            deposit=request.deposit,
        )
        first = bookings[0]
        group_id = first.group_id

        title = service.name if len(bookings) == 1 else f"{service.name} ({len(bookings)} sesiones)"
        if request.deposit:
            title = f"Seña - {title}"
        try:
            intent = await self.gateway.create_payment_intent(
                booking_ref=str(first.id),
                amount=charged,
                title=title,
                metadata={"group_id": group_id, "barber_id": barber.id, "deposit": request.deposit},
            )
        except BookingError:
            # Release the slots right away instead of waiting for the expiry sweep
            released = self._release(bookings)
            logger.error(
                f"❌ Checkout failed for booking {first.id}, released {released}/{len(bookings)} slot(s)"
            )
            raise

        payment = self.payments.create(
            self.db,
            booking_id=first.id,
            group_id=group_id,
            amount=charged,
            total_amount=total,
            currency=PAYMENT_CURRENCY,
            deposit=request.deposit,
            preference_id=intent.external_id,
            init_point=intent.redirect_url,
            status="pending",
        )
        logger.info(
            f"💳 Checkout opened for booking {first.id}: charged={charged} total={total} "
            f"deposit={request.deposit} preference={intent.external_id}"
        )
        return bookings, payment

    def _release(self, bookings: list[Booking]) -> int:
        """Cancel every booking of a failed checkout; the expiry sweep picks up any that fail here"""
        released = 0
        for booking in bookings:
            try:
                self.ledger.cancel(booking.id)
                released += 1
            except BookingError as e:
                logger.error(f"❌ Could not release booking {booking.id} after checkout failure: {e}")
        return released
