"""
Payment reconciliation

Maps a gateway webhook delivery to a pending booking and confirms it.
Delivery can be repeated, reordered or late; confirm() dedupes on the payment
id, so processing the same event any number of times yields one confirmation.
Only UnauthorizedError leaves this module; every other failure is logged and
acknowledged so the gateway stops retrying.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...cache import Cache, cache as default_cache
from ...config import WEBHOOK_DEDUPE_TTL_SECONDS
from ...models import Booking
from ...services.notification_service import booking_notice
from ...shared.clock import Clock, get_clock
from ...shared.errors import (
    BookingError,
    InconsistencyError,
    NotFoundError,
    UnauthorizedError,
    UpstreamTimeoutError,
)
from ..bookings.ledger import BookingLedger
from ..bookings.schemas import PaymentAmounts
from .checkout import split_amounts
from .gateway import GatewayPayment, MercadoPagoClient
from .repository import PaymentRepository
from .schemas import WebhookAck, WebhookEvent

logger = logging.getLogger(__name__)

PAYMENT_TOPICS = {"payment", "payment.created", "payment.updated"}
DEFINITIVE_FAILURES = {"rejected", "cancelled", "refunded", "charged_back"}


def _as_booking_id(value) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def resolve_booking_reference(
    event: WebhookEvent, payment: Optional[GatewayPayment] = None
) -> Optional[int]:
    """
    Booking id for an event: the correlation id carried by the event first,
    then the gateway's record (external_reference, metadata.booking_id).
    A disagreement between both sources resolves to None.
    """
    explicit = _as_booking_id(event.correlation_id) if event.correlation_id else None

    recorded = None
    if payment is not None:
        recorded = _as_booking_id(payment.external_reference) or _as_booking_id(
            payment.metadata.get("booking_id")
        )

    if explicit is not None and recorded is not None and explicit != recorded:
        logger.error(
            f"❌ Booking reference mismatch for payment {payment.id}: event={explicit} gateway={recorded}"
        )
        return None
    return explicit if explicit is not None else recorded


class PaymentReconciler:
    def __init__(
        self,
        db: Session,
        gateway: MercadoPagoClient,
        clock: Optional[Clock] = None,
        dedupe_cache: Optional[Cache] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.clock = clock or get_clock()
        self.cache = dedupe_cache or default_cache
        self.ledger = BookingLedger(db, self.clock)
        self.payments = PaymentRepository()
        # (chat_id, text, booking_id) for the caller to send after responding
        self.notifications: list[tuple[Optional[str], str, int]] = []

    def verify(self, event: WebhookEvent) -> None:
        if not self.gateway.verify_signature(
            event.signature, event.request_id, event.data_id, now=self.clock.now().timestamp()
        ):
            raise UnauthorizedError("Invalid webhook signature")

    async def reconcile(self, event: WebhookEvent) -> WebhookAck:
        self.verify(event)

        if event.topic and event.topic not in PAYMENT_TOPICS:
            logger.info(f"ℹ️ Ignoring webhook topic {event.topic}")
            return WebhookAck(status="ignored")
        if not event.payment_id:
            logger.warning("⚠️ Payment webhook without payment id, nothing to do")
            return WebhookAck(status="ignored")

        dedupe_key = f"mp_payment_processed:{event.payment_id}"
        if self.cache.get(dedupe_key):
            logger.info(f"🔄 Payment {event.payment_id} already processed, skipping")
            return WebhookAck(status="already_processed", payment_id=event.payment_id)

        try:
            payment = await self.gateway.get_payment(event.payment_id)
        except UpstreamTimeoutError as e:
            logger.error(f"❌ Payment {event.payment_id} left unresolved: {e.detail}")
            return WebhookAck(status="unresolved", payment_id=event.payment_id)
        except NotFoundError:
            logger.error(f"❌ Payment {event.payment_id} not found at the gateway")
            return WebhookAck(status="unresolved", payment_id=event.payment_id)

        booking_id = resolve_booking_reference(event, payment)
        booking = self.ledger.repo.get_by_id(self.db, booking_id) if booking_id else None
        if not booking:
            logger.error(
                f"❌ Payment {payment.id} ({payment.status}) has no matching booking "
                f"(ref={booking_id}), manual follow-up required"
            )
            return WebhookAck(status="unresolved", payment_id=payment.id, payment_status=payment.status)

        record = self.payments.get_latest_for_booking(self.db, booking.id)
        if record and (record.status != payment.status or record.payment_id != payment.id):
            self.payments.update_status(self.db, record, payment.status, payment.id)

        if payment.status != "approved":
            if payment.status in DEFINITIVE_FAILURES:
                # The booking keeps its hold and expires through the sweep
                logger.warning(f"⚠️ Payment {payment.id} {payment.status} for booking {booking.id}")
            else:
                logger.info(f"⏳ Payment {payment.id} is {payment.status} for booking {booking.id}")
            return WebhookAck(
                status="ignored",
                payment_id=payment.id,
                booking_ids=[booking.id],
                payment_status=payment.status,
            )

        confirmed_ids = self._confirm_bookings(booking, payment, record)
        if confirmed_ids is None:
            return WebhookAck(status="failed", payment_id=payment.id, payment_status=payment.status)

        self.cache.set(dedupe_key, True, ttl=WEBHOOK_DEDUPE_TTL_SECONDS)
        return WebhookAck(
            status="confirmed",
            payment_id=payment.id,
            booking_ids=confirmed_ids,
            payment_status=payment.status,
        )

    def _confirm_bookings(self, booking: Booking, payment: GatewayPayment, record) -> Optional[list[int]]:
        """Confirm the booking and the rest of its group; None when any member failed"""
        members = self.ledger.get_group(booking.group_id) if booking.group_id else [booking]

        if record:
            amounts = split_amounts(members, record.amount, record.total_amount)
        else:
            paid = int(round(payment.transaction_amount or 0))
            amounts = split_amounts(members, paid, paid)

        confirmed, failed = [], {}
        for member in members:
            amount_paid, cash_amount = amounts[member.id]
            try:
                confirmed_booking, applied = self.ledger.confirm(
                    member.id,
                    payment.id,
                    PaymentAmounts(amount_paid=amount_paid, cash_amount=cash_amount),
                )
            except InconsistencyError as e:
                failed[member.id] = e.detail
                continue
            except BookingError as e:
                # Paid after expiry or cancellation: money taken, slot not held
                logger.error(
                    f"❌ Approved payment {payment.id} could not confirm booking {member.id}: "
                    f"{e.detail}. Refund or rebook manually."
                )
                failed[member.id] = e.detail
                continue

            confirmed.append(member.id)
            if applied:
                self.notifications.append(booking_notice(confirmed_booking, "confirmed"))

        if failed:
            logger.error(f"❌ Payment {payment.id} reconciliation incomplete: {failed}")
            return None
        return confirmed
