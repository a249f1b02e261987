"""Payment router - reservations with checkout and the MercadoPago webhook"""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from ...database import get_db
from ...services.notification_service import notify_barber
from ...shared.clock import Clock, get_clock
from ...shared.errors import UnauthorizedError
from ..bookings.router import to_booking_response
from .checkout import CheckoutService
from .gateway import MercadoPagoClient, get_payment_gateway
from .reconciliation import PaymentReconciler
from .schemas import ReservationRequest, ReservationResponse, WebhookAck, WebhookEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Reservations"])
webhooks_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_checkout_service(
    db: Session = Depends(get_db),
    gateway: MercadoPagoClient = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
) -> CheckoutService:
    """Dependency injection for CheckoutService"""
    return CheckoutService(db, gateway, clock)


def get_payment_reconciler(
    db: Session = Depends(get_db),
    gateway: MercadoPagoClient = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
) -> PaymentReconciler:
    """Dependency injection for PaymentReconciler"""
    return PaymentReconciler(db, gateway, clock)


# ============================================================================
# RESERVATIONS
# ============================================================================


@router.post("/reservations", response_model=ReservationResponse, status_code=201)
async def create_reservation(
    data: ReservationRequest,
    service: CheckoutService = Depends(get_checkout_service),
):
    """Reserve the requested sessions (PENDING_PAYMENT) and return the checkout URL"""
    bookings, payment = await service.create_reservation(data)
    return ReservationResponse(
        bookings=[to_booking_response(b) for b in bookings],
        group_id=bookings[0].group_id,
        status=bookings[0].status,
        redirect_url=payment.init_point,
        payment_record_id=payment.id,
        amount=payment.amount,
        total_amount=payment.total_amount,
    )


# ============================================================================
# WEBHOOKS
# ============================================================================


@webhooks_router.post("/mercadopago", response_model=WebhookAck)
async def mercadopago_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
):
    """
    MercadoPago payment notifications.

    Answers 200 for everything except a bad signature (401): any other
    status makes the gateway redeliver, and failures here need an operator,
    not a retry.
    """
    raw_body = await request.body()
    try:
        body = json.loads(raw_body.decode("utf-8")) if raw_body else {}
        if not isinstance(body, dict):
            body = {}
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("⚠️ MercadoPago webhook with unparseable body")
        body = {}

    event = WebhookEvent.from_request(dict(request.query_params), dict(request.headers), body)
    logger.info(
        f"🔔 MercadoPago webhook: topic={event.topic} payment={event.payment_id} "
        f"ref={event.correlation_id} request={event.request_id}"
    )

    try:
        ack = await reconciler.reconcile(event)
    except UnauthorizedError:
        raise
    except Exception as e:
        logger.exception(f"❌ Error reconciling payment {event.payment_id}: {e}")
        reconciler.db.rollback()
        return WebhookAck(status="error", payment_id=event.payment_id)

    for chat_id, text, booking_id in reconciler.notifications:
        background_tasks.add_task(notify_barber, chat_id, text, booking_id)
    return ack
