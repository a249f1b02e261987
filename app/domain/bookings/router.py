"""Booking router - admin endpoints for the booking ledger"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...models import Booking
from ...services.notification_service import booking_notice, notify_barber
from ...shared.clock import Clock, get_clock
from ...shared.errors import NotFoundError
from ..catalog.repository import CatalogRepository
from ..scheduling.timegrid import format_hhmm, parse_hhmm
from .ledger import BookingLedger
from .schemas import (
    BlockedBookingCreate,
    BookingResponse,
    ExpirySummary,
    GroupCancellationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/bookings", tags=["Bookings"], dependencies=[Depends(require_admin)])
blocked_router = APIRouter(
    prefix="/admin/blocked-bookings", tags=["Bookings"], dependencies=[Depends(require_admin)]
)


def get_booking_ledger(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> BookingLedger:
    """Dependency injection for BookingLedger"""
    return BookingLedger(db, clock)


def to_booking_response(b: Booking) -> BookingResponse:
    return BookingResponse(
        id=b.id,
        barber_id=b.barber_id,
        branch_id=b.branch_id,
        service_id=b.service_id,
        service_name=b.service.name if b.service else None,
        client_name=b.client_name,
        client_phone=b.client_phone,
        date=b.date,
        start_time=format_hhmm(b.start_time),
        duration_minutes=b.duration_minutes,
        status=b.status,
        payment_ref=b.payment_ref,
        amount_paid=b.amount_paid,
        cash_amount=b.cash_amount,
        deposit=b.deposit,
        group_id=b.group_id,
        extras=b.extras,
        created_at=b.created_at,
    )


# ============================================================================
# LISTING
# ============================================================================


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    status: Optional[str] = Query(None),
    barber_id: Optional[int] = Query(None),
    sort: str = Query("date_asc"),
    ledger: BookingLedger = Depends(get_booking_ledger),
):
    """List bookings filtered by date range, status and barber"""
    bookings = ledger.list_bookings(date_from, date_to, status, barber_id, sort)
    return [to_booking_response(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: int, ledger: BookingLedger = Depends(get_booking_ledger)):
    return to_booking_response(ledger.get(booking_id))


# ============================================================================
# CANCELLATION AND EXPIRY
# ============================================================================


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    ledger: BookingLedger = Depends(get_booking_ledger),
):
    """Force-cancel a pending or confirmed booking"""
    booking = ledger.cancel(booking_id)
    chat_id, text, _ = booking_notice(booking, "cancelled")
    background_tasks.add_task(notify_barber, chat_id, text, booking.id)
    return to_booking_response(booking)


@router.post("/groups/{group_id}/cancel", response_model=GroupCancellationResponse)
async def cancel_group(group_id: str, ledger: BookingLedger = Depends(get_booking_ledger)):
    """Cancel every session of a group; nothing changes if any member cannot be cancelled"""
    bookings = ledger.cancel_group(group_id)
    return GroupCancellationResponse(group_id=group_id, cancelled=[b.id for b in bookings])


@router.post("/expire", response_model=ExpirySummary)
async def expire_stale(ledger: BookingLedger = Depends(get_booking_ledger)):
    """Run the stale-pending sweep now"""
    return ExpirySummary(**ledger.expire_stale_pending())


# ============================================================================
# IN-PERSON (BLOCKED) BOOKINGS
# ============================================================================


@blocked_router.post("", response_model=BookingResponse, status_code=201)
async def create_blocked_booking(
    data: BlockedBookingCreate,
    db: Session = Depends(get_db),
    ledger: BookingLedger = Depends(get_booking_ledger),
):
    service = None
    if data.service_id:
        service = CatalogRepository.get_service(db, data.service_id)
        if not service:
            raise NotFoundError(f"Service {data.service_id} not found")
    booking = ledger.block(
        data.barber_id,
        data.date,
        parse_hhmm(data.time),
        service=service,
        client_name=data.client_name,
        amount_paid=data.amount_paid,
        cash_amount=data.cash_amount,
    )
    return to_booking_response(booking)


@blocked_router.delete("", status_code=204)
async def delete_blocked_booking(
    barber_id: int = Query(...),
    day: date = Query(..., alias="date"),
    at: str = Query(..., alias="time"),
    ledger: BookingLedger = Depends(get_booking_ledger),
):
    ledger.unblock(barber_id, day, parse_hhmm(at))
