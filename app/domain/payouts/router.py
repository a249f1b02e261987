"""Payout router"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from .schemas import PayoutReport
from .service import PayoutAggregator

router = APIRouter(prefix="/admin/payouts", tags=["Payouts"], dependencies=[Depends(require_admin)])


@router.get("", response_model=PayoutReport)
async def get_payouts(
    date_from: date = Query(..., alias="from"),
    date_to: date = Query(..., alias="to"),
    db: Session = Depends(get_db),
):
    """Per-barber commission and bonuses for bookings in [from, to]"""
    return PayoutAggregator(db).compute(date_from, date_to)
