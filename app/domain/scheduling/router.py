"""Scheduling router - public availability and admin schedule endpoints"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...shared.clock import Clock, get_clock
from ...shared.errors import NotFoundError
from ..catalog.repository import CatalogRepository
from .schemas import (
    BlockCreate,
    BlockResponse,
    ExceptionalDayCreate,
    ExceptionalDayResponse,
    WeeklyDayUpsert,
    WeeklyEntryResponse,
)
from .service import ScheduleAdminService
from .slots import SlotGenerator
from .timegrid import format_hhmm

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Availability"])
admin_router = APIRouter(prefix="/admin", tags=["Schedules"], dependencies=[Depends(require_admin)])


def get_slot_generator(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> SlotGenerator:
    """Dependency injection for SlotGenerator"""
    return SlotGenerator(db, clock)


def get_schedule_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> ScheduleAdminService:
    """Dependency injection for ScheduleAdminService"""
    return ScheduleAdminService(db, clock)


# ============================================================================
# PUBLIC AVAILABILITY
# ============================================================================


@router.get("/availability", response_model=list[str])
async def get_availability(
    barber_id: int = Query(...),
    day: date = Query(..., alias="date"),
    service_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    generator: SlotGenerator = Depends(get_slot_generator),
):
    """Free start times ("HH:MM") for a barber and date, sized to the service duration"""
    duration = None
    if service_id is not None:
        service = CatalogRepository.get_service(db, service_id)
        if not service or not service.active:
            raise NotFoundError(f"Service {service_id} not found")
        duration = service.duration_minutes

    return [format_hhmm(slot) for slot in generator.available_slots(barber_id, day, duration)]


# ============================================================================
# WEEKLY TEMPLATE
# ============================================================================


def _weekly_response(entry) -> WeeklyEntryResponse:
    return WeeklyEntryResponse(
        id=entry.id,
        day_of_week=entry.day_of_week,
        shift=entry.shift,
        start=format_hhmm(entry.start_time),
        end=format_hhmm(entry.end_time),
    )


@admin_router.get("/barbers/{barber_id}/weekly", response_model=list[WeeklyEntryResponse])
async def list_weekly(barber_id: int, service: ScheduleAdminService = Depends(get_schedule_service)):
    return [_weekly_response(e) for e in service.list_weekly(barber_id)]


@admin_router.put(
    "/barbers/{barber_id}/weekly/{day_of_week}", response_model=list[WeeklyEntryResponse]
)
async def upsert_weekly(
    barber_id: int,
    day_of_week: int,
    data: WeeklyDayUpsert,
    service: ScheduleAdminService = Depends(get_schedule_service),
):
    """Replace the T1/T2 shifts of one weekday (0=Monday)"""
    entries = service.upsert_weekly(barber_id, day_of_week, data.shifts)
    return [_weekly_response(e) for e in entries]


@admin_router.delete("/barbers/{barber_id}/weekly/{day_of_week}")
async def delete_weekly(
    barber_id: int,
    day_of_week: int,
    service: ScheduleAdminService = Depends(get_schedule_service),
):
    deleted = service.delete_weekly(barber_id, day_of_week)
    return {"deleted": deleted}


# ============================================================================
# EXCEPTIONAL DAYS
# ============================================================================


def _exceptional_response(entry) -> ExceptionalDayResponse:
    return ExceptionalDayResponse(
        id=entry.id,
        barber_id=entry.barber_id,
        date=entry.date,
        start=format_hhmm(entry.start_time),
        end=format_hhmm(entry.end_time),
    )


@admin_router.post(
    "/barbers/{barber_id}/exceptional-days", response_model=ExceptionalDayResponse, status_code=201
)
async def add_exceptional_day(
    barber_id: int,
    data: ExceptionalDayCreate,
    service: ScheduleAdminService = Depends(get_schedule_service),
):
    entry = service.add_exceptional(barber_id, data.date, data.start, data.end)
    return _exceptional_response(entry)


@admin_router.get(
    "/barbers/{barber_id}/exceptional-days", response_model=list[ExceptionalDayResponse]
)
async def list_exceptional_days(
    barber_id: int,
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    service: ScheduleAdminService = Depends(get_schedule_service),
):
    return [
        _exceptional_response(e) for e in service.list_exceptional(barber_id, date_from, date_to)
    ]


@admin_router.delete("/exceptional-days/{entry_id}", status_code=204)
async def delete_exceptional_day(
    entry_id: int, service: ScheduleAdminService = Depends(get_schedule_service)
):
    service.delete_exceptional(entry_id)


# ============================================================================
# SLOT BLOCKS
# ============================================================================


def _block_response(block) -> BlockResponse:
    return BlockResponse(
        id=block.id,
        barber_id=block.barber_id,
        date=block.date,
        time=format_hhmm(block.time),
        reason=block.reason,
    )


@admin_router.post("/barbers/{barber_id}/blocks", response_model=BlockResponse, status_code=201)
async def add_block(
    barber_id: int,
    data: BlockCreate,
    service: ScheduleAdminService = Depends(get_schedule_service),
):
    return _block_response(service.add_block(barber_id, data.date, data.time, data.reason))


@admin_router.get("/barbers/{barber_id}/blocks", response_model=list[BlockResponse])
async def list_blocks(
    barber_id: int,
    day: date = Query(..., alias="date"),
    service: ScheduleAdminService = Depends(get_schedule_service),
):
    return [_block_response(b) for b in service.list_blocks(barber_id, day)]


@admin_router.delete("/blocks/{block_id}", status_code=204)
async def delete_block(block_id: int, service: ScheduleAdminService = Depends(get_schedule_service)):
    service.delete_block(block_id)
