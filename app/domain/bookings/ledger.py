"""
Booking ledger

The only writer of Booking rows and slot blocks. Every write that can take a
slot runs check-then-insert under a per-(barber, date) lock:

- an in-process striped lock serializes threads of this process
- on PostgreSQL a transaction-scoped advisory lock serializes processes
- the partial unique index uq_bookings_active_slot backs both, so a
  duplicate start that slips through surfaces as IntegrityError -> Conflict

Status changes go through the transition table in state.py and are applied
with a conditional UPDATE keyed on the status the caller observed.
"""

import logging
import threading
import zlib
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import HOLD_WINDOW_MINUTES, SLOT_MINUTES
from ...models import Barber, Block, Booking, Service, generate_group_id
from ...shared.clock import Clock, get_clock
from ...shared.errors import (
    ConflictError,
    GroupCancellationError,
    InconsistencyError,
    NotFoundError,
    ValidationError,
)
from ...utils.sanitization import mask_name, mask_phone
from ..scheduling.timegrid import format_hhmm, is_on_grid, overlaps, to_minutes
from .repository import BookingRepository
from .schemas import ClientInfo, PaymentAmounts, SlotRequest
from .state import BookingStatus, can_transition, ensure_transition

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64
_day_locks = [threading.Lock() for _ in range(LOCK_STRIPES)]


def _stripe(barber_id: int, day: date) -> int:
    return (barber_id * 31 + day.toordinal()) % LOCK_STRIPES


def _advisory_key(barber_id: int, day: date) -> int:
    # Signed 64-bit key for pg_advisory_xact_lock
    return zlib.crc32(f"booking-day:{barber_id}:{day.isoformat()}".encode())


class BookingLedger:
    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        hold_window_minutes: int = HOLD_WINDOW_MINUTES,
        grid_minutes: int = SLOT_MINUTES,
    ):
        self.db = db
        self.clock = clock or get_clock()
        self.hold_window = timedelta(minutes=hold_window_minutes)
        self.grid_minutes = grid_minutes
        self.repo = BookingRepository()

    # ========================================================================
    # LOCKING
    # ========================================================================

    @contextmanager
    def _day_lock(self, barber_id: int, days: Iterable[date]):
        """Hold the slot locks for every day touched, acquired in a fixed order"""
        days = sorted(set(days))
        stripes = sorted({_stripe(barber_id, d) for d in days})
        for index in stripes:
            _day_locks[index].acquire()
        try:
            if self.db.get_bind().dialect.name == "postgresql":
                for d in days:
                    self.db.execute(
                        text("SELECT pg_advisory_xact_lock(:key)"),
                        {"key": _advisory_key(barber_id, d)},
                    )
            yield
        finally:
            for index in reversed(stripes):
                _day_locks[index].release()

    def _ensure_slot_free(self, barber_id: int, day: date, start: time, duration: int) -> None:
        start_min = to_minutes(start)
        end_min = start_min + duration

        for booking in self.repo.get_active_for_day(self.db, barber_id, day):
            busy_start = to_minutes(booking.start_time)
            busy_end = busy_start + (
                self.grid_minutes if booking.duration_minutes is None else booking.duration_minutes
            )
            if overlaps(start_min, end_min, busy_start, busy_end):
                raise ConflictError(
                    f"Slot {day} {format_hhmm(start)} is already taken for barber {barber_id}"
                )

        for block in self.repo.get_blocks_for_day(self.db, barber_id, day):
            block_start = to_minutes(block.time)
            if overlaps(start_min, end_min, block_start, block_start + self.grid_minutes):
                raise ConflictError(
                    f"Slot {day} {format_hhmm(block.time)} is blocked for barber {barber_id}"
                )

    def _require_barber(self, barber_id: int) -> Barber:
        barber = self.db.query(Barber).filter(Barber.id == barber_id).first()
        if not barber:
            raise NotFoundError(f"Barber {barber_id} not found")
        return barber

    def _duration_of(self, service: Optional[Service]) -> int:
        if service is None or service.duration_minutes is None:
            return self.grid_minutes
        if service.duration_minutes <= 0:
            raise ValidationError(f"Service {service.id} has a non-positive duration")
        return service.duration_minutes

    # ========================================================================
    # RESERVATION
    # ========================================================================

    def reserve(
        self,
        barber_id: int,
        day: date,
        start: time,
        service: Service,
        client: ClientInfo,
        branch_id: Optional[int] = None,
        deposit: bool = False,
        extras: Optional[str] = None,
    ) -> Booking:
        """Create one PENDING_PAYMENT booking, or raise ConflictError if the slot is taken"""
        bookings = self.reserve_group(
            barber_id,
            [SlotRequest(date=day, start_time=start, extras=extras)],
            service,
            client,
            branch_id=branch_id,
            deposit=deposit,
        )
        return bookings[0]

    def reserve_group(
        self,
        barber_id: int,
        sessions: list[SlotRequest],
        service: Service,
        client: ClientInfo,
        branch_id: Optional[int] = None,
        deposit: bool = False,
    ) -> list[Booking]:
        """
        Reserve every session or none. More than one session shares a fresh
        group id.
        """
        if not sessions:
            raise ValidationError("At least one session is required")
        keys = [(s.date, s.start_time) for s in sessions]
        if len(set(keys)) != len(keys):
            raise ValidationError("Sessions must not repeat the same date and time")

        self._require_barber(barber_id)
        duration = self._duration_of(service)
        group_id = generate_group_id() if len(sessions) > 1 else None
        created_at = self.clock.utcnow()

        with self._day_lock(barber_id, [s.date for s in sessions]):
            try:
                for session in sessions:
                    self._ensure_slot_free(barber_id, session.date, session.start_time, duration)
                # Sessions of one group must not overlap each other either
                ordered = sorted(sessions, key=lambda s: (s.date, s.start_time))
                for prev, cur in zip(ordered, ordered[1:]):
                    if prev.date == cur.date and overlaps(
                        to_minutes(prev.start_time),
                        to_minutes(prev.start_time) + duration,
                        to_minutes(cur.start_time),
                        to_minutes(cur.start_time) + duration,
                    ):
                        raise ValidationError("Sessions of the same reservation overlap")

                ensure_transition(None, BookingStatus.PENDING_PAYMENT)
                bookings = [
                    Booking(
                        barber_id=barber_id,
                        branch_id=branch_id,
                        service_id=service.id,
                        client_name=client.name,
                        client_phone=client.phone,
                        date=session.date,
                        start_time=session.start_time,
                        duration_minutes=duration,
                        status=BookingStatus.PENDING_PAYMENT.value,
                        deposit=deposit,
                        group_id=group_id,
                        extras=session.extras,
                        created_at=created_at,
                    )
                    for session in ordered
                ]
                self.db.add_all(bookings)
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                logger.warning(f"⚠️ Concurrent reservation lost for barber {barber_id}: {e.orig}")
                raise ConflictError("Slot was taken by another reservation") from e
            except Exception:
                self.db.rollback()
                raise

        for booking in bookings:
            self.db.refresh(booking)
        logger.info(
            f"📅 Reserved {len(bookings)} slot(s) for barber {barber_id} "
            f"client={mask_name(client.name)} phone={mask_phone(client.phone)} "
            f"ids={[b.id for b in bookings]} group={group_id}"
        )
        return bookings

    # ========================================================================
    # PAYMENT CONFIRMATION
    # ========================================================================

    def confirm(
        self, booking_id: int, payment_ref: str, amounts: Optional[PaymentAmounts] = None
    ) -> tuple[Booking, bool]:
        """
        PENDING_PAYMENT -> CONFIRMED recording the payment reference.

        Returns (booking, applied). Repeating the call with the same reference
        is a no-op with applied=False. A different reference on a confirmed
        booking raises InconsistencyError and leaves the row unchanged.
        """
        if not payment_ref:
            raise ValidationError("Payment reference is required")
        amounts = amounts or PaymentAmounts()

        applied = self.repo.transition(
            self.db,
            booking_id,
            BookingStatus.PENDING_PAYMENT,
            BookingStatus.CONFIRMED,
            payment_ref=payment_ref,
            amount_paid=amounts.amount_paid,
            cash_amount=amounts.cash_amount,
            confirmed_at=self.clock.utcnow(),
        )
        self.db.commit()

        booking = self.repo.get_by_id(self.db, booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")

        if applied:
            logger.info(f"✅ Booking {booking_id} confirmed with payment {payment_ref}")
            return booking, True

        current = booking.status_enum
        if current == BookingStatus.CONFIRMED:
            if booking.payment_ref == payment_ref:
                logger.info(f"🔄 Booking {booking_id} already confirmed with payment {payment_ref}")
                return booking, False
            logger.error(
                f"❌ INCONSISTENCY: booking {booking_id} confirmed with payment "
                f"{booking.payment_ref}, received {payment_ref}"
            )
            raise InconsistencyError(
                f"Booking {booking_id} is already confirmed with a different payment reference"
            )

        ensure_transition(current, BookingStatus.CONFIRMED, booking_id)
        # Allowed but the conditional update missed: status moved under us
        raise ConflictError(f"Booking {booking_id} changed while confirming, retry")

    # ========================================================================
    # EXPIRY
    # ========================================================================

    def expire_stale_pending(self, now: Optional[datetime] = None) -> dict:
        """
        Move PENDING_PAYMENT bookings older than the hold window to EXPIRED.
        A booking confirmed in the meantime is skipped by the conditional update.

        A naive `now` is business-local time, like every wall-clock value here.
        """
        now = now or self.clock.now()
        if now.tzinfo is None:
            now = now.replace(tzinfo=self.clock.tz)
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
        cutoff = now - self.hold_window

        expired_ids = []
        for booking_id in self.repo.get_stale_pending_ids(self.db, cutoff):
            if self.repo.transition(
                self.db, booking_id, BookingStatus.PENDING_PAYMENT, BookingStatus.EXPIRED
            ):
                expired_ids.append(booking_id)
        self.db.commit()

        if expired_ids:
            logger.info(f"⏰ Expired {len(expired_ids)} stale pending booking(s): {expired_ids}")
        return {"expired": len(expired_ids), "booking_ids": expired_ids}

    # ========================================================================
    # CANCELLATION
    # ========================================================================

    def cancel(self, booking_id: int) -> Booking:
        """Cancel a pending or confirmed booking; cancelling twice is a no-op"""
        booking = self.repo.get_by_id(self.db, booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")

        current = booking.status_enum
        if current == BookingStatus.CANCELLED:
            return booking
        ensure_transition(current, BookingStatus.CANCELLED, booking_id)

        if not self.repo.transition(
            self.db,
            booking_id,
            current,
            BookingStatus.CANCELLED,
            cancelled_at=self.clock.utcnow(),
        ):
            self.db.rollback()
            raise ConflictError(f"Booking {booking_id} changed while cancelling, retry")
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"🚫 Booking {booking_id} cancelled (was {current.value})")
        return booking

    def cancel_group(self, group_id: str) -> list[Booking]:
        """
        Cancel every booking of a group in one transaction.

        If any member cannot be cancelled nothing is changed and
        GroupCancellationError lists the failing members with the reason.
        """
        bookings = self.repo.get_group(self.db, group_id, lock=True)
        if not bookings:
            self.db.rollback()
            raise NotFoundError(f"Booking group {group_id} not found")

        failed: dict[int, str] = {}
        for booking in bookings:
            current = booking.status_enum
            if current != BookingStatus.CANCELLED and not can_transition(
                current, BookingStatus.CANCELLED
            ):
                failed[booking.id] = f"status {current.value} cannot be cancelled"

        if not failed:
            cancelled_at = self.clock.utcnow()
            for booking in bookings:
                current = booking.status_enum
                if current == BookingStatus.CANCELLED:
                    continue
                if not self.repo.transition(
                    self.db, booking.id, current, BookingStatus.CANCELLED, cancelled_at=cancelled_at
                ):
                    failed[booking.id] = "changed concurrently"

        if failed:
            self.db.rollback()
            logger.error(f"❌ Group {group_id} cancellation aborted, failed members: {failed}")
            raise GroupCancellationError(group_id, failed)

        self.db.commit()
        for booking in bookings:
            self.db.refresh(booking)
        logger.info(f"🚫 Group {group_id} cancelled ({len(bookings)} bookings)")
        return bookings

    # ========================================================================
    # IN-PERSON BOOKINGS AND SLOT BLOCKS
    # ========================================================================

    def block(
        self,
        barber_id: int,
        day: date,
        at: time,
        service: Optional[Service] = None,
        client_name: Optional[str] = None,
        amount_paid: int = 0,
        cash_amount: int = 0,
    ) -> Booking:
        """Create a BLOCKED booking (walk-in or bot booking) on a free slot"""
        if not is_on_grid(at, self.grid_minutes):
            raise ValidationError(f"{format_hhmm(at)} is not on the {self.grid_minutes}-minute grid")
        self._require_barber(barber_id)
        duration = self._duration_of(service)

        with self._day_lock(barber_id, [day]):
            try:
                self._ensure_slot_free(barber_id, day, at, duration)
                ensure_transition(None, BookingStatus.BLOCKED)
                booking = Booking(
                    barber_id=barber_id,
                    service_id=service.id if service else None,
                    client_name=client_name,
                    date=day,
                    start_time=at,
                    duration_minutes=duration,
                    status=BookingStatus.BLOCKED.value,
                    amount_paid=amount_paid,
                    cash_amount=cash_amount,
                    created_at=self.clock.utcnow(),
                )
                self.db.add(booking)
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                raise ConflictError("Slot was taken by another booking") from e
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(booking)
        logger.info(f"🔒 Slot {day} {format_hhmm(at)} blocked for barber {barber_id} (booking {booking.id})")
        return booking

    def unblock(self, barber_id: int, day: date, at: time) -> None:
        """Delete the BLOCKED booking on a slot"""
        with self._day_lock(barber_id, [day]):
            booking = self.repo.get_blocked_at(self.db, barber_id, day, at)
            if not booking:
                raise NotFoundError(
                    f"No blocked booking for barber {barber_id} at {day} {format_hhmm(at)}"
                )
            ensure_transition(BookingStatus.BLOCKED, None, booking.id)
            self.db.delete(booking)
            self.db.commit()
        logger.info(f"🔓 Slot {day} {format_hhmm(at)} unblocked for barber {barber_id}")

    def add_slot_block(self, barber_id: int, day: date, at: time, reason: Optional[str] = None) -> Block:
        """Remove one grid slot from availability; fails if the slot is occupied"""
        if not is_on_grid(at, self.grid_minutes):
            raise ValidationError(f"{format_hhmm(at)} is not on the {self.grid_minutes}-minute grid")
        self._require_barber(barber_id)

        with self._day_lock(barber_id, [day]):
            try:
                self._ensure_slot_free(barber_id, day, at, self.grid_minutes)
                block = Block(barber_id=barber_id, date=day, time=at, reason=reason)
                self.db.add(block)
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                raise ConflictError("Slot is already blocked") from e
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(block)
        logger.info(f"🔒 Block {block.id} added for barber {barber_id} at {day} {format_hhmm(at)}")
        return block

    def remove_slot_block(self, block_id: int) -> None:
        block = self.db.query(Block).filter(Block.id == block_id).first()
        if not block:
            raise NotFoundError(f"Block {block_id} not found")
        self.db.delete(block)
        self.db.commit()
        logger.info(f"🔓 Block {block_id} removed")

    # ========================================================================
    # READS
    # ========================================================================

    def get(self, booking_id: int) -> Booking:
        booking = self.repo.get_by_id(self.db, booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def get_group(self, group_id: str) -> list[Booking]:
        return self.repo.get_group(self.db, group_id)

    def list_bookings(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        status: Optional[str] = None,
        barber_id: Optional[int] = None,
        sort: str = "date_asc",
    ) -> list[Booking]:
        if status:
            try:
                status = BookingStatus(status.upper()).value
            except ValueError as e:
                raise ValidationError(f"Unknown booking status '{status}'") from e
        if sort not in ("date_asc", "date_desc"):
            raise ValidationError("sort must be date_asc or date_desc")
        if date_from and date_to and date_from > date_to:
            raise ValidationError("date_from must not be after date_to")
        return self.repo.list_bookings(
            self.db, date_from, date_to, status, barber_id, descending=sort == "date_desc"
        )
