import threading
from contextlib import nullcontext
from datetime import datetime, time

import pytest
from sqlalchemy.exc import IntegrityError

from app.domain.bookings.ledger import BookingLedger
from app.domain.bookings.repository import BookingRepository
from app.domain.bookings.schemas import ClientInfo, PaymentAmounts, SlotRequest
from app.domain.bookings.state import BookingStatus
from app.domain.scheduling.slots import SlotGenerator
from app.models import Booking, Service
from app.shared.errors import (
    ConflictError,
    GroupCancellationError,
    InconsistencyError,
    NotFoundError,
    ValidationError,
)
from conftest import NEXT_MONDAY, add_booking

CLIENT = ClientInfo(name="Ana Gomez", phone="+54 9 11 5555-1234")


def reserve(ledger, catalog, at=time(10, 0), day=NEXT_MONDAY):
    return ledger.reserve(catalog["barber"].id, day, at, catalog["haircut"], CLIENT)


def test_reserve_creates_pending_booking(db, clock, catalog):
    booking = reserve(BookingLedger(db, clock), catalog)

    assert booking.status == BookingStatus.PENDING_PAYMENT.value
    assert booking.duration_minutes == 30
    assert booking.client_phone == "+5491155551234"
    assert booking.group_id is None


def test_second_reservation_for_same_slot_conflicts(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    reserve(ledger, catalog)

    with pytest.raises(ConflictError):
        reserve(ledger, catalog)


def test_overlapping_longer_service_conflicts(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    reserve(ledger, catalog, at=time(10, 30))
    long_service = Service(name="Color", price=20000, duration_minutes=60)
    db.add(long_service)
    db.commit()

    with pytest.raises(ConflictError):
        ledger.reserve(catalog["barber"].id, NEXT_MONDAY, time(10, 0), long_service, CLIENT)


def test_concurrent_reservations_for_same_slot(session_factory, clock, catalog):
    barber_id = catalog["barber"].id
    service_id = catalog["haircut"].id
    barrier = threading.Barrier(2)
    results, errors = [], []

    def attempt():
        session = session_factory()
        try:
            service = session.get(Service, service_id)
            ledger = BookingLedger(session, clock)
            barrier.wait()
            results.append(ledger.reserve(barber_id, NEXT_MONDAY, time(11, 0), service, CLIENT).id)
        except ConflictError as e:
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 1
    assert len(errors) == 1

    check = session_factory()
    try:
        active = (
            check.query(Booking)
            .filter(Booking.start_time == time(11, 0), Booking.status == "PENDING_PAYMENT")
            .count()
        )
    finally:
        check.close()
    assert active == 1


def test_unique_index_rejects_second_active_booking_on_same_start(db, catalog):
    barber_id = catalog["barber"].id
    add_booking(db, barber_id, NEXT_MONDAY, time(9, 0), status="PENDING_PAYMENT")

    with pytest.raises(IntegrityError):
        add_booking(db, barber_id, NEXT_MONDAY, time(9, 0), status="CONFIRMED")
    db.rollback()

    # Terminal rows do not hold the slot
    add_booking(db, barber_id, NEXT_MONDAY, time(9, 30), status="CANCELLED")
    add_booking(db, barber_id, NEXT_MONDAY, time(9, 30), status="PENDING_PAYMENT")


def test_integrity_error_surfaces_as_conflict(db, clock, catalog, monkeypatch):
    ledger = BookingLedger(db, clock)
    reserve(ledger, catalog)
    monkeypatch.setattr(BookingLedger, "_ensure_slot_free", lambda self, *args: None)

    with pytest.raises(ConflictError):
        reserve(ledger, catalog)
    assert db.query(Booking).count() == 1


def test_concurrent_reservations_without_process_lock(session_factory, clock, catalog, monkeypatch):
    monkeypatch.setattr(BookingLedger, "_day_lock", lambda self, barber_id, days: nullcontext())
    barber_id = catalog["barber"].id
    service_id = catalog["haircut"].id
    barrier = threading.Barrier(2)
    results, errors = [], []

    def attempt():
        session = session_factory()
        try:
            service = session.get(Service, service_id)
            ledger = BookingLedger(session, clock)
            barrier.wait()
            results.append(ledger.reserve(barber_id, NEXT_MONDAY, time(12, 0), service, CLIENT).id)
        except ConflictError as e:
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 1
    assert len(errors) == 1
    check = session_factory()
    try:
        assert check.query(Booking).filter(Booking.start_time == time(12, 0)).count() == 1
    finally:
        check.close()


def test_zero_duration_service_is_rejected(db, clock, catalog):
    instant = Service(name="Consulta", price=1000, duration_minutes=0)
    db.add(instant)
    db.commit()

    with pytest.raises(ValidationError):
        BookingLedger(db, clock).reserve(catalog["barber"].id, NEXT_MONDAY, time(10, 0), instant, CLIENT)
    assert db.query(Booking).count() == 0


def test_reserve_group_shares_group_id(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    sessions = [
        SlotRequest(date=NEXT_MONDAY, start_time=time(11, 0)),
        SlotRequest(date=NEXT_MONDAY, start_time=time(9, 0)),
    ]

    bookings = ledger.reserve_group(catalog["barber"].id, sessions, catalog["treatment"], CLIENT)

    assert [b.start_time for b in bookings] == [time(9, 0), time(11, 0)]
    assert bookings[0].group_id and bookings[0].group_id == bookings[1].group_id
    assert all(b.duration_minutes == 60 for b in bookings)


def test_reserve_group_is_all_or_nothing(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    reserve(ledger, catalog, at=time(12, 0))
    sessions = [
        SlotRequest(date=NEXT_MONDAY, start_time=time(9, 0)),
        SlotRequest(date=NEXT_MONDAY, start_time=time(11, 30)),
    ]

    with pytest.raises(ConflictError):
        ledger.reserve_group(catalog["barber"].id, sessions, catalog["treatment"], CLIENT)

    assert db.query(Booking).count() == 1


def test_reserve_group_rejects_overlapping_sessions(db, clock, catalog):
    sessions = [
        SlotRequest(date=NEXT_MONDAY, start_time=time(9, 0)),
        SlotRequest(date=NEXT_MONDAY, start_time=time(9, 30)),
    ]

    with pytest.raises(ValidationError):
        BookingLedger(db, clock).reserve_group(
            catalog["barber"].id, sessions, catalog["treatment"], CLIENT
        )


def test_reserve_for_unknown_barber(db, clock, catalog):
    with pytest.raises(NotFoundError):
        BookingLedger(db, clock).reserve(9999, NEXT_MONDAY, time(9, 0), catalog["haircut"], CLIENT)


def test_confirm_twice_with_same_reference_is_a_no_op(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    booking = reserve(ledger, catalog)
    amounts = PaymentAmounts(amount_paid=10000, cash_amount=0)

    first, applied_first = ledger.confirm(booking.id, "PAY-1", amounts)
    confirmed_at = first.confirmed_at
    clock.advance(minutes=3)
    second, applied_second = ledger.confirm(booking.id, "PAY-1", amounts)

    assert applied_first is True
    assert applied_second is False
    assert second.status == BookingStatus.CONFIRMED.value
    assert second.amount_paid == 10000
    assert second.confirmed_at == confirmed_at


def test_confirm_with_different_reference_is_inconsistent(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    booking = reserve(ledger, catalog)
    ledger.confirm(booking.id, "PAY-1", PaymentAmounts(amount_paid=10000))

    with pytest.raises(InconsistencyError):
        ledger.confirm(booking.id, "PAY-2", PaymentAmounts(amount_paid=99999))

    db.expire_all()
    stored = ledger.get(booking.id)
    assert stored.payment_ref == "PAY-1"
    assert stored.amount_paid == 10000


def test_confirm_unknown_booking(db, clock, catalog):
    with pytest.raises(NotFoundError):
        BookingLedger(db, clock).confirm(424242, "PAY-1")


def test_stale_pending_booking_expires_and_slot_reappears(db, clock, catalog):
    ledger = BookingLedger(db, clock, hold_window_minutes=15)
    generator = SlotGenerator(db, clock)
    barber_id = catalog["barber"].id
    booking = reserve(ledger, catalog)
    assert time(10, 0) not in list(generator.available_slots(barber_id, NEXT_MONDAY, 30))

    clock.advance(minutes=15, seconds=1)
    summary = ledger.expire_stale_pending()

    assert summary == {"expired": 1, "booking_ids": [booking.id]}
    assert ledger.get(booking.id).status == BookingStatus.EXPIRED.value
    assert time(10, 0) in list(generator.available_slots(barber_id, NEXT_MONDAY, 30))


def test_booking_inside_hold_window_is_kept(db, clock, catalog):
    ledger = BookingLedger(db, clock, hold_window_minutes=15)
    booking = reserve(ledger, catalog)

    clock.advance(minutes=14)

    assert ledger.expire_stale_pending()["expired"] == 0
    assert ledger.get(booking.id).status == BookingStatus.PENDING_PAYMENT.value


def test_naive_now_is_read_as_business_time(db, clock, catalog):
    ledger = BookingLedger(db, clock, hold_window_minutes=15)
    booking = reserve(ledger, catalog)

    assert ledger.expire_stale_pending(datetime(2026, 10, 19, 8, 10))["expired"] == 0
    summary = ledger.expire_stale_pending(datetime(2026, 10, 19, 8, 30))

    assert summary == {"expired": 1, "booking_ids": [booking.id]}


def test_expiry_skips_booking_confirmed_first(db, clock, catalog):
    ledger = BookingLedger(db, clock, hold_window_minutes=15)
    booking = reserve(ledger, catalog)
    clock.advance(minutes=20)

    ledger.confirm(booking.id, "PAY-1", PaymentAmounts(amount_paid=10000))
    summary = ledger.expire_stale_pending()

    assert summary["expired"] == 0
    assert ledger.get(booking.id).status == BookingStatus.CONFIRMED.value


def test_confirm_after_expiry_conflicts(db, clock, catalog):
    ledger = BookingLedger(db, clock, hold_window_minutes=15)
    booking = reserve(ledger, catalog)
    clock.advance(minutes=20)
    ledger.expire_stale_pending()

    with pytest.raises(ConflictError):
        ledger.confirm(booking.id, "PAY-1", PaymentAmounts(amount_paid=10000))

    assert ledger.get(booking.id).status == BookingStatus.EXPIRED.value


def test_cancel_frees_the_slot_and_is_repeatable(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    booking = reserve(ledger, catalog)

    cancelled = ledger.cancel(booking.id)
    again = ledger.cancel(booking.id)

    assert cancelled.status == BookingStatus.CANCELLED.value
    assert again.status == BookingStatus.CANCELLED.value
    assert reserve(ledger, catalog).id != booking.id


def test_cancel_confirmed_booking(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    booking = reserve(ledger, catalog)
    ledger.confirm(booking.id, "PAY-1")

    assert ledger.cancel(booking.id).status == BookingStatus.CANCELLED.value


def test_cancel_expired_booking_conflicts(db, clock, catalog):
    ledger = BookingLedger(db, clock, hold_window_minutes=15)
    booking = reserve(ledger, catalog)
    clock.advance(minutes=16)
    ledger.expire_stale_pending()

    with pytest.raises(ConflictError):
        ledger.cancel(booking.id)


def _group(ledger, catalog):
    sessions = [
        SlotRequest(date=NEXT_MONDAY, start_time=time(9, 0)),
        SlotRequest(date=NEXT_MONDAY, start_time=time(11, 0)),
    ]
    return ledger.reserve_group(catalog["barber"].id, sessions, catalog["treatment"], CLIENT)


def test_cancel_group_cancels_every_member(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    bookings = _group(ledger, catalog)
    ledger.confirm(bookings[0].id, "PAY-1")

    cancelled = ledger.cancel_group(bookings[0].group_id)

    assert {b.status for b in cancelled} == {BookingStatus.CANCELLED.value}


def test_cancel_group_reports_members_that_cannot_be_cancelled(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    first, second = _group(ledger, catalog)
    BookingRepository.transition(db, second.id, BookingStatus.PENDING_PAYMENT, BookingStatus.EXPIRED)
    db.commit()

    with pytest.raises(GroupCancellationError) as excinfo:
        ledger.cancel_group(first.group_id)

    assert list(excinfo.value.failed) == [second.id]
    assert excinfo.value.to_dict()["code"] == "group_partial_failure"
    db.expire_all()
    assert ledger.get(first.id).status == BookingStatus.PENDING_PAYMENT.value


def test_cancel_unknown_group(db, clock, catalog):
    with pytest.raises(NotFoundError):
        BookingLedger(db, clock).cancel_group("no-such-group")


def test_block_on_held_slot_conflicts(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    reserve(ledger, catalog)

    with pytest.raises(ConflictError):
        ledger.block(catalog["barber"].id, NEXT_MONDAY, time(10, 0))


def test_reserve_on_blocked_slot_conflicts(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    blocked = ledger.block(
        catalog["barber"].id, NEXT_MONDAY, time(10, 0), client_name="Walk-in", cash_amount=10000
    )

    assert blocked.status == BookingStatus.BLOCKED.value
    with pytest.raises(ConflictError):
        reserve(ledger, catalog)


def test_unblock_deletes_and_frees_the_slot(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    barber_id = catalog["barber"].id
    ledger.block(barber_id, NEXT_MONDAY, time(10, 0))

    ledger.unblock(barber_id, NEXT_MONDAY, time(10, 0))

    assert db.query(Booking).count() == 0
    with pytest.raises(NotFoundError):
        ledger.unblock(barber_id, NEXT_MONDAY, time(10, 0))
    assert reserve(ledger, catalog).status == BookingStatus.PENDING_PAYMENT.value


def test_block_off_grid_is_rejected(db, clock, catalog):
    with pytest.raises(ValidationError):
        BookingLedger(db, clock).block(catalog["barber"].id, NEXT_MONDAY, time(10, 10))


def test_slot_block_conflicts_with_booking_and_itself(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    barber_id = catalog["barber"].id
    reserve(ledger, catalog)

    with pytest.raises(ConflictError):
        ledger.add_slot_block(barber_id, NEXT_MONDAY, time(10, 0))

    ledger.add_slot_block(barber_id, NEXT_MONDAY, time(11, 0), reason="almuerzo")
    with pytest.raises(ConflictError):
        ledger.add_slot_block(barber_id, NEXT_MONDAY, time(11, 0))
    with pytest.raises(ConflictError):
        reserve(ledger, catalog, at=time(11, 0))


def test_list_bookings_filters_and_sorts(db, clock, catalog):
    ledger = BookingLedger(db, clock)
    early = reserve(ledger, catalog, at=time(9, 0))
    late = reserve(ledger, catalog, at=time(12, 0))
    ledger.cancel(early.id)

    assert [b.id for b in ledger.list_bookings(sort="date_desc")] == [late.id, early.id]
    assert [b.id for b in ledger.list_bookings(status="cancelled")] == [early.id]
    with pytest.raises(ValidationError):
        ledger.list_bookings(status="UNKNOWN")
    with pytest.raises(ValidationError):
        ledger.list_bookings(date_from=NEXT_MONDAY, date_to=NEXT_MONDAY.replace(day=1))
