from app.domain.bookings.ledger import BookingLedger
from app.models import Booking, Payment
from app.shared.errors import ConflictError
from conftest import NEXT_MONDAY


def reservation_body(catalog, at="10:00", deposit=False, extras=None, sessions=None):
    return {
        "barber_id": catalog["barber"].id,
        "service_id": catalog["haircut"].id,
        "client": {"name": "Ana Gomez", "phone": "11 5555 1234"},
        "sessions": sessions
        or [{"date": NEXT_MONDAY.isoformat(), "time": at, "extra_service_ids": extras or []}],
        "deposit": deposit,
    }


def availability(client, catalog, service_id=None):
    params = {"barber_id": catalog["barber"].id, "date": NEXT_MONDAY.isoformat()}
    if service_id:
        params["service_id"] = service_id
    return client.get("/availability", params=params)


def test_availability_lists_hhmm_strings(client, catalog):
    response = availability(client, catalog)

    assert response.status_code == 200
    assert response.json() == ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30", "12:00", "12:30"]


def test_availability_uses_service_duration(client, catalog):
    response = availability(client, catalog, service_id=catalog["treatment"].id)

    assert response.json() == ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30", "12:00"]


def test_availability_for_unknown_barber_is_404(client, catalog):
    response = client.get("/availability", params={"barber_id": 999, "date": NEXT_MONDAY.isoformat()})

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_reservation_holds_the_slot_and_opens_checkout(client, catalog, gateway):
    response = client.post("/reservations", json=reservation_body(catalog))

    assert response.status_code == 201
    data = response.json()
    booking = data["bookings"][0]
    assert data["status"] == "PENDING_PAYMENT"
    assert data["redirect_url"] == f"https://mp.test/checkout/pref-{booking['id']}"
    assert data["amount"] == 10000
    assert booking["start_time"] == "10:00"
    assert booking["client_phone"] == "1155551234"
    assert gateway.intents[0]["booking_ref"] == str(booking["id"])
    assert "10:00" not in availability(client, catalog).json()


def test_deposit_with_extra_charges_half_of_total(client, catalog, db, gateway):
    body = reservation_body(catalog, deposit=True, extras=[catalog["beard"].id])

    data = client.post("/reservations", json=body).json()

    assert data["total_amount"] == 13000
    assert data["amount"] == 6500
    assert data["bookings"][0]["extras"] == "Barba"
    assert gateway.intents[0]["title"].startswith("Seña - ")
    payment = db.query(Payment).one()
    assert (payment.amount, payment.total_amount, payment.status) == (6500, 13000, "pending")


def test_taken_slot_is_a_conflict(client, catalog):
    client.post("/reservations", json=reservation_body(catalog))

    response = client.post("/reservations", json=reservation_body(catalog))

    assert response.status_code == 409
    assert response.json()["code"] == "conflict"


def test_time_outside_schedule_is_a_conflict(client, catalog):
    response = client.post("/reservations", json=reservation_body(catalog, at="15:00"))

    assert response.status_code == 409


def test_session_count_must_match_service(client, catalog):
    body = reservation_body(catalog)
    body["service_id"] = catalog["treatment"].id

    response = client.post("/reservations", json=body)

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_multi_session_service_books_a_group(client, catalog):
    body = reservation_body(
        catalog,
        sessions=[
            {"date": NEXT_MONDAY.isoformat(), "time": "09:00"},
            {"date": "2026-11-02", "time": "09:00"},
        ],
    )
    body["service_id"] = catalog["treatment"].id

    data = client.post("/reservations", json=body).json()

    assert len(data["bookings"]) == 2
    assert data["group_id"]
    assert {b["group_id"] for b in data["bookings"]} == {data["group_id"]}


def test_extra_cannot_be_booked_as_main_service(client, catalog):
    body = reservation_body(catalog)
    body["service_id"] = catalog["beard"].id

    assert client.post("/reservations", json=body).status_code == 422


def test_invalid_phone_is_rejected_before_booking(client, catalog, db):
    body = reservation_body(catalog)
    body["client"]["phone"] = "123"

    response = client.post("/reservations", json=body)

    assert response.status_code == 422
    assert db.query(Booking).count() == 0


def test_gateway_failure_releases_the_slot(client, catalog, gateway, db):
    gateway.fail_checkout = True

    response = client.post("/reservations", json=reservation_body(catalog))

    assert response.status_code == 504
    assert response.json()["code"] == "upstream_timeout"
    assert db.query(Booking).one().status == "CANCELLED"
    assert "10:00" in availability(client, catalog).json()


def test_gateway_failure_releases_remaining_sessions_when_one_cancel_fails(
    client, catalog, gateway, db, monkeypatch
):
    gateway.fail_checkout = True
    real_cancel = BookingLedger.cancel
    calls = []

    def flaky_cancel(self, booking_id):
        calls.append(booking_id)
        if len(calls) == 1:
            raise ConflictError(f"Booking {booking_id} changed while cancelling, retry")
        return real_cancel(self, booking_id)

    monkeypatch.setattr(BookingLedger, "cancel", flaky_cancel)
    body = reservation_body(
        catalog,
        sessions=[
            {"date": NEXT_MONDAY.isoformat(), "time": "09:00"},
            {"date": "2026-11-02", "time": "09:00"},
        ],
    )
    body["service_id"] = catalog["treatment"].id

    response = client.post("/reservations", json=body)

    assert response.status_code == 504
    assert len(calls) == 2
    statuses = sorted(b.status for b in db.query(Booking).all())
    assert statuses == ["CANCELLED", "PENDING_PAYMENT"]
