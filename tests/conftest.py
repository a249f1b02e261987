from datetime import date, datetime, time
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.cache import Cache
from app.database import Base, build_engine, get_db
from app.domain.payments import reconciliation
from app.domain.payments.gateway import GatewayPayment, PaymentIntent, get_payment_gateway
from app.main import app
from app.models import Barber, Booking, Branch, ExceptionalDay, Service, WeeklyScheduleEntry
from app.shared.clock import FixedClock, get_clock
from app.shared.errors import NotFoundError, UpstreamTimeoutError
from app.webhook_security import sign_mercadopago, verify_mercadopago_signature

WEBHOOK_SECRET = "test-webhook-secret"

# 2026-10-19 is a Monday
TODAY = date(2026, 10, 19)
NEXT_MONDAY = date(2026, 10, 26)
NEXT_TUESDAY = date(2026, 10, 27)


class FakeGateway:
    """In-memory MercadoPago stand-in"""

    def __init__(self, webhook_secret: Optional[str] = WEBHOOK_SECRET):
        self.webhook_secret = webhook_secret
        self.payments: dict[str, GatewayPayment] = {}
        self.intents: list[dict] = []
        self.fail_checkout = False
        self.lookup_times_out = False

    async def create_payment_intent(self, booking_ref, amount, title, metadata=None):
        if self.fail_checkout:
            raise UpstreamTimeoutError("Payment gateway timed out", upstream="mercadopago")
        self.intents.append(
            {"booking_ref": booking_ref, "amount": amount, "title": title, "metadata": metadata}
        )
        return PaymentIntent(
            external_id=f"pref-{booking_ref}",
            redirect_url=f"https://mp.test/checkout/pref-{booking_ref}",
        )

    async def get_payment(self, external_id):
        if self.lookup_times_out:
            raise UpstreamTimeoutError("Payment gateway timed out", upstream="mercadopago")
        if external_id not in self.payments:
            raise NotFoundError(f"MercadoPago resource not found: /v1/payments/{external_id}")
        return self.payments[external_id]

    def verify_signature(self, signature_header, request_id, data_id, now=None):
        return verify_mercadopago_signature(
            signature_header, request_id, data_id, self.webhook_secret, now=now
        )

    def add_payment(self, payment_id, status, booking_id=None, amount=None):
        self.payments[payment_id] = GatewayPayment(
            id=payment_id,
            status=status,
            external_reference=str(booking_id) if booking_id is not None else None,
            metadata={"booking_id": str(booking_id)} if booking_id is not None else {},
            transaction_amount=amount,
        )


def signed_headers(clock, data_id, request_id="req-1", secret=WEBHOOK_SECRET) -> dict:
    ts = str(int(clock.now().timestamp()))
    return {
        "x-signature": f"ts={ts},v1={sign_mercadopago(secret, data_id, request_id, ts)}",
        "x-request-id": request_id,
    }


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'turnos.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 10, 19, 8, 0))


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    cache = Cache()
    cache._disabled = True
    monkeypatch.setattr(reconciliation, "default_cache", cache)
    monkeypatch.setattr("app.auth.ADMIN_API_KEY", None)


@pytest.fixture
def catalog(db):
    """One branch, one barber working Mondays 09:00-13:00, two services and an extra"""
    branch = Branch(name="Centro", address="Av. Siempreviva 742")
    db.add(branch)
    db.flush()

    barber = Barber(branch_id=branch.id, name="Juan Perez", phone="1155550000", active=True)
    haircut = Service(name="Corte", price=10000, duration_minutes=30, sessions=1)
    treatment = Service(name="Tratamiento capilar", price=24000, duration_minutes=60, sessions=2)
    beard = Service(name="Barba", price=3000, duration_minutes=None, is_extra=True)
    db.add_all([barber, haircut, treatment, beard])
    db.flush()

    db.add(
        WeeklyScheduleEntry(
            barber_id=barber.id, day_of_week=0, shift=1, start_time=time(9, 0), end_time=time(13, 0)
        )
    )
    db.commit()
    return {
        "branch": branch,
        "barber": barber,
        "haircut": haircut,
        "treatment": treatment,
        "beard": beard,
    }


def add_weekly(db, barber_id, day_of_week, start, end, shift=1):
    entry = WeeklyScheduleEntry(
        barber_id=barber_id, day_of_week=day_of_week, shift=shift, start_time=start, end_time=end
    )
    db.add(entry)
    db.commit()
    return entry


def add_exceptional(db, barber_id, day, start, end):
    entry = ExceptionalDay(barber_id=barber_id, date=day, start_time=start, end_time=end)
    db.add(entry)
    db.commit()
    return entry


def add_booking(
    db,
    barber_id,
    day,
    start,
    status="CONFIRMED",
    service=None,
    amount_paid=0,
    cash_amount=0,
    extras=None,
):
    booking = Booking(
        barber_id=barber_id,
        service_id=service.id if service else None,
        client_name="Cliente",
        date=day,
        start_time=start,
        duration_minutes=(service.duration_minutes if service and service.duration_minutes else 30),
        status=status,
        amount_paid=amount_paid,
        cash_amount=cash_amount,
        extras=extras,
        created_at=datetime(2026, 10, 19, 11, 0),
    )
    db.add(booking)
    db.commit()
    return booking


@pytest.fixture
def client(session_factory, clock, gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    # No context manager: the lifespan would create tables on the configured DATABASE_URL
    yield TestClient(app)
    app.dependency_overrides.clear()
