"""
Pytest fixtures for an in-memory database, the fake Khalti gateway
and a FastAPI test client wired to both.
"""

import os

# Must be set before ticketpay creates its engine.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PAYMENT_GATEWAY_MODE"] = "fake"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ticketpay.main import app
from ticketpay.api.routes.routes import get_db, get_payment_gateway
from ticketpay.application.payment_service import PaymentService
from ticketpay.domain.state_machine import BookingStatus, PaymentStatus
from ticketpay.infrastructure.config import GatewaySettings, get_gateway_settings
from ticketpay.infrastructure.db.models import (
    Base,
    Event,
    EventTicketBooking,
    ServiceBooking,
    User,
)
from ticketpay.infrastructure.db.session import create_db_engine
from ticketpay.infrastructure.gateways.khalti_client import FakeKhaltiClient

ORGANIZER_ID = "organizer-1"
CLIENT_ID = "client-1"
PROVIDER_ID = "provider-1"

test_engine = create_db_engine("sqlite://", poolclass=StaticPool)
TestSessionLocal = sessionmaker(bind=test_engine, autoflush=False, autocommit=False)


@pytest.fixture
def db_session():
    """Create tables, yield a session, then drop tables for isolation."""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def gateway_settings() -> GatewaySettings:
    return GatewaySettings(mode="fake", frontend_url="http://frontend.test")


@pytest.fixture
def fake_gateway() -> FakeKhaltiClient:
    return FakeKhaltiClient()


@pytest.fixture
def payment_service(db_session, fake_gateway, gateway_settings) -> PaymentService:
    tokens = iter(f"qr-token-{n}" for n in range(1, 100))
    return PaymentService(
        db_session,
        gateway=fake_gateway,
        settings=gateway_settings,
        qr_token_factory=lambda: next(tokens),
    )


@pytest.fixture
def client(db_session, fake_gateway, gateway_settings):
    """HTTP client that overrides the DB and gateway dependencies."""

    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway
    app.dependency_overrides[get_gateway_settings] = lambda: gateway_settings

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def users(db_session):
    db_session.add_all(
        [
            User(id=ORGANIZER_ID, name="Kathmandu Live", email="events@ktmlive.test"),
            User(id=CLIENT_ID, name="Sita Sharma", email="sita@example.test", phone="9800000002"),
            User(id=PROVIDER_ID, name="Ram Plumbing"),
        ]
    )
    db_session.commit()


@pytest.fixture
def event(db_session, users) -> Event:
    event = Event(
        title="Nepathya Live",
        organizer_id=ORGANIZER_ID,
        ticket_price=Decimal("1500.00"),
        venue="Dasharath Stadium",
    )
    db_session.add(event)
    db_session.commit()
    return event


@pytest.fixture
def make_ticket(db_session, event):
    def _make(
        status: BookingStatus = BookingStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        quantity: int = 2,
        qr_code: str | None = None,
        owner_id: str = CLIENT_ID,
    ) -> EventTicketBooking:
        booking = EventTicketBooking(
            owner_id=owner_id,
            event_id=event.id,
            ticket_type="General",
            quantity=quantity,
            amount=event.ticket_price * quantity,
            status=status,
            payment_status=payment_status,
            qr_code=qr_code,
        )
        db_session.add(booking)
        db_session.commit()
        return booking

    return _make


@pytest.fixture
def make_service_booking(db_session, users):
    def _make(
        status: BookingStatus = BookingStatus.CONFIRMED_AWAITING_PAYMENT,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        amount: Decimal = Decimal("850.00"),
    ) -> ServiceBooking:
        booking = ServiceBooking(
            owner_id=CLIENT_ID,
            service_provider_id=PROVIDER_ID,
            service_type="plumbing",
            amount=amount,
            status=status,
            payment_status=payment_status,
        )
        db_session.add(booking)
        db_session.commit()
        return booking

    return _make
