"""Shared fixtures: fixed clock, scripted completion codes and a seeded store."""

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.api.deps import (
    get_booking_service,
    get_moderation_service,
    get_notification_service,
)
from app.core.clock import FixedClock, SequenceCodeSource
from app.core.middleware import verify_code_limiter
from app.core.security import create_access_token
from app.database import InMemoryDatabase, get_db
from app.domain.booking_state import BookingPolicy, BookingStateMachine
from app.domain.invoice import InvoiceRates
from app.models.booking import Booking, BookingStatus
from app.models.provider import Provider, ProviderStatus
from app.models.user import Actor, Role
from app.services.booking_service import BookingService
from app.services.moderation_service import ModerationService
from app.services.notification_service import NotificationService

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
CODES = ["482913", "105577", "730021", "998877", "246810"]


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def codes() -> SequenceCodeSource:
    return SequenceCodeSource(CODES)


@pytest.fixture
def machine(clock, codes) -> BookingStateMachine:
    return BookingStateMachine(clock=clock, codes=codes, policy=BookingPolicy())


@pytest.fixture
def db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def notifications() -> NotificationService:
    return NotificationService()


@pytest.fixture
def booking_service(machine, notifications) -> BookingService:
    return BookingService(machine, notifications, InvoiceRates())


@pytest.fixture
def moderation_service(notifications, clock) -> ModerationService:
    return ModerationService(notifications, clock=clock)


# ============ ACTORS ============


@pytest.fixture
def customer() -> Actor:
    return Actor(user_id=uuid.uuid4(), role=Role.CUSTOMER)


@pytest.fixture
def other_customer() -> Actor:
    return Actor(user_id=uuid.uuid4(), role=Role.CUSTOMER)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=uuid.uuid4(), role=Role.ADMIN)


@pytest.fixture
def provider(db) -> Provider:
    return db.add_provider(
        Provider(user_id=uuid.uuid4(), status=ProviderStatus.APPROVED, updated_at=NOW)
    )


@pytest.fixture
def provider_actor(provider) -> Actor:
    return Actor(user_id=provider.user_id, role=Role.PROVIDER, provider_id=provider.id)


@pytest.fixture
def other_provider_actor(db) -> Actor:
    other = db.add_provider(Provider(user_id=uuid.uuid4(), status=ProviderStatus.APPROVED))
    return Actor(user_id=other.user_id, role=Role.PROVIDER, provider_id=other.id)


# ============ BOOKINGS ============


@pytest.fixture
def make_booking(customer, provider):
    """Build a booking snapshot without touching the store."""

    def _make(**overrides) -> Booking:
        fields = {
            "customer_id": customer.user_id,
            "provider_id": provider.id,
            "service_id": uuid.uuid4(),
            "status": BookingStatus.PENDING,
            "scheduled_at": NOW + timedelta(days=1),
            "created_at": NOW - timedelta(hours=1),
            "updated_at": NOW - timedelta(hours=1),
            "base_amount": Decimal("1000.00"),
        }
        fields.update(overrides)
        return Booking(**fields)

    return _make


@pytest.fixture
def pending_booking(db, booking_service, customer, provider) -> Booking:
    return booking_service.create_booking(
        db,
        customer,
        provider_id=provider.id,
        service_id=uuid.uuid4(),
        scheduled_at=NOW + timedelta(days=1),
        base_amount=Decimal("1000.00"),
    )


@pytest.fixture
def in_progress_booking(db, booking_service, pending_booking, provider_actor) -> Booking:
    booking_service.perform(db, pending_booking.id, provider_actor, "ACCEPT")
    return booking_service.perform(db, pending_booking.id, provider_actor, "START")


# ============ HTTP ============


def auth_headers(actor: Actor) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(actor)}"}


async def _no_rate_limit() -> None:
    return None


@pytest.fixture
def client(db, booking_service, moderation_service, notifications):
    from app.main import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_booking_service] = lambda: booking_service
    app.dependency_overrides[get_moderation_service] = lambda: moderation_service
    app.dependency_overrides[get_notification_service] = lambda: notifications
    app.dependency_overrides[verify_code_limiter] = _no_rate_limit
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    return auth_headers
