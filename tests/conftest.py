import os
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

# Settings are read at import time; point them at test values first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import booking_engine.models  # noqa: F401
from booking_engine.api.deps.services import get_clock, get_notifier
from booking_engine.core.clock import FixedClock
from booking_engine.core.database import Base, get_db
from booking_engine.main import app
from booking_engine.models.availability import AvailabilityWindow, BlockedDate
from booking_engine.models.booking import (
    Booking,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
)
from booking_engine.models.business import Business
from booking_engine.models.customer import Customer
from booking_engine.models.service import Service
from booking_engine.services.booking import BookingService

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

API_KEY = "test-api-key"
CRON_SECRET = os.environ["CRON_SECRET"]

# Monday 2 March 2026, 08:00 UTC
MONDAY_8AM = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def at(day_offset: int, hour: int, minute: int = 0) -> datetime:
    """UTC instant relative to MONDAY_8AM's date."""
    base = MONDAY_8AM.replace(hour=0, minute=0)
    return base + timedelta(days=day_offset, hours=hour, minutes=minute)


class FakeNotifier:
    """Records notifications instead of enqueueing emails."""

    def __init__(self):
        self.sent = []

    def booking_created(self, booking, business, customer):
        self.sent.append(("created", booking.id))

    def booking_cancelled(self, booking, business, customer):
        self.sent.append(("cancelled", booking.id))

    def booking_rescheduled(self, original, booking, business, customer):
        self.sent.append(("rescheduled", original.id, booking.id))

    def kinds(self):
        return [entry[0] for entry in self.sent]


@pytest.fixture
async def db():
    """Create a fresh database for each test."""
    engine_kwargs = {"echo": False}
    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection so every session sees the in-memory database
        engine_kwargs.update(
            poolclass=StaticPool, connect_args={"check_same_thread": False}
        )
    engine = create_async_engine(TEST_DATABASE_URL, **engine_kwargs)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    async with async_session() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(MONDAY_8AM)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def booking_service(db, clock, notifier):
    return BookingService(db, clock=clock, notifier=notifier)


@pytest.fixture
async def client(db, clock, notifier):
    """HTTP client against the app, wired to the test database, clock and
    notifier.
    """

    async def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {API_KEY}"}


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture
async def business(db) -> Business:
    """Business open 09:00-17:00 UTC Monday to Saturday, closed Sunday."""
    business = Business(
        name="Test Studio",
        email="owner@studio.test",
        phone="555-0100",
        api_key=API_KEY,
        timezone="UTC",
        buffer_minutes=0,
        enforce_buffer=True,
        min_notice_hours=2,
        max_advance_days=30,
        cancellation_policy="flexible",
        cancellation_hours=24,
        requires_online_payment=False,
        advance_payment_percent=100,
        allow_refunds=True,
        refund_percentage=50,
        payment_key_secret="gateway-secret",
        is_active=True,
    )
    db.add(business)
    await db.flush()

    for day in range(6):
        db.add(
            AvailabilityWindow(
                business_id=business.id,
                day_of_week=day,
                start_time=time(9, 0),
                end_time=time(17, 0),
                is_available=True,
            )
        )
    await db.commit()
    await db.refresh(business)
    return business


@pytest.fixture
async def other_business(db) -> Business:
    business = Business(name="Other Studio", api_key="other-api-key", timezone="UTC")
    db.add(business)
    await db.commit()
    await db.refresh(business)
    return business


@pytest.fixture
async def service(db, business) -> Service:
    service = Service(
        business_id=business.id,
        name="Consultation",
        duration_minutes=60,
        price=Decimal("50.00"),
        is_active=True,
    )
    db.add(service)
    await db.commit()
    await db.refresh(service)
    return service


@pytest.fixture
async def customer(db, business) -> Customer:
    customer = Customer(
        business_id=business.id,
        name="Dana Client",
        email="dana@example.test",
        phone="555-0199",
        no_show_count=0,
        total_bookings=0,
    )
    db.add(customer)
    await db.commit()
    await db.refresh(customer)
    return customer


@pytest.fixture
async def blocked_date(db, business) -> BlockedDate:
    blocked = BlockedDate(
        business_id=business.id, date=at(1, 0).date(), reason="Staff training"
    )
    db.add(blocked)
    await db.commit()
    return blocked


@pytest.fixture
def make_booking(db, business, service, customer):
    """Insert a booking directly, bypassing the booking rules."""

    async def _make(
        start: datetime,
        status: BookingStatus = BookingStatus.CONFIRMED,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        **fields,
    ) -> Booking:
        booking = Booking(
            business_id=fields.pop("business_id", business.id),
            service_id=service.id,
            customer_id=fields.pop("customer_id", customer.id),
            start_time=start,
            end_time=start + timedelta(minutes=service.duration_minutes),
            status=status.value,
            payment_method=payment_method.value,
            payment_status=payment_status.value,
            payment_amount=Decimal("50.00"),
            **fields,
        )
        db.add(booking)
        await db.commit()
        await db.refresh(booking)
        return booking

    return _make
