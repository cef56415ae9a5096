"""
Pytest configuration and shared fixtures.

This module provides reusable fixtures for:
- A FakeClock pinned to a fixed instant (sweeps and windows stay deterministic)
- The in-memory wiring of every use case, plus seeding helpers
- SQLite in-memory engine and session for the SQL repositories
- FastAPI TestClient bound to the in-memory wiring
"""

import json
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import build_use_cases, get_use_cases
from app.application.dtos.booking_dto import CheckoutResultDTO
from app.application.interfaces.clock import FakeClock
from app.config import Settings, get_settings
from app.domain.entities.booking import Booking
from app.domain.entities.experience import ActivityType, Experience
from app.domain.entities.participant import Participant, ParticipantRole
from app.infrastructure.db.engine import SQLITE_MEMORY_URL, build_engine, build_sessionmaker
from app.infrastructure.db.tables import metadata
from app.infrastructure.in_memory import (
    InMemoryBookingRepo,
    InMemoryDisputeReportRepo,
    InMemoryExperienceRepo,
    InMemoryMessageRepo,
    InMemoryParticipantRepo,
    InMemoryPaymentRepo,
    InMemorySeatInventory,
    InMemoryTransactionManager,
    InMemoryWebhookEventRepo,
    RecordingNotifier,
    StubPaymentGateway,
)
from app.infrastructure.services.action_token_signer import JwtActionTokenSigner
from app.main import app

NOW = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
TEST_ADMIN_SECRET = "test-admin-action-secret"


# ============================================================================
# IN-MEMORY WIRING
# ============================================================================


class BookingHarness:
    """
    Every use case wired against in-memory adapters that tests can inspect.

    Seeding helpers create hosts, explorers and experiences with sensible
    defaults; keyword overrides change any field.
    """

    def __init__(self, clock: FakeClock, settings: Settings) -> None:
        self.clock = clock
        self.settings = settings
        self.experiences = InMemoryExperienceRepo()
        self.seats = InMemorySeatInventory(self.experiences)
        self.bookings = InMemoryBookingRepo()
        self.payments = InMemoryPaymentRepo(self.bookings)
        self.webhook_events = InMemoryWebhookEventRepo()
        self.participants = InMemoryParticipantRepo()
        self.reports = InMemoryDisputeReportRepo()
        self.messages = InMemoryMessageRepo()
        self.gateway = StubPaymentGateway()
        self.notifier = RecordingNotifier()
        self.token_signer = JwtActionTokenSigner(TEST_ADMIN_SECRET, clock=clock)
        self.bundle = {
            "booking_repo": self.bookings,
            "experience_repo": self.experiences,
            "seat_inventory": self.seats,
            "payment_repo": self.payments,
            "webhook_event_repo": self.webhook_events,
            "participant_repo": self.participants,
            "report_repo": self.reports,
            "message_repo": self.messages,
            "payment_gateway": self.gateway,
            "notifier": self.notifier,
            "tx_manager": InMemoryTransactionManager(),
            "clock": clock,
            "token_signer": self.token_signer,
        }
        self.use_cases = build_use_cases(settings, self.bundle)

    # === Seeding ===

    async def add_host(self, **overrides) -> Participant:
        fields = {
            "name": "Hanna Host",
            "email": "host@example.com",
            "role": ParticipantRole.HOST,
            "stripe_account_id": "acct_test_host",
        }
        fields.update(overrides)
        return await self.participants.add(Participant(**fields))

    async def add_explorer(self, **overrides) -> Participant:
        fields = {
            "name": "Eli Explorer",
            "email": "explorer@example.com",
            "role": ParticipantRole.EXPLORER,
            "languages": ["en"],
        }
        fields.update(overrides)
        return await self.participants.add(Participant(**fields))

    async def add_experience(self, host: Participant, **overrides) -> Experience:
        fields = {
            "host_id": host.id,
            "title": "Sunset kayak tour",
            "price": 10000,
            "currency": "ron",
            "activity_type": ActivityType.GROUP,
            "max_participants": 10,
            "remaining_spots": 10,
            "starts_at": self.clock.now() + timedelta(days=2),
            "duration_minutes": 120,
            "created_at": self.clock.now() - timedelta(days=10),
        }
        fields.update(overrides)
        return await self.experiences.add(Experience(**fields))

    # === Flows ===

    async def book(
        self, explorer: Participant, experience: Experience, quantity: int = 1
    ) -> CheckoutResultDTO:
        return await self.use_cases["create_booking"].execute(
            explorer_id=explorer.id, experience_id=experience.id, quantity=quantity
        )

    async def book_paid(
        self, explorer: Participant, experience: Experience, quantity: int = 1
    ) -> Booking:
        """Create a booking and settle its checkout the way the webhook would."""
        checkout = await self.book(explorer, experience, quantity)
        self.gateway.mark_paid(checkout.checkout_session_id)
        await self.use_cases["apply_payment_success"].execute(
            checkout.booking.id,
            session_id=checkout.checkout_session_id,
            payment_intent_id=self.gateway.sessions[checkout.checkout_session_id].payment_intent_id,
        )
        return await self.bookings.get(checkout.booking.id)

    async def booking(self, booking_id: int) -> Booking:
        return await self.bookings.get(booking_id)

    async def experience(self, experience_id: int) -> Experience:
        return await self.experiences.get(experience_id)

    def sweep(self, name: str):
        return self.use_cases["sweeps"][name]


def webhook_body(event_id: str, event_type: str, obj: dict) -> bytes:
    """Processor event as raw JSON bytes, the way the stub gateway parses it."""
    return json.dumps(
        {"id": event_id, "type": event_type, "livemode": False, "data": {"object": obj}}
    ).encode()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        use_in_memory=True,
        admin_action_secret=TEST_ADMIN_SECRET,
        reports_email="reports@example.com",
        public_base_url="https://bookings.example.com",
    )


@pytest.fixture
def harness(clock: FakeClock, settings: Settings) -> BookingHarness:
    return BookingHarness(clock, settings)


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def test_engine():
    """
    SQLite in-memory engine with every table created.
    Built through the application's own engine factory.
    """
    engine = build_engine(Settings(_env_file=None, database_url=SQLITE_MEMORY_URL))
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_maker = build_sessionmaker(test_engine)
    async with session_maker() as session:
        yield session


# ============================================================================
# HTTP CLIENT FIXTURES
# ============================================================================


@pytest.fixture
def client(harness: BookingHarness) -> Generator[TestClient, None, None]:
    """
    FastAPI TestClient whose use cases come from the test harness.
    Tests seed data through the harness and call the API over HTTP.
    """
    app.dependency_overrides[get_use_cases] = lambda: harness.use_cases
    app.dependency_overrides[get_settings] = lambda: harness.settings

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ============================================================================
# PYTEST MARKERS
# ============================================================================


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "deadlock: deadlock and lock-timeout retry scenarios"
    )
    config.addinivalue_line(
        "markers",
        "sql: tests running against the SQLite-backed repositories"
    )


# ============================================================================
# PYTEST HOOKS
# ============================================================================


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """
    Reset the payment processor breaker before each test.
    Keeps a breaker opened by one test from failing the next.
    """
    from app.infrastructure.circuit_breaker import stripe_breaker

    stripe_breaker.close()

    yield

    stripe_breaker.close()
