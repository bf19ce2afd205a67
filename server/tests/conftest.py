"""Test configuration and fixtures."""

import asyncio
import os
from datetime import timedelta

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BEARER_TOKEN_SECRET", "test-secret")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from travelcore.core.database import Base, utcnow
from travelcore.core.dependencies import create_access_token, get_db
from travelcore.models import *  # noqa: F403 - Import all models
from travelcore.models import Booking, BookingStatus, Tour, TourDeparture, TourStatus, User, UserRole
from travelcore.realtime import RealtimeGateway, RealtimeHub
from travelcore.services.email_service import EmailDispatcher

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingTransport:
    """Email transport that keeps every message instead of sending it."""

    def __init__(self):
        self.sent = []

    async def send(self, email):
        self.sent.append(email)


class FailingTransport:
    async def send(self, email):
        raise ConnectionRefusedError("SMTP server unreachable")


class FakeWebSocket:
    """Enough of a Starlette WebSocket for the gateway and hub."""

    def __init__(self, fail_sends: bool = False):
        self.fail_sends = fail_sends
        self.accepted = False
        self.close_code = None
        self.sent = []
        self._incoming = asyncio.Queue()

    async def accept(self):
        self.accepted = True

    async def close(self, code: int = 1000, reason: str = ""):
        self.close_code = code

    async def send_json(self, data):
        if self.fail_sends or self.close_code is not None:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    async def receive(self):
        return await self._incoming.get()

    def push_text(self, text: str):
        self._incoming.put_nowait({"type": "websocket.receive", "text": text})

    def disconnect(self):
        self._incoming.put_nowait({"type": "websocket.disconnect", "code": 1000})

    def events(self, name: str):
        return [frame["data"] for frame in self.sent if frame["event"] == name]


async def create_schema(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def file_session_factory(tmp_path):
    """
    File-backed SQLite with one connection per session, for tests that
    run several transactions at the same time.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )
    await create_schema(engine)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# Domain fixtures

async def add_user(session, email: str, role: UserRole = UserRole.TRAVELLER, name: str = None) -> User:
    user = User(email=email, full_name=name or email.split("@")[0].title(), role=role)
    session.add(user)
    await session.commit()
    return user


async def add_tour(session, slug: str = "northern-lights", status: TourStatus = TourStatus.PUBLISHED) -> Tour:
    tour = Tour(title="Northern Lights Adventure", slug=slug, status=status)
    session.add(tour)
    await session.commit()
    return tour


async def add_departure(
    session,
    tour: Tour,
    starts_in: timedelta = timedelta(days=30),
    duration: timedelta = timedelta(days=5),
    capacity: int = 10,
    booked: int = 0,
    price: int = 10000,
) -> TourDeparture:
    starts_at = utcnow() + starts_in
    departure = TourDeparture(
        tour_id=tour.id,
        starts_at=starts_at,
        ends_at=starts_at + duration,
        capacity_total=capacity,
        booked_count=booked,
        price_amount=price,
        price_currency="USD",
    )
    session.add(departure)
    await session.commit()
    return departure


async def add_booking(
    session,
    user: User,
    departure: TourDeparture,
    traveller_count: int = 1,
    status: BookingStatus = BookingStatus.CONFIRMED,
) -> Booking:
    """Insert a booking directly, moving booked_count with it for live statuses."""
    booking = Booking(
        user_id=user.id,
        departure_id=departure.id,
        status=status,
        traveller_count=traveller_count,
        total_amount=departure.price_amount * traveller_count,
        currency=departure.price_currency,
        contact_name=user.full_name,
        contact_phone="+1 555 0100",
        contact_email=user.email,
    )
    if status != BookingStatus.CANCELLED:
        departure.booked_count += traveller_count
    session.add(booking)
    await session.commit()
    return booking


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest_asyncio.fixture
async def owner(test_session):
    return await add_user(test_session, "owner@example.com", UserRole.OWNER, "Olga Operator")


@pytest_asyncio.fixture
async def traveller(test_session):
    return await add_user(test_session, "alice@example.com", name="Alice Traveller")


@pytest_asyncio.fixture
async def other_traveller(test_session):
    return await add_user(test_session, "bob@example.com", name="Bob Traveller")


@pytest_asyncio.fixture
async def tour(test_session):
    return await add_tour(test_session)


@pytest_asyncio.fixture
async def departure(test_session, tour):
    """A departure a month out with ten seats."""
    return await add_departure(test_session, tour)


@pytest_asyncio.fixture
async def running_departure(test_session, tour):
    """A departure that started yesterday and ends in three days."""
    return await add_departure(
        test_session, tour, starts_in=-timedelta(days=1), duration=timedelta(days=4)
    )


@pytest.fixture
def hub():
    return RealtimeHub()


@pytest.fixture
def email_outbox():
    return RecordingTransport()


@pytest.fixture
def email_dispatcher(email_outbox):
    return EmailDispatcher(email_outbox, timeout_seconds=1)


@pytest.fixture
def gateway(hub, session_factory):
    return RealtimeGateway(hub, session_factory, idle_timeout_seconds=5)


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, hub, email_dispatcher, gateway):
    """The real application wired to the test database and in-memory side channels."""
    from travelcore.main import create_app

    app = create_app()
    app.state.realtime_hub = hub
    app.state.email_dispatcher = email_dispatcher
    app.state.realtime_gateway = gateway

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_tour_data():
    """Sample tour data for testing."""
    return {
        "title": "Fjords by Kayak",
        "slug": "fjords-by-kayak",
        "description": "Paddle the western fjords with local guides",
        "status": "PUBLISHED",
    }


@pytest.fixture
def sample_contact():
    return {
        "contact_name": "Alice Traveller",
        "contact_phone": "+1 555 0100",
        "contact_email": "alice@example.com",
    }
