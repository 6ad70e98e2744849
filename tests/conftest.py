"""
Pytest conftest.py - Shared fixtures and configuration

Every test gets its own in-memory SQLite database (aiosqlite), a
private change feed, a temporary storage directory and a clock it can
move forward by hand.
"""

import io
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List

# Settings are read at import time, so the environment is fixed first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["REAPER_ENABLED"] = "false"
os.environ.setdefault("STORAGE_PATH", os.path.join(tempfile.gettempdir(), "ephemap-test-storage"))

import httpx
import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ephemap.models import Base
from ephemap.services.change_feed import ChangeEvent, ChangeFeed
from ephemap.services.photo_store import PhotoStore
from ephemap.services.reaper import Reaper
from ephemap.services.storage_manager import StorageManager

# Photos created at ZONE_CENTER share one zone; FAR_AWAY is on another continent.
ZONE_CENTER = (40.7128, -74.0060)
FAR_AWAY = (51.5074, -0.1278)

LIFESPAN = timedelta(hours=168)


# =============================================================================
# PYTEST HOOKS
# =============================================================================

def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests")


# =============================================================================
# CLOCK
# =============================================================================

class ManualClock:
    """Callable clock that only moves when a test says so."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc))


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
async def db_engine():
    """Fresh in-memory database with all tables, one per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

class EventRecorder:
    """Collects every event published on a feed."""

    def __init__(self, feed: ChangeFeed) -> None:
        self.events: List[ChangeEvent] = []
        self.subscription = feed.subscribe(self.events.append)

    def of(self, entity: str, event_type: str) -> List[ChangeEvent]:
        return [e for e in self.events if e.entity == entity and e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def recorder(feed) -> EventRecorder:
    return EventRecorder(feed)


@pytest.fixture
def storage(tmp_path) -> StorageManager:
    return StorageManager(base_path=tmp_path / "storage", public_url_base="/storage")


@pytest.fixture
def store(session, feed, storage, clock) -> PhotoStore:
    return PhotoStore(session, feed=feed, storage=storage, clock=clock)


@pytest.fixture
def reaper(session_factory, storage, feed, clock) -> Reaper:
    return Reaper(session_factory, storage, feed=feed, clock=clock)


@pytest.fixture
def fill_zone(store):
    """Create ``count`` photos in the zone around ZONE_CENTER."""

    async def _fill(count: int, center=ZONE_CENTER, prefix: str = "photo"):
        photos = []
        for i in range(count):
            photos.append(
                await store.create_photo(center[0], center[1], created_by=f"{prefix}-{i}")
            )
        return photos

    return _fill


# =============================================================================
# IMAGE FIXTURES
# =============================================================================

@pytest.fixture
def jpeg_bytes() -> bytes:
    """A 320x240 JPEG, large enough to be shrunk into a thumbnail."""
    buffer = io.BytesIO()
    Image.new("RGB", (320, 240), color=(200, 80, 40)).save(buffer, format="JPEG")
    return buffer.getvalue()


# =============================================================================
# API FIXTURES
# =============================================================================

@pytest.fixture
async def api_client(session_factory, storage, feed, clock) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to the app with every dependency pointed at test doubles."""
    from ephemap.api import deps
    from ephemap.main import app
    from ephemap.services.database import get_db

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_change_feed] = lambda: feed
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_session_factory] = lambda: session_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def ws_client(storage, clock, monkeypatch):
    """Synchronous TestClient for WebSocket tests.

    HTTP requests and WebSocket sessions share the client's portal loop,
    so the database engine is created and used on that loop only. The
    app's global change feed is left in place.
    """
    from fastapi.testclient import TestClient

    from ephemap.api import deps
    from ephemap.main import app
    from ephemap.services.database import get_db

    async def no_init_models() -> None:
        return None

    monkeypatch.setattr("ephemap.main.init_models", no_init_models)

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async def create_tables() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_clock] = lambda: clock

    with TestClient(app) as client:
        client.portal.call(create_tables)
        yield client
        client.portal.call(engine.dispose)

    app.dependency_overrides.clear()
