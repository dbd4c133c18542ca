"""
Shared fixtures: in-memory SQLite, session factory and a fresh realtime hub.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.infrastructure.local.database import Base
from marketplace.services.realtime_service import RealtimeHub


@pytest_asyncio.fixture
async def engine():
    """In-memory database shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def hub():
    return RealtimeHub()


@pytest.fixture
def buyer_id():
    return "buyer_1"


@pytest.fixture
def seller_id():
    return "seller_1"


@pytest_asyncio.fixture
async def client(session_factory, hub, tmp_path):
    """HTTP client for the app, wired to the test database and hub."""
    from httpx import ASGITransport, AsyncClient

    from marketplace.api import deps
    from marketplace.infrastructure.local.listing_repository import SqliteListingRepository
    from marketplace.infrastructure.local.message_stream import SqliteMessageStream
    from marketplace.infrastructure.local.mock_auth import MockAuthProvider
    from marketplace.infrastructure.local.profile_store import SqliteProfileStore
    from marketplace.infrastructure.local.session_directory import SqliteSessionDirectory
    from marketplace.infrastructure.local.storage_provider import LocalStorageProvider
    from marketplace.main import app

    overrides = {
        deps.get_session_directory: lambda: SqliteSessionDirectory(session_factory=session_factory),
        deps.get_profile_store: lambda: SqliteProfileStore(session_factory=session_factory),
        deps.get_message_stream: lambda: SqliteMessageStream(hub, session_factory=session_factory),
        deps.get_listing_repository: lambda: SqliteListingRepository(session_factory=session_factory),
        deps.get_storage_provider: lambda: LocalStorageProvider(str(tmp_path), "http://test"),
        deps.get_auth_provider: lambda: MockAuthProvider(enabled=True),
    }
    app.dependency_overrides.update(overrides)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()