"""
Pytest configuration and fixtures
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from mediasync.clients import ClientConfig, ClientFactory, InMemoryClientRegistry
from mediasync.orchestrator import SyncOrchestrator
from models import Base
from tests.fakes import (
    USER_ID,
    CLIENT_ID,
    OTHER_CLIENT_ID,
    build_item,
    FakeMediaClient,
    InMemoryItemRepository,
)


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine on a throwaway SQLite file"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'media_test.db'}",
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# SYNC ENGINE
# ============================================================================

@pytest.fixture
def make_item():
    return build_item


@pytest.fixture
def memory_repository():
    return InMemoryItemRepository()


@pytest.fixture
def providers():
    """client id -> {MediaKind: provider}; tests fill this in"""
    return {}


@pytest.fixture
def client_registry():
    return InMemoryClientRegistry([
        ClientConfig(client_id=CLIENT_ID, client_type="fake", user_id=USER_ID, name="Living room"),
        ClientConfig(client_id=OTHER_CLIENT_ID, client_type="fake", user_id=USER_ID, name="Office"),
    ])


@pytest.fixture
def client_factory(providers):
    factory = ClientFactory()
    factory.register("fake", lambda config: FakeMediaClient(config, providers.get(config.client_id, {})))
    return factory


@pytest.fixture
def orchestrator(session_factory, client_registry, client_factory):
    return SyncOrchestrator(session_factory, client_registry, client_factory)
