from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from questpoints.db.database import enable_sqlite_transactions, get_session
from questpoints.db.operations import create_item, create_user, upsert_achievement
from questpoints.main import app
from questpoints.models.db import Base, ItemDB
from questpoints.services.gacha import reset_gacha_service
from questpoints.services.rate_limit import reset_rate_limiters


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset the process-wide limiters and service between tests.

    Keeps spin counts from one test from tripping the rate limit in the next.
    """
    reset_rate_limiters()
    reset_gacha_service()
    yield
    reset_rate_limiters()
    reset_gacha_service()


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    enable_sqlite_transactions(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async test client with overridden database session."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# =============================================================================
# SEED FIXTURES
# =============================================================================


@dataclass
class SeededWorld:
    """Ids of rows committed by the seed_world fixture."""

    user_id: int
    item_ids: list[int]


async def _create_catalog(session: AsyncSession) -> list[ItemDB]:
    # One item per rarity, rarest first: cumulative boundaries 1, 10, 40, 100
    return [
        await create_item(session, "Crown", "legendary", 100),
        await create_item(session, "Feather", "epic", 50),
        await create_item(session, "Shield", "rare", 15),
        await create_item(session, "Stick", "common", 1),
    ]


@pytest.fixture
async def catalog(session: AsyncSession) -> list[ItemDB]:
    """The four-item catalog, flushed into the test session."""
    return await _create_catalog(session)


@pytest.fixture
def seed_world(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[SeededWorld]]:
    """Commit a catalog, a user and the first-draw achievement in their own session."""

    async def _seed(
        points: int = 100, with_catalog: bool = True, with_achievement: bool = True
    ) -> SeededWorld:
        async with session_factory() as session:
            items = await _create_catalog(session) if with_catalog else []
            user = await create_user(session, "alice", points=points)
            if with_achievement:
                await upsert_achievement(session, "first_gacha", "First Spin")
            await session.commit()
            return SeededWorld(user_id=user.id, item_ids=[item.id for item in items])

    return _seed
