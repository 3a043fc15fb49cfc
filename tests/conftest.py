import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from party_market.models.base import Base
from party_market.models import (  # noqa: F401
    room, player, stock, holding, order, event,
)
from party_market.database import get_db
from party_market.main import create_app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class FixedJitter:
    """Jitter source that always returns the same value."""

    def __init__(self, value: float = 1.0):
        self.value = value

    def uniform(self, a: float, b: float) -> float:
        return self.value


@pytest.fixture
def no_jitter():
    return FixedJitter(1.0)


class StaticGenerator:
    """Event generator returning a fixed draft built from the room's stocks."""

    def __init__(self, build_effects, title="Test Event", description="Something happened"):
        self.build_effects = build_effects
        self.title = title
        self.description = description
        self.calls: list[dict] = []

    async def generate_effects(self, stocks, players, recent_orders, round, total_rounds):
        from party_market.game.event_generators import EventDraft

        self.calls.append({
            "stocks": stocks,
            "players": players,
            "recent_orders": recent_orders,
            "round": round,
            "total_rounds": total_rounds,
        })
        return EventDraft(self.title, self.description, list(self.build_effects(stocks)))


class FailingGenerator:
    async def generate_effects(self, stocks, players, recent_orders, round, total_rounds):
        raise RuntimeError("narrative service unavailable")
