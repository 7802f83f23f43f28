import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from autokudos.config import EngineConfig
from autokudos.database import Base, get_db
from autokudos.main import app
from autokudos.services import ledger
from autokudos.services.engine import KudosEngine
from autokudos.services.strava import FeedEntry, StravaApiError, StravaAuthError

SELF_ID = 1000
# 13:00 in London (BST), outside the quiet window
T0 = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += timedelta(seconds=seconds)
        # Let other tasks run, as a real sleep would
        await asyncio.sleep(0)


class FakeStrava:
    def __init__(self) -> None:
        self.related: dict[int, list[int]] = {}
        self.feed: list[FeedEntry] = []
        self.failing_kudos: set[int] = set()
        self.auth_fails = False
        self.feed_fails = False
        self.related_fails = False
        self.kudos_attempts: list[int] = []
        self.token_calls = 0
        self.feed_calls = 0

    async def get_access_token(self) -> str:
        self.token_calls += 1
        if self.auth_fails:
            raise StravaAuthError("no credential")
        return "token"

    async def get_related_activity_ids(self, activity_id: int, token: str) -> list[int]:
        if self.related_fails:
            raise StravaApiError("related lookup failed")
        return list(self.related.get(activity_id, []))

    async def get_following_feed(self, token: str) -> list[FeedEntry]:
        self.feed_calls += 1
        if self.feed_fails:
            raise StravaApiError("feed fetch failed")
        return list(self.feed)

    async def give_kudos(self, activity_id: int, token: str) -> None:
        self.kudos_attempts.append(activity_id)
        if activity_id in self.failing_kudos:
            raise StravaApiError(f"kudos rejected for {activity_id}")

    async def close(self) -> None:
        pass


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    # Fresh in-memory DB per test; StaticPool keeps the single connection alive
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    await test_engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def strava() -> FakeStrava:
    return FakeStrava()


@pytest.fixture
def make_engine(session_factory, strava, clock):
    def _make(**overrides) -> KudosEngine:
        config = EngineConfig(self_id=SELF_ID, **overrides)
        return KudosEngine(config, session_factory, strava, clock=clock)
    return _make


@pytest.fixture
def kudos_engine(make_engine) -> KudosEngine:
    return make_engine()


async def read_ledger(session_factory) -> dict:
    async with session_factory() as db:
        row = await ledger.get_ledger(db)
        await db.commit()
        return {
            "total_sent": row.total_sent,
            "active_days": row.active_days,
            "last_active_day": row.last_active_day,
            "last_flush_at": row.last_flush_at,
        }


@pytest_asyncio.fixture
async def client(session_factory, kudos_engine) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.engine = kudos_engine
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
    del app.state.engine
