# tests/conftest.py

"""Pytest configuration and fixtures."""

from collections.abc import Awaitable, Callable
from typing import AsyncGenerator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from replaylink.api.deps import get_replay_client
from replaylink.config import Settings, get_settings
from replaylink.db.models import Base, Battle, Team, TeamVersion, TeamVersionSlot
from replaylink.db.session import enable_sqlite_foreign_keys, get_db
from replaylink.main import app
from replaylink.schemas.replay import ReplayPayload
from replaylink.services.battle_ingest_service import ingest_replay
from replaylink.services.replay_client import ReplayClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from samples import FORMAT_ID, OPERATOR, VGC_LOG, replay_payload

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_REPLAY_BASE_URL = "https://replays.test"


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh in-memory database per test.

    StaticPool keeps the single connection alive, so every session of the
    test sees the same database.
    """
    test_engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    enable_sqlite_foreign_keys(test_engine)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Session bound to the test database; services commit as they do in prod."""
    session_factory = async_sessionmaker(
        bind=engine, expire_on_commit=False, autocommit=False, autoflush=False
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return Settings(
        operator_name=OPERATOR,
        replay_base_url=TEST_REPLAY_BASE_URL,
        fetch_timeout=5.0,
    )


@pytest.fixture
def replay_source() -> dict[str, object]:
    """Documents served by the fake replay source, keyed by replay id.

    A value may be a dict (served as JSON), an int (served as that status)
    or an exception instance (raised by the transport).
    """
    return {}


@pytest.fixture
def replay_transport(replay_source: dict[str, object]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        replay_id = request.url.path.rsplit("/", 1)[-1].removesuffix(".json")
        entry = replay_source.get(replay_id.lower())
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, int):
            return httpx.Response(entry)
        if entry is None:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json=entry)

    return httpx.MockTransport(handler)


@pytest.fixture
async def replay_client(
    replay_transport: httpx.MockTransport, settings: Settings
) -> AsyncGenerator[ReplayClient, None]:
    async with ReplayClient(
        base_url=settings.replay_base_url,
        timeout=settings.fetch_timeout,
        transport=replay_transport,
    ) as client:
        yield client


@pytest.fixture
async def async_client(
    db_session: AsyncSession, settings: Settings, replay_client: ReplayClient
) -> AsyncGenerator[AsyncClient, None]:
    """Fixture to provide an async test client for the API."""

    # Override the dependencies to use the test database and fake source
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    async def override_get_replay_client() -> AsyncGenerator[ReplayClient, None]:
        yield replay_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_replay_client] = override_get_replay_client

    transport = ASGITransport(app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clean up the overrides after the test
    app.dependency_overrides.clear()


@pytest.fixture
def make_team(
    db_session: AsyncSession,
) -> Callable[..., Awaitable[TeamVersion]]:
    """Factory creating a team and returning its newest version.

    Team import is a separate subsystem; tests write the rows directly.
    """

    async def _make_team(
        name: str,
        species: list[str],
        format_id: str | None = FORMAT_ID,
        versions: int = 1,
    ) -> TeamVersion:
        team = Team(name=name, format_id=format_id)
        db_session.add(team)
        await db_session.flush()

        version = None
        for num in range(1, versions + 1):
            version = TeamVersion(team_id=team.id, version_num=num)
            db_session.add(version)
            await db_session.flush()
            db_session.add_all(
                TeamVersionSlot(
                    team_version_id=version.id, slot_index=i, species_name=s
                )
                for i, s in enumerate(species, start=1)
            )
        await db_session.commit()
        assert version is not None
        return version

    return _make_team


@pytest.fixture
def ingest(db_session: AsyncSession) -> Callable[..., Awaitable[Battle]]:
    """Factory ingesting a replay document straight into the test database."""

    async def _ingest(
        replay_id: str,
        log: str = VGC_LOG,
        operator: str | None = OPERATOR,
        **overrides: object,
    ) -> Battle:
        payload = ReplayPayload(**replay_payload(replay_id, log=log, **overrides))
        outcome = await ingest_replay(db_session, payload, operator)
        return outcome.battle

    return _ingest
