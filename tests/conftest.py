"""
Pytest fixtures for test database, client, clock, and authentication.

Each test gets its own database (a throwaway SQLite file unless
TEST_DATABASE_URL points elsewhere) with tables created up front and dropped
afterwards. Every HTTP request runs in its own session, like production.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["REDIS_ENABLED"] = "false"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from opengym.main import app
from opengym.db.base import Base
from opengym.db.session import get_db
from opengym.core.clock import FixedClock, get_clock
from opengym.core.security import create_access_token
from opengym.models.user import User
from opengym.models.game import Game

START = datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables, yield a session factory, then drop tables for isolation."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'opengym.db'}"
    engine = create_async_engine(url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, clock: FixedClock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the DB and clock dependencies pointed at the test doubles."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def _auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest.fixture
def auth_headers_for():
    """Authorization headers with a Bearer token for a given user."""
    return _auth_headers


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    async def _make(name: str) -> User:
        user = User(email=f"{name.lower()}@example.com", name=name)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest_asyncio.fixture
async def organizer(make_user) -> User:
    return await make_user("Olga")


@pytest_asyncio.fixture
async def players(make_user) -> list[User]:
    return [await make_user(name) for name in ("Alice", "Bob", "Carol", "Dave")]


@pytest_asyncio.fixture
async def make_game(db_session: AsyncSession, organizer: User, clock: FixedClock):
    """Insert a game directly. Published an hour before the clock by default."""

    async def _make(
        max_players: Optional[int] = 2,
        max_guests_per_player: Optional[int] = 0,
        published: bool = True,
        published_at: Optional[datetime] = None,
        game_id: str = "G4me",
    ) -> Game:
        if published_at is None and published:
            published_at = clock.now() - timedelta(hours=1)
        game = Game(
            id=game_id,
            organizer_id=organizer.id,
            name="Sunday Volleyball",
            location="Beach court 3",
            starts_at=clock.now() + timedelta(days=2),
            duration_minutes=90,
            published_at=published_at,
            max_players=max_players,
            max_guests_per_player=max_guests_per_player,
            spots_left=max_players,
        )
        db_session.add(game)
        await db_session.commit()
        return game

    return _make


@pytest.fixture
def participate(client: AsyncClient, clock: FixedClock):
    """
    POST a participation change as `user`, one second after the previous one
    so arrival order is unambiguous.
    """

    async def _participate(user: User, game_id: str, status: str = "going", **body):
        clock.advance(seconds=1)
        return await client.post(
            f"/api/v1/games/{game_id}/participants",
            json={"status": status, **body},
            headers=_auth_headers(user),
        )

    return _participate


@pytest.fixture
def roster(client: AsyncClient):
    """GET the participant list as `user`, returned as {name: status}."""

    async def _roster(user: User, game_id: str) -> dict:
        response = await client.get(
            f"/api/v1/games/{game_id}/participants",
            headers=_auth_headers(user),
        )
        assert response.status_code == 200, response.text
        return {p["user"]["name"]: p["status"] for p in response.json()}

    return _roster


@pytest.fixture
def stored_spots_left(session_factory):
    """spots_left as currently committed, read in a fresh session."""

    async def _read(game_id: str) -> Optional[int]:
        async with session_factory() as session:
            game = await session.get(Game, game_id)
            return game.spots_left

    return _read
