"""
Shared fixtures: an in-memory SQLite database, seeded users and an HTTP
client whose requests run against that database.
"""

import os

os.environ.setdefault("ST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ST_LOG_FORMAT", "text")

from datetime import date  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from app.core.auth import AuthenticatedUser, create_jwt  # noqa: E402
from app.core.database import get_session  # noqa: E402
from app.main import app  # noqa: E402
from app.models.project import Project  # noqa: E402
from app.models.stage import Stage  # noqa: E402
from app.models.user import User  # noqa: E402


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    """Replace the Redis client used for event publishing."""
    redis_client = AsyncMock()
    monkeypatch.setattr("app.core.events.get_redis", AsyncMock(return_value=redis_client))
    return redis_client


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def _make_user(session, email, role="manager", manager_id=None) -> User:
    user = User(email=email, name=email.split("@")[0], role=role, manager_id=manager_id)
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def manager(session) -> User:
    return await _make_user(session, "owner@example.com")


@pytest.fixture
async def other_manager(session) -> User:
    return await _make_user(session, "peer@example.com")


@pytest.fixture
async def member(session, manager) -> User:
    """A plain user reporting to `manager`."""
    return await _make_user(session, "member@example.com", role="user", manager_id=manager.id)


@pytest.fixture
async def outsider(session) -> User:
    return await _make_user(session, "outsider@example.com", role="user")


@pytest.fixture
def owner_auth(manager) -> AuthenticatedUser:
    return AuthenticatedUser(manager)


@pytest.fixture
def peer_auth(other_manager) -> AuthenticatedUser:
    return AuthenticatedUser(other_manager)


# ---------------------------------------------------------------------------
# Domain data
# ---------------------------------------------------------------------------


@pytest.fixture
async def project(session, manager) -> Project:
    p = Project(name="Bridge Rebuild", created_on=date(2024, 1, 1), owner_id=manager.id)
    session.add(p)
    await session.commit()
    return p


@pytest.fixture
def make_stage(session, manager):
    """Factory for global catalog stages owned by `manager`."""

    async def _make(name: str, **kwargs) -> Stage:
        stage = Stage(name=name, owner_id=kwargs.pop("owner_id", manager.id), **kwargs)
        session.add(stage)
        await session.commit()
        return stage

    return _make


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
def headers_for():
    """Build Authorization headers for a user."""

    def _headers(user: User) -> dict[str, str]:
        token, _ = create_jwt(user.id, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
async def client(session_factory):
    async def _session_override():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _session_override
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
