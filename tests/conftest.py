"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import AsyncGenerator
from pathlib import Path

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "staging")
os.environ.setdefault("DEBUG", "false")

import fakeredis.aioredis  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from studychat.core.database import Base  # noqa: E402
from studychat.models.chat_message import ChatMessage  # noqa: E402, F401
from studychat.models.room import Room, RoomParticipant  # noqa: E402
from studychat.models.user import User  # noqa: E402
from studychat.services.token_service import TokenService  # noqa: E402
from tests.fakes import InMemoryTransport, ManualScheduler  # noqa: E402

# --- Test DB (SQLite file per run, one connection per session) ---

_DB_PATH = Path(tempfile.gettempdir()) / f"studychat-test-{os.getpid()}.db"

test_engine = create_async_engine(
    f"sqlite+aiosqlite:///{_DB_PATH}", echo=False, poolclass=NullPool
)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(autouse=True)
async def setup_db() -> AsyncGenerator[None, None]:
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    _DB_PATH.unlink(missing_ok=True)


async def override_get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a test database session."""
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return test_session_factory


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a raw async session for repository tests."""
    async with test_session_factory() as session:
        yield session


# --- Seed helpers ---


async def seed_user(
    email: str, full_name: str, avatar_url: str | None = None
) -> User:
    async with test_session_factory() as session:
        user = User(email=email, full_name=full_name, avatar_url=avatar_url)
        session.add(user)
        await session.commit()
        return user


async def seed_room(
    title: str, creator_id: int, member_ids: tuple[int, ...] = ()
) -> Room:
    async with test_session_factory() as session:
        room = Room(title=title, creator_id=creator_id)
        session.add(room)
        await session.flush()
        for user_id in member_ids:
            session.add(RoomParticipant(room_id=room.id, user_id=user_id))
        await session.commit()
        return room


@pytest.fixture
async def study_room() -> tuple[Room, User, User]:
    """A room created by Alice with Bob as a participant."""
    alice = await seed_user("alice@test.com", "Alice")
    bob = await seed_user("bob@test.com", "Bob")
    room = await seed_room("Linear Algebra", alice.id, (bob.id,))
    return room, alice, bob


# --- Realtime fakes ---


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Create a fresh fake Redis client."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


# --- Token helpers ---


def make_auth_headers(
    user_id: int = 1,
    email: str = "test@test.com",
    role: str = "user",
) -> dict[str, str]:
    """Generate Authorization headers with a valid access token."""
    token = TokenService().create_access_token(user_id=user_id, email=email, role=role)
    return {"Authorization": f"Bearer {token}"}


# --- App override & client fixtures ---


def _get_app(transport: InMemoryTransport):  # type: ignore[no-untyped-def]
    """Import app lazily and apply overrides."""
    from studychat.core.database import get_async_session
    from studychat.dependencies import get_session_factory, get_transport
    from studychat.main import app

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_session_factory] = lambda: test_session_factory
    app.dependency_overrides[get_transport] = lambda: transport
    return app


@pytest.fixture
async def async_client(
    transport: InMemoryTransport,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client without credentials."""
    from studychat.core.rate_limit import limiter

    application = _get_app(transport)
    limiter.reset()
    async with AsyncClient(
        transport=ASGITransport(app=application), base_url="http://test"
    ) as ac:
        yield ac
    application.dependency_overrides.clear()
