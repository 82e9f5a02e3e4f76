"""
Pytest fixtures for test database, client, and authentication.

Each test gets a fresh database (a SQLite file under tmp_path by default,
or TEST_DATABASE_URL when set, e.g. a disposable Postgres) with tables
created before and dropped after. Requests and fixtures use separate,
short-lived sessions from the same factory so concurrent tests exercise
real transaction boundaries.
"""

import os

# Must be set before festgate is imported: settings and the app engine are
# built at import time.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./festgate_import.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ADMIN_EMAILS", '["admin@festival.test"]')
os.environ.setdefault("ENVIRONMENT", "test")

from typing import AsyncGenerator, Callable, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from festgate.main import app
from festgate.db.base import Base
from festgate.db.session import build_engine, build_sessionmaker, get_db
from festgate.core.security import create_access_token
from festgate.core.errors import NotificationError
from festgate.infrastructure.notifier import NotificationKind, Notifier, get_notifier
from festgate.models.item import Item
from festgate.models.user import User


class RecordingNotifier(Notifier):
    """Collects notifications instead of sending them."""

    def __init__(self, fail: bool = False):
        self.sent: list[tuple[int, NotificationKind, dict]] = []
        self.fail = fail

    async def notify(self, user_id: int, kind: NotificationKind, payload: dict) -> None:
        if self.fail:
            raise NotificationError("mail relay down")
        self.sent.append((user_id, kind, payload))


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables on a fresh database, yield a session factory, drop tables."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = build_engine(url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield build_sessionmaker(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A session for direct service calls. Commit explicitly where needed."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, notifier) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the DB and notifier dependencies overridden."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_user(session_factory, subject: str, email: str, role: str = "user") -> User:
    async with session_factory() as session:
        user = User(subject=subject, email=email, name=subject.title(), role=role)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


def _headers(user: User) -> dict:
    token = create_access_token(data={"sub": user.subject, "email": user.email, "name": user.name})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_user(session_factory) -> User:
    return await _make_user(session_factory, "alice", "alice@student.test")


@pytest_asyncio.fixture
async def other_user(session_factory) -> User:
    return await _make_user(session_factory, "bob", "bob@student.test")


@pytest_asyncio.fixture
async def reviewer(session_factory) -> User:
    return await _make_user(session_factory, "rita", "reviewer@festival.test")


@pytest_asyncio.fixture
async def scanner(session_factory) -> User:
    return await _make_user(session_factory, "sam", "gate@festival.test")


@pytest_asyncio.fixture
async def admin_user(session_factory) -> User:
    return await _make_user(session_factory, "admin", "admin@festival.test", role="admin")


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    return _headers(test_user)


@pytest_asyncio.fixture
async def other_headers(other_user: User) -> dict:
    return _headers(other_user)


@pytest_asyncio.fixture
async def reviewer_headers(reviewer: User) -> dict:
    return _headers(reviewer)


@pytest_asyncio.fixture
async def scanner_headers(scanner: User) -> dict:
    return _headers(scanner)


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict:
    return _headers(admin_user)


@pytest.fixture
def make_item(session_factory) -> Callable:
    """Factory for items; available_count defaults to max_capacity."""

    async def _make(
        max_capacity: int = 100,
        available_count: Optional[int] = None,
        gated: bool = False,
        unit_price: int = 150,
        kind: str = "workshop",
        title: str = "Screen Printing Workshop",
    ) -> Item:
        async with session_factory() as session:
            item = Item(
                kind=kind,
                title=title,
                venue="Main Hall",
                gated=gated,
                unit_price=unit_price,
                max_capacity=max_capacity,
                available_count=max_capacity if available_count is None else available_count,
                reviewer_emails=["reviewer@festival.test"],
                scanner_emails=["gate@festival.test"],
            )
            session.add(item)
            await session.commit()
            await session.refresh(item)
            return item

    return _make


@pytest_asyncio.fixture
async def test_item(make_item) -> Item:
    """A non-gated workshop with 100 seats."""
    return await make_item()


@pytest_asyncio.fixture
async def gated_item(make_item) -> Item:
    """A gated concert night with 2 places."""
    return await make_item(max_capacity=2, gated=True, kind="concert", title="Friday Night Concert")


@pytest.fixture
def fetch_item(session_factory) -> Callable:
    """Read an item back in its own session (committed state only)."""

    async def _fetch(item_id: int) -> Item:
        async with session_factory() as session:
            return await session.get(Item, item_id)

    return _fetch


@pytest.fixture
def png_bytes() -> bytes:
    # PNG signature plus padding; never decoded
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
