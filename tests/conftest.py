import os

# Must be set before any app module reads settings or configures logging
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["EMAIL_USER"] = ""
os.environ["EMAIL_APP_PASSWORD"] = ""
os.environ["CRON_SECRET"] = ""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.db import create_tables
from app.db.models import Task
from app.db.session import configure_sqlite_transactions
from app.utils.datetime_utils import to_naive_utc

from factories import FakeChannel


# Test database setup
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    configure_sqlite_transactions(engine)
    await create_tables(engine)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def fake_channel() -> FakeChannel:
    return FakeChannel()


# Test data factories
@pytest.fixture
def make_task(db_session: AsyncSession):
    """Persist a task; keyword arguments override the defaults."""

    async def _make_task(**overrides) -> Task:
        values = {
            "text": "Write quarterly report",
            "completed": False,
            "user_id": "user-1",
            "user_email": "ada@example.com",
            "user_name": "Ada",
        }
        values.update(overrides)
        for key in ("due_date", "repeat_start_date"):
            if values.get(key) is not None:
                values[key] = to_naive_utc(values[key])
        task = Task(**values)
        db_session.add(task)
        await db_session.commit()
        return task

    return _make_task
