from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import event
from sqlalchemy.pool import NullPool
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config.settings import settings


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


def configure_sqlite_transactions(async_engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy emit BEGIN itself so SAVEPOINTs (session.begin_nested) behave
    on SQLite. Must be called before the first connection is opened.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


engine = create_async_engine(
    str(settings.DATABASE_URL),
    echo=False,
    **_engine_options(str(settings.DATABASE_URL)),
)
if engine.dialect.name == "sqlite":
    configure_sqlite_transactions(engine)

AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get async database session"""
    async with AsyncSessionLocal() as db:
        try:
            yield db
        except Exception:
            await db.rollback()
            raise


@asynccontextmanager
async def isolated_sessionmaker() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """
    Session factory on a throwaway engine bound to the running event loop.

    Celery tasks drive async code through asyncio.run, which starts a new loop
    per call; pooled connections of the shared engine cannot cross loops.
    """
    task_engine = create_async_engine(
        str(settings.DATABASE_URL), echo=False, poolclass=NullPool
    )
    if task_engine.dialect.name == "sqlite":
        configure_sqlite_transactions(task_engine)
    try:
        yield async_sessionmaker(
            bind=task_engine, class_=AsyncSession, expire_on_commit=False
        )
    finally:
        await task_engine.dispose()
