# occupancy_engine/db/session.py
import os
from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from occupancy_engine.core.config import get_settings
from occupancy_engine.db.base import Base

# Import ORM models so that Base.metadata is aware of them.
from occupancy_engine.models import change_log, hvac, ledger_entry, schedule_rule, site  # noqa: F401

settings = get_settings()

# Detect if we're running under pytest
IS_TEST = "PYTEST_CURRENT_TEST" in os.environ


def enable_sqlite_savepoints(async_engine: AsyncEngine) -> None:
    """
    Let pysqlite honour SAVEPOINT.

    The driver otherwise manages BEGIN itself and silently breaks
    `Session.begin_nested()`, which the per-zone batch writes rely on.
    """
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


engine = create_async_engine(
    settings.DB_URL,
    echo=False,
    # Avoid reusing connections across event loops when tests drive the app.
    poolclass=NullPool if IS_TEST else None,
)

enable_sqlite_savepoints(engine)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides an async SQLAlchemy session.

    The session is automatically closed when the request is completed.
    """
    async with AsyncSessionLocal() as session:
        yield session


async def init_db() -> None:
    """
    Create any missing tables for the current models.

    Safe to call from application startup. Typically you'd eventually replace
    this with Alembic migrations.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
