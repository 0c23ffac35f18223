# tests/conftest.py
from datetime import datetime, time, timezone

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool, StaticPool

from occupancy_engine.api.dependencies.clock import get_now
from occupancy_engine.db.base import Base
from occupancy_engine.db.session import enable_sqlite_savepoints, get_db
from occupancy_engine.main import create_app
from occupancy_engine.models.hvac import HvacZone, ThermostatProfile
from occupancy_engine.models.site import Site, StoreHours
from occupancy_engine.schemas.recurrence import Weekday

CHICAGO = "America/Chicago"

# 2024-06-12 (Wednesday) 12:00 local in Chicago (CDT, UTC-5).
FIXED_NOW = datetime(2024, 6, 12, 17, 0, tzinfo=timezone.utc)


def weekday_hours(site_id: int, open_time=time(9, 0), close_time=time(21, 0)) -> list[StoreHours]:
    return [
        StoreHours(
            site_id=site_id,
            day_of_week=day.value,
            open_time=open_time,
            close_time=close_time,
            is_closed=False,
        )
        for day in Weekday
    ]


# --------------------------------------------------------------------------
# Async session against an in-memory database (service-level tests)
# --------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_session():
    """
    Fresh in-memory schema per test.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False, class_=AsyncSession)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def site(db_session) -> Site:
    site = Site(name="Flagship", timezone=CHICAGO)
    db_session.add(site)
    await db_session.commit()
    await db_session.refresh(site)

    db_session.add_all(weekday_hours(site.id))
    await db_session.commit()
    return site


# --------------------------------------------------------------------------
# HTTP client (API tests)
# --------------------------------------------------------------------------

class ApiHarness:
    """
    TestClient plus a synchronous session on the same database file for
    seeding and inspecting rows.
    """

    def __init__(self, client: TestClient, sync_engine):
        self.client = client
        self.sync_engine = sync_engine
        self.now = FIXED_NOW

    def add(self, *rows):
        with Session(self.sync_engine, expire_on_commit=False) as session:
            session.add_all(rows)
            session.commit()
        return rows[0] if len(rows) == 1 else rows

    def seed_site(self, timezone_name: str = CHICAGO, with_hours: bool = True) -> Site:
        site = self.add(Site(name="Test Site", timezone=timezone_name))
        if with_hours:
            self.add(*weekday_hours(site.id))
        return site

    def seed_profile(self, **fields) -> ThermostatProfile:
        fields.setdefault("name", "Retail Standard")
        return self.add(ThermostatProfile(**fields))

    def seed_zone(self, site_id: int, **fields) -> HvacZone:
        fields.setdefault("name", "Sales Floor")
        fields.setdefault("is_override", False)
        return self.add(HvacZone(site_id=site_id, **fields))

    def fetch(self, model, pk):
        with Session(self.sync_engine) as session:
            row = session.get(model, pk)
            if row is not None:
                session.expunge(row)
            return row


@pytest.fixture()
def api(tmp_path):
    """
    App wired to a throwaway SQLite file, with the clock pinned to FIXED_NOW.

    The client is used without its context manager so the startup hook
    (which would create tables on the configured database) does not run.
    """
    db_file = tmp_path / "engine.db"

    sync_engine = create_engine(f"sqlite:///{db_file}")
    Base.metadata.create_all(sync_engine)

    async_engine = create_async_engine(f"sqlite+aiosqlite:///{db_file}", poolclass=NullPool)
    enable_sqlite_savepoints(async_engine)
    session_factory = async_sessionmaker(async_engine, expire_on_commit=False, autoflush=False, class_=AsyncSession)

    app = create_app()
    harness = ApiHarness(TestClient(app), sync_engine)

    async def _get_db():
        async with session_factory() as session:
            yield session

    async def _get_now():
        return harness.now

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_now] = _get_now

    yield harness

    app.dependency_overrides.clear()
    sync_engine.dispose()
