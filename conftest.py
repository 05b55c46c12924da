"""
GTSD — Shared Test Fixtures
Each test gets its own SQLite file. Async flows are driven with asyncio.run,
so the engine uses NullPool and never holds a connection across loops.
"""

import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./gtsd_test.db")

import asyncio
from datetime import date

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import models  # noqa: F401  registers tables on Base.metadata
import stores
from database import Base

LITERAL_PROFILE = {
    "gender": "female",
    "date_of_birth": date(1999, 1, 15),
    "height_cm": 165.0,
    "weight_kg": 75.0,
    "activity_level": "sedentary",
    "primary_goal": "lose_weight",
}


def _enable_savepoints(engine) -> None:
    # Let SQLAlchemy emit BEGIN itself so SAVEPOINT nests inside the transaction
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'gtsd.db'}", poolclass=NullPool)
    _enable_savepoints(engine)

    async def create_all():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_all())
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def run_in_session(session_factory):
    """Run `fn(db)` inside one committed transaction and return its result."""

    def runner(fn):
        async def scenario():
            async with session_factory() as db:
                async with db.begin():
                    return await fn(db)

        return asyncio.run(scenario())

    return runner


@pytest.fixture
def seed_profile(run_in_session):
    def seed(user_id: int = 1, **overrides):
        values = {**LITERAL_PROFILE, **overrides}
        return run_in_session(lambda db: stores.upsert_health_profile(db, user_id, values))

    return seed
