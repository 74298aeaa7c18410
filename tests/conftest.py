"""pytest fixtures for ClipVault backend tests.

Provides:
- postgres_container: Session-scoped testcontainer PostgreSQL with migrations applied
- pg_session_factory / pg_uow_factory: Sessions against that migrated schema
- utc_timezone: Autouse fixture enforcing UTC timezone
- engine: Function-scoped SQLite database file with all tables created
- session_factory / session: Async sessions bound to that engine
- uow_factory: Function-scoped UnitOfWork factory
- record_store: SqlRecordStore over the test database
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from testcontainers.postgres import PostgresContainer

import clipvault.models  # noqa: F401
from clipvault.core.database import setup_db_session
from clipvault.services.record_store import SqlRecordStore
from clipvault.uow import create_uow_factory

PROJECT_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests.

    Namespace names and date presets are computed in UTC; TZ=UTC keeps any
    naive datetime handling reproducible.
    """
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Provide a fresh database per test.

    A file database gives every session its own connection, so concurrent
    units of work behave like they do against PostgreSQL.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'clipvault.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest_asyncio.fixture(scope="function")
async def record_store(uow_factory) -> SqlRecordStore:
    return SqlRecordStore(uow_factory)


@pytest.fixture(scope="session")
def postgres_container():
    """Provide session-scoped PostgreSQL container with migrations applied.

    Migrations run through the alembic CLI in a subprocess, so the schema under
    test is the one the migration files build rather than ``create_all``.
    Tests depending on it are skipped when no Docker daemon is reachable.
    """
    container = PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="test_clipvault",
    )
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"PostgreSQL container unavailable: {e}")

    try:
        db_url = container.get_connection_url(driver="psycopg")
        env = os.environ.copy()
        env["DATABASE_URL"] = db_url
        subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            cwd=PROJECT_ROOT,
            env=env,
        )
        yield container
    finally:
        container.stop()


@pytest_asyncio.fixture(scope="function")
async def pg_session_factory(postgres_container) -> AsyncGenerator[async_sessionmaker, None]:
    """Session factory on the migrated schema; tables are emptied after each test."""
    session_factory = setup_db_session(
        postgres_container.get_connection_url(driver="psycopg"), pool_size=5
    )

    yield session_factory

    async with session_factory() as session:
        await session.execute(text("DELETE FROM mailing_list_entries"))
        await session.execute(text("DELETE FROM submissions"))
        await session.commit()
    await session_factory.kw["bind"].dispose()


@pytest_asyncio.fixture(scope="function")
async def pg_uow_factory(pg_session_factory):
    return create_uow_factory(pg_session_factory)
