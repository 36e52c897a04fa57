"""Pytest configuration and fixtures for Outreach Ledger tests.

This module provides fixtures for:
- Database: SQLite in-memory engine and session factory
- Settings: test settings with no backoff delay
- HTTP client: AsyncClient for FastAPI testing
- Process-wide state: settings cache, metrics and broadcaster resets
"""

import os
from collections.abc import AsyncGenerator, Generator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

# Set test environment variables before importing the application
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("BROADCAST_BACKEND", "memory")

from outreach_core.config import Settings, get_settings  # noqa: E402
from outreach_core.domain.models import Base  # noqa: E402
from outreach_core.infrastructure.broadcast import (  # noqa: E402
    InMemoryBroadcaster,
    reset_broadcaster,
)
from outreach_core.observability.metrics import get_collector  # noqa: E402


# -----------------------------------------------------------------------------
# Process-wide state
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_process_state():
    """Clear cached settings, metrics and the broadcaster around each test."""
    get_settings.cache_clear()
    get_collector().reset()
    reset_broadcaster()
    yield
    get_settings.cache_clear()
    get_collector().reset()
    reset_broadcaster()


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        database_url="sqlite:///:memory:",
        redis_url="redis://localhost:6379/15",  # Use DB 15 for tests
        broadcast_backend="memory",
        delivery_max_attempts=3,
        delivery_base_delay_seconds=0.0,
        delivery_max_delay_seconds=0.0,
        contact_link_enabled=False,
        operator_api_key=None,
        log_json=False,
    )


# -----------------------------------------------------------------------------
# Synchronous Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Temporarily override BigInteger to compile as INTEGER for SQLite
    # This is needed because SQLite only supports autoincrement on INTEGER PRIMARY KEY
    from sqlalchemy.dialects import sqlite

    original_visit = sqlite.dialect.type_compiler_cls.visit_BIGINT
    sqlite.dialect.type_compiler_cls.visit_BIGINT = lambda self, type_, **kw: "INTEGER"

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Restore original behavior
    sqlite.dialect.type_compiler_cls.visit_BIGINT = original_visit

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sync_session_factory(sync_engine) -> sessionmaker[Session]:
    """Create a synchronous session factory."""
    return sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
def db_session(sync_session_factory) -> Generator[Session, None, None]:
    """Create a synchronous database session for testing."""
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# -----------------------------------------------------------------------------
# Broadcast Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def broadcaster() -> InMemoryBroadcaster:
    """In-memory broadcaster for capturing published messages."""
    return InMemoryBroadcaster()


@pytest.fixture
def published(broadcaster, test_settings) -> list[dict]:
    """Messages published on the webhook channel during the test."""
    messages: list[dict] = []
    broadcaster.subscribe(test_settings.broadcast_channel, messages.append)
    return messages


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(test_settings, sync_session_factory, broadcaster) -> FastAPI:
    """Create a FastAPI test application with test settings and DB override."""
    from outreach_core.api.deps import (
        get_app_settings,
        get_broadcaster,
        get_db,
        get_session_factory,
    )
    from outreach_core.main import app

    app.state.settings = test_settings

    # Override the database dependency to use test database
    def override_get_db():
        session = sync_session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: sync_session_factory
    app.dependency_overrides[get_app_settings] = lambda: test_settings
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster

    yield app

    # Clean up overrides
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing FastAPI endpoints.

    Note: The db_session fixture is included to ensure the test database
    is set up before the client is created.
    """
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac
