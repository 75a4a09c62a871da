"""
Pytest configuration and shared fixtures.
"""

import os
import tempfile
from collections.abc import AsyncGenerator
from uuid import uuid4

# Environment must be set BEFORE any boxsync import reads the settings
_TEST_DIR = tempfile.mkdtemp(prefix="boxsync-tests-")
TEST_DATABASE_URL = os.getenv(
    "TEST_DATABASE_URL",
    f"sqlite+aiosqlite:///{_TEST_DIR}/boxsync.db",
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["OTEL_ENABLED"] = "false"
os.environ["ACCOUNT_REGISTRATION_WAIT_SECONDS"] = "0"
os.environ["REGISTRATION_POLL_INTERVAL_SECONDS"] = "0.02"
os.environ["RETRY_BACKOFF_BASE_SECONDS"] = "0"
os.environ["RETRY_BACKOFF_MAX_SECONDS"] = "0"
os.environ["WORKER_POLL_INTERVAL_SECONDS"] = "0.05"

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

import boxsync.db.connection as db_connection
from boxsync.api.auth import create_access_token
from boxsync.api.main import create_app
from boxsync.db import Base, close_db, get_engine, init_db


@pytest.fixture(scope="session")
def database_url() -> str:
    """Get the test database URL."""
    return TEST_DATABASE_URL


@pytest_asyncio.fixture
async def database(database_url: str) -> AsyncGenerator[None]:
    """Create all tables for one test and drop them afterwards."""
    await init_db(create_tables=True)

    yield

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await close_db()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession]:
    """
    Create a database session for tests.

    On SQLite every transaction holds the write lock, so tests commit before
    handing control to workers or other sessions.
    """
    async with db_connection.AsyncSessionLocal() as session:
        yield session

        # Rollback any uncommitted changes
        await session.rollback()


@pytest_asyncio.fixture
async def app(database) -> FastAPI:
    """Create a FastAPI app backed by the test database."""
    return create_app()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def box_id() -> str:
    """Generate a test box ID."""
    return f"box-{uuid4().hex[:8]}"


@pytest.fixture
def auth_headers(box_id: str) -> dict[str, str]:
    """Create authentication headers for testing."""
    token = create_access_token(box_id=box_id)
    return {
        "Authorization": f"Bearer {token}",
    }


@pytest.fixture
def other_box_headers() -> dict[str, str]:
    """Authentication headers of a second box."""
    token = create_access_token(box_id=f"box-{uuid4().hex[:8]}")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def account_id() -> str:
    """Generate a unique account id."""
    return f"acct-{uuid4().hex[:12]}"


@pytest.fixture
def temporary_handler():
    """Register handlers for throwaway queues and remove them afterwards."""
    from boxsync.worker.handlers import _handlers, register_handler

    queues: list[str] = []

    def register(queue: str, handler):
        queues.append(queue)
        return register_handler(queue)(handler)

    yield register

    for queue in queues:
        _handlers.pop(queue, None)
