"""
Shared pytest fixtures.

Every test gets a fresh in-memory SQLite database with foreign keys enforced,
so ON DELETE CASCADE behaves as it does on PostgreSQL.
"""

import os
from typing import AsyncGenerator

# Must be set before flowstore.core.config is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CORS_ALLOW_ORIGINS", "https://localhost:3005")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import flowstore.models  # noqa: F401
from flowstore.db.session import get_session
from flowstore.models.base import Base
from tests.factories import make_edge, make_node


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy drive BEGIN so rollbacks and savepoints are real.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


# ============================================================================
# HTTP FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def client(session_maker) -> AsyncGenerator[httpx.AsyncClient, None]:
    from flowstore.main import app

    async def _override_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = _override_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ============================================================================
# SAMPLE GRAPHS
# ============================================================================


@pytest.fixture
def sample_graph() -> dict:
    """Start -> review -> done, with one conditional edge and one item."""
    return {
        "name": "Purchase approval",
        "description": "Approve purchase requests",
        "columns": [{"key": "amount", "label": "Amount"}],
        "nodes": [
            make_node("initial", "initial", 250, 50, label="Start", inputs=[], deletable=False),
            make_node("review", "task", 250, 200),
            make_node("done", "final", 250, 350),
        ],
        "edges": [
            make_edge("e1", "initial", "review"),
            make_edge("e2", "review", "done", label="approved", type="conditional"),
        ],
        "items": [
            {
                "id": "item-1",
                "data": {"amount": 120},
                "currentNodeId": "review",
                "status": "active",
                "history": [{"node": "initial"}],
                "pathTaken": ["initial"],
                "parallelPaths": {},
                "createdAt": "2024-03-05T10:20:30.456Z",
            }
        ],
        "deadlines": {"field": " due ", "days": "5"},
    }
