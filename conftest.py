"""
Shared fixtures for the AgentNetwork test suite.

Unit tests run against an in-memory SQLite connection; HTTP tests run the
FastAPI app in-process against a throwaway database file, so no server
process or network port is needed.
"""
import aiosqlite
import pytest
import pytest_asyncio

from agentnetwork import liveness
from agentnetwork.db import database
from agentnetwork.db.database import init_schema


async def _make_db() -> aiosqlite.Connection:
    db = await aiosqlite.connect(":memory:")
    db.row_factory = aiosqlite.Row
    await init_schema(db)
    return db


@pytest_asyncio.fixture
async def db():
    conn = await _make_db()
    yield conn
    await conn.close()


@pytest.fixture
def record_liveness(monkeypatch):
    """Treat every registered agent as live without probing it."""
    monkeypatch.setattr(liveness, "LIVENESS_PROBE", "record")


@pytest.fixture
def app_db(tmp_path, monkeypatch):
    """Point the shared connection at a fresh database file for one test."""
    monkeypatch.setattr(database, "DB_PATH", str(tmp_path / "network_test.db"))
    monkeypatch.setattr(database, "_db", None)
    yield
    database._db = None
