"""
SQLite database connection management and schema initialization.
Uses aiosqlite for fully async, non-blocking access.
"""
import aiosqlite
import asyncio
import logging
import weakref
from pathlib import Path

from agentnetwork.config import DB_PATH

logger = logging.getLogger(__name__)

# Module-level shared connection (single connection with WAL mode)
_db: aiosqlite.Connection | None = None
_lock = asyncio.Lock()

# One write lock per connection. All write transactions on a connection go
# through it, which keeps id allocation linearizable and batches atomic.
_write_locks: "weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock]" = weakref.WeakKeyDictionary()


async def get_db() -> aiosqlite.Connection:
    """Return the shared async database connection, initializing it if needed."""
    global _db
    if _db is None:
        async with _lock:
            if _db is None:
                Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
                _db = await aiosqlite.connect(DB_PATH)
                _db.row_factory = aiosqlite.Row
                # WAL mode: allows concurrent reads while writing
                await _db.execute("PRAGMA journal_mode=WAL")
                await init_schema(_db)
                logger.info(f"Database initialized at {DB_PATH}")
    return _db


async def close_db() -> None:
    """Gracefully close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
        logger.info("Database connection closed.")


def write_lock(db: aiosqlite.Connection) -> asyncio.Lock:
    """Return the lock serializing write transactions on ``db``."""
    lock = _write_locks.get(db)
    if lock is None:
        lock = _write_locks[db] = asyncio.Lock()
    return lock


async def init_schema(db: aiosqlite.Connection) -> None:
    """Create all tables if they do not already exist (idempotent)."""
    await db.execute("PRAGMA foreign_keys=ON")
    await db.executescript("""
        -- ----------------------------------------------------------------
        -- Thread: a multi-participant conversation container.
        -- AUTOINCREMENT guarantees ids are never reused.
        -- ----------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS threads (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            instruction   TEXT NOT NULL DEFAULT '',
            participants  TEXT NOT NULL DEFAULT '[]',
            metadata      TEXT,
            created_at    TEXT NOT NULL,
            updated_at    TEXT NOT NULL
        );

        -- ----------------------------------------------------------------
        -- Message: append-only log; ids are log-wide and increasing.
        -- deleted_at is a tombstone, rows are never renumbered.
        -- ----------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS messages (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            thread_id   INTEGER NOT NULL REFERENCES threads(id) ON DELETE CASCADE,
            sender      TEXT NOT NULL,
            content     TEXT NOT NULL,
            tool_calls  TEXT NOT NULL DEFAULT '[]',
            created_at  TEXT NOT NULL,
            updated_at  TEXT NOT NULL,
            deleted_at  TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_messages_thread_id
            ON messages(thread_id, id);

        -- ----------------------------------------------------------------
        -- Agent registry: one row per agent name. name_key is the
        -- casefolded name and carries the uniqueness constraint.
        -- The id column records registration order.
        -- ----------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS agents (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            name          TEXT NOT NULL,
            name_key      TEXT NOT NULL UNIQUE,
            addr          TEXT NOT NULL,
            secure        INTEGER NOT NULL DEFAULT 0,
            role          TEXT NOT NULL DEFAULT '',
            description   TEXT NOT NULL DEFAULT '',
            instructions  TEXT NOT NULL DEFAULT '',
            metadata      TEXT,
            registered_at TEXT NOT NULL,
            last_live_at  TEXT NOT NULL
        );
    """)
    await db.commit()
    logger.info("Schema initialized.")
