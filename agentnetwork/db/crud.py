"""
CRUD operations for AgentNetwork.
All functions are async and receive the aiosqlite connection from the caller.

Writes run inside ``_write_tx`` so that id allocation, per-thread append order
and multi-row batches are serialized per connection. Reads never take the lock.
"""
import json
import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone, timedelta
from typing import Any, AsyncIterator, Iterable, Optional

import aiosqlite
import httpx

from agentnetwork import liveness
from agentnetwork.config import DEFAULT_MESSAGE_LIMIT, DEFAULT_THREAD_LIMIT, LIVENESS_TIMEOUT, MAX_PAGE_LIMIT
from agentnetwork.db.database import write_lock
from agentnetwork.db.models import (
    AgentInfo,
    AgentRuntime,
    Message,
    MessageToolCall,
    Thread,
    is_valid_agent_name,
    normalize_participants,
)
from agentnetwork.errors import ConflictError, InvalidRequest, LivenessError, NotFound
from agentnetwork.mentions import MENTION_PREFIX, count_mentions, name_key

logger = logging.getLogger(__name__)

MESSAGE_ORDERS = {"latest": "DESC", "oldest": "ASC"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_dt(s: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(s) if s else None


def _json_or_none(value: Any) -> Optional[str]:
    return json.dumps(value) if value else None


def _page_limit(limit: Optional[int], default: int) -> int:
    if limit is None or limit == 0:
        return default
    if limit < 0:
        raise InvalidRequest(f"limit must be positive, got {limit}")
    return min(limit, MAX_PAGE_LIMIT)


@asynccontextmanager
async def _write_tx(db: aiosqlite.Connection) -> AsyncIterator[None]:
    """Run the body as one serialized write transaction."""
    async with write_lock(db):
        try:
            yield
        except sqlite3.OperationalError as e:
            await db.rollback()
            if "locked" in str(e):
                raise ConflictError("Database is busy with another writer, retry the call") from e
            raise
        except sqlite3.IntegrityError as e:
            await db.rollback()
            raise ConflictError(f"Write conflicted with existing data: {e}") from e
        except BaseException:
            await db.rollback()
            raise
        else:
            await db.commit()


# ─────────────────────────────────────────────
# Thread store
# ─────────────────────────────────────────────

async def thread_create(
    db: aiosqlite.Connection,
    instruction: str = "",
    participants: Optional[list[str]] = None,
    metadata: Optional[dict[str, str]] = None,
) -> Thread:
    now = _now()
    names = normalize_participants(participants or [])
    async with _write_tx(db):
        async with db.execute(
            "INSERT INTO threads (instruction, participants, metadata, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (instruction or "", json.dumps(names), _json_or_none(metadata), now, now),
        ) as cur:
            tid = cur.lastrowid
    logger.info(f"Thread created: {tid} participants={names}")
    return Thread(id=tid, instruction=instruction or "", participants=names, metadata=metadata or None,
                  created_at=_parse_dt(now), updated_at=_parse_dt(now))


async def thread_get(db: aiosqlite.Connection, thread_id: int) -> Thread:
    async with db.execute("SELECT * FROM threads WHERE id = ?", (thread_id,)) as cur:
        row = await cur.fetchone()
    if row is None:
        raise NotFound(f"Thread {thread_id} not found", data={"thread_id": thread_id})
    return _row_to_thread(row)


async def thread_list(
    db: aiosqlite.Connection,
    cursor: Optional[int] = None,
    limit: Optional[int] = None,
) -> tuple[list[Thread], Optional[int]]:
    """Page through threads newest-first.

    Returns ``(threads, next_cursor)``; ``next_cursor`` is None on the final page.
    """
    limit = _page_limit(limit, DEFAULT_THREAD_LIMIT)
    if cursor:
        query, params = "SELECT * FROM threads WHERE id < ? ORDER BY id DESC LIMIT ?", (cursor, limit + 1)
    else:
        query, params = "SELECT * FROM threads ORDER BY id DESC LIMIT ?", (limit + 1,)
    async with db.execute(query, params) as cur:
        rows = await cur.fetchall()

    threads = [_row_to_thread(r) for r in rows[:limit]]
    next_cursor = threads[-1].id if len(rows) > limit else None
    return threads, next_cursor


def _row_to_thread(row: aiosqlite.Row) -> Thread:
    return Thread(
        id=row["id"],
        instruction=row["instruction"],
        participants=json.loads(row["participants"]),
        metadata=json.loads(row["metadata"]) if row["metadata"] else None,
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


# ─────────────────────────────────────────────
# Message log
# ─────────────────────────────────────────────

async def msg_post(
    db: aiosqlite.Connection,
    thread_id: int,
    sender: str,
    content: str,
    tool_calls: Optional[list[MessageToolCall]] = None,
) -> Message:
    sender = (sender or "").strip()
    if not sender:
        raise InvalidRequest("sender must not be empty")
    calls = list(tool_calls or [])
    now = _now()

    async with _write_tx(db):
        thread = await thread_get(db, thread_id)
        if not thread.allows_sender(sender):
            raise InvalidRequest(
                f"Sender '{sender}' is not a participant of thread {thread_id}",
                data={"thread_id": thread_id, "participants": thread.participants},
            )
        async with db.execute(
            "INSERT INTO messages (thread_id, sender, content, tool_calls, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
            (thread_id, sender, content, json.dumps([c.to_dict() for c in calls]), now, now),
        ) as cur:
            mid = cur.lastrowid
        await db.execute("UPDATE threads SET updated_at = ? WHERE id = ?", (now, thread_id))

    logger.debug(f"Message posted: id={mid} sender={sender} thread={thread_id}")
    return Message(id=mid, thread_id=thread_id, sender=sender, content=content, tool_calls=calls,
                   created_at=_parse_dt(now), updated_at=_parse_dt(now), deleted_at=None)


async def msg_list(
    db: aiosqlite.Connection,
    thread_id: int,
    order: str = "oldest",
    cursor: Optional[int] = None,
    limit: Optional[int] = None,
) -> tuple[list[Message], int]:
    """Page through a thread's live messages.

    The cursor is exclusive: ``latest`` returns ids below it, ``oldest`` ids
    above it. Returns ``(messages, next_cursor)`` where ``next_cursor`` is 0
    once the thread is exhausted in that direction. A thread with no matching
    messages, including an unknown thread id, yields an empty page.
    """
    direction = MESSAGE_ORDERS.get(order)
    if direction is None:
        raise InvalidRequest(f"Invalid order '{order}'. Must be one of {sorted(MESSAGE_ORDERS)}")
    limit = _page_limit(limit, DEFAULT_MESSAGE_LIMIT)

    query = "SELECT * FROM messages WHERE thread_id = ? AND deleted_at IS NULL"
    params: list[Any] = [thread_id]
    if cursor:
        query += " AND id < ?" if direction == "DESC" else " AND id > ?"
        params.append(cursor)
    query += f" ORDER BY id {direction} LIMIT ?"
    params.append(limit + 1)

    async with db.execute(query, params) as cur:
        rows = await cur.fetchall()

    msgs = [_row_to_message(r) for r in rows[:limit]]
    next_cursor = msgs[-1].id if len(rows) > limit else 0
    return msgs, next_cursor


async def msg_count(db: aiosqlite.Connection, thread_id: int) -> int:
    await thread_get(db, thread_id)
    async with db.execute(
        "SELECT COUNT(*) AS cnt FROM messages WHERE thread_id = ? AND deleted_at IS NULL", (thread_id,)
    ) as cur:
        row = await cur.fetchone()
    return row["cnt"]


async def msg_delete(db: aiosqlite.Connection, message_id: int) -> None:
    """Soft-delete a message. Its id stays allocated and the row is kept."""
    now = _now()
    async with _write_tx(db):
        async with db.execute(
            "UPDATE messages SET deleted_at = ?, updated_at = ? WHERE id = ? AND deleted_at IS NULL",
            (now, now, message_id),
        ) as cur:
            updated = cur.rowcount
        if updated == 0:
            raise NotFound(f"Message {message_id} not found", data={"message_id": message_id})
    logger.info(f"Message soft-deleted: {message_id}")


async def threads_mentioning_once(db: aiosqlite.Connection, agent_name: str) -> list[int]:
    """Return ids of threads whose live messages mention ``@agent_name`` exactly once in total."""
    # SQL only narrows to messages carrying a mention marker; names are matched in Python.
    async with db.execute(
        "SELECT thread_id, content FROM messages "
        "WHERE deleted_at IS NULL AND instr(content, ?) > 0 ORDER BY thread_id, id",
        (MENTION_PREFIX,),
    ) as cur:
        rows = await cur.fetchall()

    counts: dict[int, int] = {}
    for row in rows:
        n = count_mentions(row["content"], agent_name)
        if n:
            counts[row["thread_id"]] = counts.get(row["thread_id"], 0) + n
    thread_ids = [tid for tid, n in counts.items() if n == 1]
    logger.debug(f"Mention-once threads for '{agent_name}': {thread_ids}")
    return thread_ids


def _row_to_message(row: aiosqlite.Row) -> Message:
    return Message(
        id=row["id"],
        thread_id=row["thread_id"],
        sender=row["sender"],
        content=row["content"],
        tool_calls=[MessageToolCall(**c) for c in json.loads(row["tool_calls"])],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
        deleted_at=_parse_dt(row["deleted_at"]),
    )


# ─────────────────────────────────────────────
# Agent registry
# ─────────────────────────────────────────────

async def agent_register(
    db: aiosqlite.Connection,
    addr: str,
    infos: list[AgentInfo],
    secure: bool = False,
) -> list[AgentRuntime]:
    """
    Upsert a batch of agents reachable at ``addr``.

    The batch is all-or-nothing: every entry is validated before anything is
    written, and the upserts share one transaction. Re-registering a name
    overwrites its address and capability fields and keeps its original
    registration order.
    """
    addr = (addr or "").strip()
    if not addr:
        raise InvalidRequest("addr must not be empty")
    invalid = [i.name for i in infos if not is_valid_agent_name(i.name or "")]
    if invalid:
        raise InvalidRequest(
            f"Invalid agent names in batch: {invalid!r}; nothing was registered",
            data={"invalid": invalid},
        )

    batch: dict[str, AgentInfo] = {}
    for info in infos:
        batch[name_key(info.name)] = info

    now = _now()
    async with _write_tx(db):
        await db.executemany(
            "INSERT INTO agents (name, name_key, addr, secure, role, description, instructions, metadata, "
            "registered_at, last_live_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(name_key) DO UPDATE SET name = excluded.name, addr = excluded.addr, secure = excluded.secure, "
            "role = excluded.role, description = excluded.description, instructions = excluded.instructions, "
            "metadata = excluded.metadata, last_live_at = excluded.last_live_at",
            [
                (i.name, key, addr, int(secure), i.role or "", i.description or "", i.instructions or "",
                 _json_or_none(i.metadata), now, now)
                for key, i in batch.items()
            ],
        )

    logger.info(f"Agents registered at {addr}: {[i.name for i in batch.values()]}")
    return await agent_list(db, [i.name for i in batch.values()])


async def agent_deregister(db: aiosqlite.Connection, names: list[str]) -> int:
    """Remove agents by name. Unknown names are ignored."""
    if not names:
        return 0
    keys = [name_key(n) for n in names]
    async with _write_tx(db):
        async with db.execute(
            f"DELETE FROM agents WHERE name_key IN ({_placeholders(keys)})", keys
        ) as cur:
            deleted = cur.rowcount
    if deleted:
        logger.info(f"Agents deregistered: {names}")
    return deleted


async def agent_list(db: aiosqlite.Connection, names: Optional[Iterable[str]] = None) -> list[AgentRuntime]:
    """Return agents in registration order; ``names=None`` means every agent."""
    if names is None:
        async with db.execute("SELECT * FROM agents ORDER BY id") as cur:
            rows = await cur.fetchall()
    else:
        keys = [name_key(n) for n in names]
        if not keys:
            return []
        async with db.execute(
            f"SELECT * FROM agents WHERE name_key IN ({_placeholders(keys)}) ORDER BY id", keys
        ) as cur:
            rows = await cur.fetchall()
    return [_row_to_agent(r) for r in rows]


async def agent_check_live(
    db: aiosqlite.Connection,
    names: list[str],
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = LIVENESS_TIMEOUT,
) -> None:
    """
    Succeed only if every named agent is registered and answers its probe.

    Agents that answered get ``last_live_at`` refreshed even when the call as a
    whole fails. Raises LivenessError listing the unreachable names.
    """
    agents = {name_key(a.name): a for a in await agent_list(db, names)}
    results = await liveness.probe_agents(agents.values(), timeout=timeout, transport=transport)

    live = [name_key(name) for name, ok in results.items() if ok]
    if live:
        now = _now()
        async with _write_tx(db):
            await db.execute(
                f"UPDATE agents SET last_live_at = ? WHERE name_key IN ({_placeholders(live)})", [now, *live]
            )

    unreachable = []
    for name in names:
        agent = agents.get(name_key(name))
        if agent is None or not results.get(agent.name):
            unreachable.append(name)
    if unreachable:
        raise LivenessError(unreachable)


async def agent_prune_stale(db: aiosqlite.Connection, max_age_seconds: int) -> list[str]:
    """Delete agents whose last successful liveness signal is older than ``max_age_seconds``."""
    cutoff = (datetime.now(timezone.utc) - timedelta(seconds=max_age_seconds)).isoformat()
    async with db.execute("SELECT name, name_key FROM agents WHERE last_live_at < ?", (cutoff,)) as cur:
        rows = await cur.fetchall()
    if not rows:
        return []
    stale = [r["name"] for r in rows]
    keys = [r["name_key"] for r in rows]
    async with _write_tx(db):
        await db.execute(
            f"DELETE FROM agents WHERE last_live_at < ? AND name_key IN ({_placeholders(keys)})", [cutoff, *keys]
        )
    for name in stale:
        logger.warning(f"Agent '{name}' not live since before {cutoff}, removed from registry")
    return stale


def _placeholders(values: list) -> str:
    return ", ".join("?" for _ in values)


def _row_to_agent(row: aiosqlite.Row) -> AgentRuntime:
    return AgentRuntime(
        id=row["id"],
        name=row["name"],
        addr=row["addr"],
        secure=bool(row["secure"]),
        role=row["role"],
        description=row["description"],
        instructions=row["instructions"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else None,
        registered_at=_parse_dt(row["registered_at"]),
        last_live_at=_parse_dt(row["last_live_at"]),
    )
