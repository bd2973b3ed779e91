import asyncio

import pytest

from agentnetwork.db import crud
from agentnetwork.errors import NotFound


@pytest.mark.asyncio
async def test_thread_create_assigns_increasing_ids_and_normalizes_participants(db):
    t1 = await crud.thread_create(db, "plan the release", ["a", "B", "b", "A", "c"], {"team": "infra"})
    t2 = await crud.thread_create(db)

    assert t2.id > t1.id
    assert t1.participants == ["a", "B", "c"]

    stored = await crud.thread_get(db, t1.id)
    assert stored.instruction == "plan the release"
    assert stored.participants == ["a", "B", "c"]
    assert stored.metadata == {"team": "infra"}
    assert stored.created_at is not None

    empty = await crud.thread_get(db, t2.id)
    assert empty.instruction == ""
    assert empty.participants == []
    assert empty.metadata is None


@pytest.mark.asyncio
async def test_concurrent_thread_creates_get_distinct_ids(db):
    threads = await asyncio.gather(*(crud.thread_create(db, f"t{i}") for i in range(10)))
    ids = [t.id for t in threads]
    assert len(set(ids)) == 10

    listed, _ = await crud.thread_list(db, limit=50)
    assert sorted(ids, reverse=True) == [t.id for t in listed]


@pytest.mark.asyncio
async def test_thread_get_unknown_raises_not_found(db):
    with pytest.raises(NotFound):
        await crud.thread_get(db, 999)


@pytest.mark.asyncio
async def test_thread_list_pages_newest_first(db):
    ids = [(await crud.thread_create(db, f"t{i}")).id for i in range(5)]

    page1, cursor = await crud.thread_list(db, limit=2)
    assert [t.id for t in page1] == [ids[4], ids[3]]
    assert cursor == ids[3]

    page2, cursor = await crud.thread_list(db, cursor=cursor, limit=2)
    assert [t.id for t in page2] == [ids[2], ids[1]]
    assert cursor == ids[1]

    page3, cursor = await crud.thread_list(db, cursor=cursor, limit=2)
    assert [t.id for t in page3] == [ids[0]]
    assert cursor is None


@pytest.mark.asyncio
async def test_thread_list_exact_fit_has_no_next_cursor(db):
    for i in range(2):
        await crud.thread_create(db, f"t{i}")
    threads, cursor = await crud.thread_list(db, limit=2)
    assert len(threads) == 2
    assert cursor is None


@pytest.mark.asyncio
async def test_thread_list_zero_cursor_and_limit_mean_defaults(db):
    for i in range(3):
        await crud.thread_create(db, f"t{i}")
    threads, cursor = await crud.thread_list(db, cursor=0, limit=0)
    assert len(threads) == 3
    assert cursor is None


@pytest.mark.asyncio
async def test_thread_list_empty_store(db):
    threads, cursor = await crud.thread_list(db)
    assert threads == []
    assert cursor is None
