import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.dialects import postgresql

from app.core.time_utils import utcnow
from app.kv import MemoryKeyValueStore, SqlKeyValueStore
from app.models.kv import KeyValueEntry


@pytest.fixture(params=["memory", "sql"])
def store(request, session_factory):
    if request.param == "memory":
        return MemoryKeyValueStore()
    return SqlKeyValueStore(session_factory)


def test_set_get_delete(store):
    async def scenario():
        await store.set("a", "1")
        assert await store.get("a") == "1"
        assert await store.ttl("a") == -1
        assert await store.delete("a") == 1
        assert await store.get("a") is None
        assert await store.ttl("a") == -2

    asyncio.run(scenario())


def test_set_with_ttl_reports_remaining_seconds(store):
    async def scenario():
        await store.set("a", "1", ttl=100)
        assert 95 <= await store.ttl("a") <= 100

    asyncio.run(scenario())


def test_set_if_absent_only_first_writer_wins(store):
    async def scenario():
        assert await store.set_if_absent("lock", "first", ttl=30) is True
        assert await store.set_if_absent("lock", "second", ttl=30) is False
        assert await store.get("lock") == "first"

    asyncio.run(scenario())


def test_incr_and_hash_counters(store):
    async def scenario():
        assert await store.incr("counter") == 1
        assert await store.incr("counter") == 2
        await store.hincrby("stats", "hits")
        await store.hincrby("stats", "hits")
        await store.hincrby("stats", "misses")
        assert await store.hgetall("stats") == {"hits": "2", "misses": "1"}
        assert await store.hgetall("missing") == {}

    asyncio.run(scenario())


def test_keys_by_prefix(store):
    async def scenario():
        await store.set("job:1", "x")
        await store.set("job:2", "y")
        await store.set("other", "z")
        await store.zadd("job:queue", "m", 1.0)
        assert await store.keys("job:") == ["job:1", "job:2", "job:queue"]

    asyncio.run(scenario())


def test_sorted_set_pops_highest_score(store):
    async def scenario():
        await store.zadd("q", "low", 1.0)
        await store.zadd("q", "high", 10.0)
        await store.zadd("q", "mid", 5.0)
        assert await store.zcard("q") == 3
        assert await store.zrange("q") == ["low", "mid", "high"]

        assert await store.zpopmax("q") == ("high", 10.0)
        assert await store.zrem("q", "low") is True
        assert await store.zrem("q", "low") is False
        assert await store.zpopmax("q") == ("mid", 5.0)
        assert await store.zpopmax("q") is None

    asyncio.run(scenario())


def test_zadd_updates_existing_member_score(store):
    async def scenario():
        await store.zadd("q", "a", 1.0)
        await store.zadd("q", "b", 2.0)
        await store.zadd("q", "a", 3.0)
        assert await store.zcard("q") == 2
        assert await store.zpopmax("q") == ("a", 3.0)

    asyncio.run(scenario())


def test_memory_store_expires_keys(clock):
    store = MemoryKeyValueStore(clock=clock)

    async def scenario():
        await store.set("a", "1", ttl=10)
        clock.advance(9)
        assert await store.get("a") == "1"
        assert await store.ttl("a") == 1
        clock.advance(1)
        assert await store.get("a") is None
        assert await store.keys("a") == []
        # an expired lock can be taken again
        assert await store.set_if_absent("a", "2", ttl=10) is True

    asyncio.run(scenario())


def test_memory_store_expire_extends_ttl(clock):
    store = MemoryKeyValueStore(clock=clock)

    async def scenario():
        await store.set("a", "1", ttl=10)
        assert await store.expire("a", 100) is True
        clock.advance(50)
        assert await store.get("a") == "1"
        assert await store.expire("missing", 10) is False

    asyncio.run(scenario())


def test_memory_counters_restart_after_expiry(clock):
    store = MemoryKeyValueStore(clock=clock)

    async def scenario():
        await store.set("counter", "5", ttl=10)
        await store.hincrby("stats", "hits", 4)
        await store.expire("stats", 10)
        clock.advance(10)

        assert await store.incr("counter") == 1
        assert await store.ttl("counter") == -1
        assert await store.hincrby("stats", "hits") == 1
        assert await store.hgetall("stats") == {"hits": "1"}

    asyncio.run(scenario())


def test_sql_counters_restart_after_expiry(session_factory):
    store = SqlKeyValueStore(session_factory)

    def age(key):
        db = session_factory()
        try:
            db.get(KeyValueEntry, key).expires_at = utcnow() - timedelta(seconds=1)
            db.commit()
        finally:
            db.close()

    async def scenario():
        await store.set("counter", "5", ttl=60)
        await store.set("stats", '{"hits": "4"}', ttl=60)
        age("counter")
        age("stats")

        assert await store.incr("counter") == 1
        assert await store.ttl("counter") == -1
        assert await store.hincrby("stats", "hits") == 1
        assert await store.hgetall("stats") == {"hits": "1"}

    asyncio.run(scenario())


def test_concurrent_counter_updates_are_all_kept(session_factory):
    workers = [SqlKeyValueStore(session_factory), SqlKeyValueStore(session_factory)]

    async def scenario():
        await asyncio.gather(*(
            workers[i % 2].incr("jobs") for i in range(20)
        ), *(
            workers[i % 2].hincrby("stats", "enqueued", 2) for i in range(10)
        ))
        assert await workers[0].get("jobs") == "20"
        assert await workers[1].hgetall("stats") == {"enqueued": "20"}

    asyncio.run(scenario())


def test_sql_counters_lock_the_row_they_update(session_factory):
    store = SqlKeyValueStore(session_factory)
    db = session_factory()
    try:
        statement = store._locked_entry_query(db, "jobs").statement
        sql = str(statement.compile(dialect=postgresql.dialect()))
    finally:
        db.close()
    assert "FOR UPDATE" in sql
