"""
Tests for the two-tier cache and its backing stores.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from conftest import InMemoryObjectStore, InMemoryRowStore, make_settings
from sqlalchemy.ext.asyncio import create_async_engine

from ptgen_gateway.entities import ResourceId
from ptgen_gateway.errors import NotFoundError
from ptgen_gateway.repositories import RedisObjectStore, SqlRowStore
from ptgen_gateway.services import TwoTierCache

MATRIX = ResourceId("tmdb", "movie/603", "movie")
SHAWSHANK = ResourceId("douban", "1292052")


def encoded(record):
    return json.dumps(record, ensure_ascii=False).encode("utf-8")


def fetcher(record=None, error=None):
    calls = []

    async def fetch():
        calls.append(1)
        if error is not None:
            raise error
        return dict(record)

    fetch.calls = calls
    return fetch


@pytest.fixture
def record():
    return {"site": "tmdb", "sid": "movie/603", "title": "黑客帝国", "success": True}


async def test_miss_fetches_and_writes_both_tiers(object_store, row_store, settings, record):
    cache = TwoTierCache(object_store, row_store, config=settings)
    fetch = fetcher({**record, "format": "rendered"})

    result = await cache.get_or_fetch(MATRIX, fetch)

    assert result["title"] == "黑客帝国"
    assert len(fetch.calls) == 1
    stored = json.loads(object_store.data["tmdb/movie/603"])
    assert stored == record  # format is not persisted
    data, timestamp = row_store.rows["tmdb:movie:603"]
    assert json.loads(data) == record
    assert timestamp > 0


async def test_hit_skips_fetch(object_store, row_store, settings, record):
    object_store.data["tmdb/movie/603"] = encoded(record)
    cache = TwoTierCache(object_store, row_store, config=settings)
    fetch = fetcher(record)

    assert await cache.get_or_fetch(MATRIX, fetch) == record
    assert fetch.calls == []


async def test_row_tier_hit_when_object_tier_misses(object_store, row_store, settings, record):
    row_store.rows["tmdb:movie:603"] = (encoded(record), 1)
    cache = TwoTierCache(object_store, row_store, config=settings)

    assert await cache.lookup(MATRIX) == record


async def test_failing_tier_does_not_hide_the_other(settings, record):
    broken = InMemoryObjectStore(fail=True)
    rows = InMemoryRowStore()
    rows.rows["tmdb:movie:603"] = (encoded(record), 1)
    cache = TwoTierCache(broken, rows, config=settings)

    assert await cache.lookup(MATRIX) == record


async def test_object_tier_wins_simultaneous_hits(object_store, row_store, settings, record):
    object_store.data["tmdb/movie/603"] = encoded({**record, "tier": "object"})
    row_store.rows["tmdb:movie:603"] = (encoded({**record, "tier": "row"}), 1)
    cache = TwoTierCache(object_store, row_store, config=settings)

    assert (await cache.lookup(MATRIX))["tier"] == "object"


async def test_fast_hit_cancels_slow_lookup(settings, record):
    objects = InMemoryObjectStore()
    objects.data["tmdb/movie/603"] = encoded(record)
    slow_rows = InMemoryRowStore(delay=5)
    cache = TwoTierCache(objects, slow_rows, config=settings)

    assert await cache.lookup(MATRIX) == record
    # give the cancelled task a tick to observe its cancellation
    await asyncio.sleep(0.01)
    assert slow_rows.cancelled is True


async def test_unusable_entries_are_misses(object_store, row_store, settings):
    object_store.data["tmdb/movie/603"] = b"not json"
    row_store.rows["tmdb:movie:603"] = (b"[1, 2, 3]", 1)
    cache = TwoTierCache(object_store, row_store, config=settings)

    assert await cache.lookup(MATRIX) is None


async def test_failed_records_are_not_cached(object_store, row_store, settings):
    cache = TwoTierCache(object_store, row_store, config=settings)
    fetch = fetcher({"site": "tmdb", "sid": "movie/603", "success": False})

    await cache.get_or_fetch(MATRIX, fetch)

    assert object_store.data == {}
    assert row_store.rows == {}


async def test_fetch_errors_propagate_and_nothing_is_written(object_store, row_store, settings):
    cache = TwoTierCache(object_store, row_store, config=settings)

    with pytest.raises(NotFoundError):
        await cache.get_or_fetch(MATRIX, fetcher(error=NotFoundError()))
    assert object_store.data == {}


async def test_write_failure_is_reported_not_raised(settings, record):
    rows = InMemoryRowStore()
    cache = TwoTierCache(InMemoryObjectStore(fail=True), rows, config=settings)

    outcome = await cache.store(MATRIX, record)

    assert outcome.object_written is False
    assert outcome.row_written is True
    assert outcome.any_written


async def test_no_tiers_configured(settings, record):
    cache = TwoTierCache(config=settings)
    fetch = fetcher(record)

    assert await cache.get_or_fetch(MATRIX, fetch) == record
    assert await cache.get_or_fetch(MATRIX, fetch) == record
    assert len(fetch.calls) == 2


async def test_volatile_sources_bypass_when_cache_disabled(object_store, row_store, record):
    cache = TwoTierCache(
        object_store,
        row_store,
        volatile_sources={"douban", "imdb"},
        config=make_settings(enabled_cache=False),
    )
    douban_record = {"site": "douban", "sid": "1292052", "success": True}

    await cache.get_or_fetch(SHAWSHANK, fetcher(douban_record))
    assert object_store.data == {}
    assert object_store.gets == 0

    # non-volatile sources keep caching
    await cache.get_or_fetch(MATRIX, fetcher(record))
    assert "tmdb/movie/603" in object_store.data
    assert cache.is_enabled_for("tmdb")
    assert not cache.is_enabled_for("DOUBAN")


async def test_redis_object_store_prefixes_keys():
    client = AsyncMock()
    client.get.return_value = b'{"success": true}'
    store = RedisObjectStore(client, prefix="ptgen")

    await store.put("tmdb/movie/603", b"{}")
    assert await store.get("tmdb/movie/603") == b'{"success": true}'

    client.set.assert_awaited_once_with("ptgen:tmdb/movie/603", b"{}")
    client.get.assert_awaited_once_with("ptgen:tmdb/movie/603")


def test_redis_object_store_not_configured():
    assert RedisObjectStore.create(make_settings(redis_url=None)) is None


async def test_sql_row_store_upserts(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
    store = SqlRowStore(engine)
    await store.ensure_schema()
    try:
        assert await store.get_row("tmdb:movie:603") is None

        await store.upsert_row("tmdb:movie:603", b'{"v": 1}', 1)
        await store.upsert_row("tmdb:movie:603", '{"v": 2}'.encode(), 2)

        assert await store.get_row("tmdb:movie:603") == b'{"v": 2}'
        assert await store.health_check() is True
    finally:
        await store.close()


async def test_cache_over_sql_row_store(tmp_path, settings, record):
    store = SqlRowStore(create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}"))
    await store.ensure_schema()
    try:
        cache = TwoTierCache(row_store=store, config=settings)
        fetch = fetcher(record)

        await cache.get_or_fetch(MATRIX, fetch)
        assert await cache.get_or_fetch(MATRIX, fetch) == record
        assert len(fetch.calls) == 1
    finally:
        await store.close()
