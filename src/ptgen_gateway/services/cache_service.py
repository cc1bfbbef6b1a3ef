"""Two-tier cache service.

This service sits between the request handler and the providers: it
reads both backing tiers concurrently, falls through to the provider on a
miss, and writes successful records back to both tiers.
"""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from ptgen_gateway.config import Settings, settings
from ptgen_gateway.entities import Record, ResourceId, is_success, strip_format
from ptgen_gateway.protocols import ObjectStore, RowStore

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Record]]

OBJECT_TIER = "object"
ROW_TIER = "row"

# Tier order breaks ties when both lookups finish in the same wakeup.
TIER_PRIORITY = (OBJECT_TIER, ROW_TIER)


@dataclass(frozen=True)
class CacheWriteOutcome:
    """Per-tier result of a best-effort write. Never raised, only logged."""

    object_written: bool = False
    row_written: bool = False

    @property
    def any_written(self) -> bool:
        return self.object_written or self.row_written


class TwoTierCache:
    """Read-through, write-through cache over an object tier and a row tier.

    Either tier may be None (not configured) or fail at runtime; a broken
    tier only loses its own hits. Concurrent misses on the same key are
    not deduplicated: each one fetches and writes independently.

    Example:
        ```python
        cache = TwoTierCache(
            object_store=RedisObjectStore.create(),
            row_store=SqlRowStore.create(),
            volatile_sources=registry.volatile_sources,
        )
        record = await cache.get_or_fetch(
            ResourceId("tmdb", "movie/603", "movie"),
            lambda: provider.fetch("movie/603", settings),
        )
        ```
    """

    def __init__(
        self,
        object_store: ObjectStore | None = None,
        row_store: RowStore | None = None,
        volatile_sources: Iterable[str] = (),
        config: Settings | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            object_store: Fast tier, or None when not configured.
            row_store: Durable tier, or None when not configured.
            volatile_sources: Sources that bypass caching when ENABLED_CACHE is false.
            config: Settings. Defaults to global settings.
        """
        self._object_store = object_store
        self._row_store = row_store
        self._volatile = frozenset(source.lower() for source in volatile_sources)
        self._settings = config or settings

    def is_enabled_for(self, source: str) -> bool:
        """Check whether a source goes through the cache."""
        if self._settings.enabled_cache:
            return True
        return source.lower() not in self._volatile

    async def get_or_fetch(self, resource: ResourceId, fetch_fn: FetchFn) -> Record:
        """Return the cached record or fetch, cache and return a fresh one.

        Args:
            resource: Identifies the record and its cache keys
            fetch_fn: Provider call, invoked only on a miss

        Returns:
            The cached or freshly fetched record
        """
        if not self.is_enabled_for(resource.source):
            logger.info("[Cache Disabled] Fetching %s", resource.object_key)
            return await fetch_fn()

        cached = await self.lookup(resource)
        if cached is not None:
            return cached

        logger.info("[Cache Miss] Fetching %s", resource.object_key)
        record = await fetch_fn()

        if is_success(record):
            outcome = await self.store(resource, record)
            if not outcome.any_written and (self._object_store or self._row_store):
                logger.warning("[Cache Write] no tier accepted %s", resource.object_key)

        return record

    async def lookup(self, resource: ResourceId) -> Record | None:
        """Query both tiers concurrently and return the first usable hit.

        Returns:
            The cached record, or None on a miss in every available tier
        """
        tasks: dict[asyncio.Task, str] = {}
        if self._object_store is not None:
            tasks[asyncio.create_task(self._read_object(resource.object_key))] = OBJECT_TIER
        if self._row_store is not None:
            tasks[asyncio.create_task(self._read_row(resource.row_key))] = ROW_TIER

        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in sorted(done, key=lambda t: TIER_PRIORITY.index(tasks[t])):
                    record = task.result()
                    if record is not None:
                        logger.info("[Cache Hit] %s tier for %s", tasks[task], resource.object_key)
                        return record
        finally:
            for task in pending:
                task.cancel()

        return None

    async def store(self, resource: ResourceId, record: Record) -> CacheWriteOutcome:
        """Write a record to both tiers, best effort.

        The rendered ``format`` field is never persisted. Records without
        ``success=True`` are refused.

        Returns:
            Which tiers accepted the write
        """
        if not is_success(record):
            return CacheWriteOutcome()

        data = json.dumps(strip_format(record), ensure_ascii=False).encode("utf-8")
        timestamp = int(time.time() * 1000)

        object_write = (
            self._object_store.put(resource.object_key, data)
            if self._object_store is not None
            else None
        )
        row_write = (
            self._row_store.upsert_row(resource.row_key, data, timestamp)
            if self._row_store is not None
            else None
        )

        object_ok, row_ok = await asyncio.gather(
            self._write(OBJECT_TIER, resource.object_key, object_write),
            self._write(ROW_TIER, resource.row_key, row_write),
        )
        return CacheWriteOutcome(object_written=object_ok, row_written=row_ok)

    async def _write(self, tier: str, key: str, write: Awaitable[None] | None) -> bool:
        if write is None:
            return False
        try:
            await write
        except Exception as e:
            logger.warning("[Cache Write] %s tier failed for %s: %s", tier, key, e)
            return False
        logger.info("[Cache Write] %s tier for %s", tier, key)
        return True

    async def _read_object(self, key: str) -> Record | None:
        try:
            data = await self._object_store.get(key)
        except Exception as e:
            logger.warning("Object tier read failed for %s: %s", key, e)
            return None
        return self._decode(OBJECT_TIER, key, data)

    async def _read_row(self, key: str) -> Record | None:
        try:
            data = await self._row_store.get_row(key)
        except Exception as e:
            logger.warning("Row tier read failed for %s: %s", key, e)
            return None
        return self._decode(ROW_TIER, key, data)

    @staticmethod
    def _decode(tier: str, key: str, data: bytes | str | None) -> Record | None:
        if not data:
            return None
        try:
            record = json.loads(data)
        except ValueError as e:
            logger.warning("Discarding unreadable %s tier entry %s: %s", tier, key, e)
            return None
        if not isinstance(record, dict):
            logger.warning("Discarding non-object %s tier entry %s", tier, key)
            return None
        return record

    @property
    def object_store(self) -> ObjectStore | None:
        """Get the object tier (for testing)."""
        return self._object_store

    @property
    def row_store(self) -> RowStore | None:
        """Get the row tier (for testing)."""
        return self._row_store
