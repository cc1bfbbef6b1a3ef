"""Redis implementation of ObjectStore.

This repository is the fast tier of the two-tier cache. Entries are plain
string keys holding the serialized record; no TTL is set here, expiry (if
any) is a property of the Redis deployment (e.g. ``maxmemory-policy``).
"""

import redis.asyncio as redis

from ptgen_gateway.config import Settings, get_redis_client, settings


class RedisObjectStore:
    """Redis implementation of the ObjectStore protocol.

    This class satisfies the ObjectStore protocol through structural
    typing - no explicit inheritance needed.

    Keys are namespaced with a prefix so several deployments can share
    one Redis database: ``ptgen:tmdb/movie/603``.
    """

    def __init__(self, redis_client: redis.Redis, prefix: str | None = None) -> None:
        """Initialize the Redis object store.

        Args:
            redis_client: Async Redis client instance.
            prefix: Key prefix. Defaults to settings.cache_key_prefix.
        """
        self._client = redis_client
        self._prefix = prefix or settings.cache_key_prefix

    @classmethod
    def create(cls, config: Settings | None = None) -> "RedisObjectStore | None":
        """Factory method to create a store from settings.

        Args:
            config: Settings to read REDIS_URL from. If None, uses global settings.

        Returns:
            Configured RedisObjectStore, or None when REDIS_URL is not set
        """
        config = config or settings
        client = get_redis_client(config)
        if client is None:
            return None
        return cls(redis_client=client, prefix=config.cache_key_prefix)

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> bytes | None:
        """Read a stored object.

        Args:
            key: Object key

        Returns:
            Stored bytes, or None when the key does not exist
        """
        return await self._client.get(self._key(key))

    async def put(self, key: str, data: bytes) -> None:
        """Store an object, replacing any previous value.

        Args:
            key: Object key
            data: Serialized record
        """
        await self._client.set(self._key(key), data)

    async def health_check(self) -> bool:
        """Check if Redis is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            return bool(await self._client.ping())
        except redis.RedisError:
            return False

    async def close(self) -> None:
        """Close the connection pool."""
        await self._client.aclose()

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client
