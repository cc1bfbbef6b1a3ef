"""Cache storage protocols.

Defines the two backing stores the two-tier cache reads and writes:

- ObjectStore: fast key/blob store (Redis by default, any S3-like bucket works)
- RowStore: durable key/row store (SQL table by default)

Neither store is assumed to be available. The cache treats a missing or
failing store as a soft failure of that tier only.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class ObjectStore(Protocol):
    """Protocol for the fast object tier.

    Example:
        ```python
        store: ObjectStore = RedisObjectStore(client)
        await store.put("tmdb/movie/603", b'{"success": true}')
        data = await store.get("tmdb/movie/603")
        ```
    """

    async def get(self, key: str) -> bytes | None:
        """Read a stored object.

        Args:
            key: Object key (slash-separated)

        Returns:
            The stored bytes, or None when absent
        """
        ...

    async def put(self, key: str, data: bytes) -> None:
        """Write (or overwrite) an object.

        Args:
            key: Object key (slash-separated)
            data: Serialized record
        """
        ...


@runtime_checkable
class RowStore(Protocol):
    """Protocol for the durable row tier."""

    async def get_row(self, key: str) -> bytes | None:
        """Read the data column of a row.

        Args:
            key: Row key (colon-separated)

        Returns:
            The stored bytes, or None when absent
        """
        ...

    async def upsert_row(self, key: str, data: bytes, timestamp: int) -> None:
        """Insert or replace a row.

        Args:
            key: Row key (colon-separated)
            data: Serialized record
            timestamp: Write time in epoch milliseconds
        """
        ...
