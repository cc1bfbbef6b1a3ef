"""Repository layer for data access.

This layer puts the cache backing stores (Redis, SQL) behind the
protocol-based interfaces in ``ptgen_gateway.protocols``. This enables:
- Easy swapping of implementations (Redis → object storage, SQLite → PostgreSQL)
- Unit testing with in-memory fakes
- Clear separation of concerns

The repositories are protocol-based (structural typing), not inheritance-based.
Any class implementing the required methods will satisfy the protocol.
"""

from ptgen_gateway.protocols import ObjectStore, RowStore

from .redis_repository import RedisObjectStore
from .sql_repository import SqlRowStore, cache_table

__all__ = [
    "ObjectStore",
    "RowStore",
    "RedisObjectStore",
    "SqlRowStore",
    "cache_table",
]
