"""Protocol interfaces for swappable implementations.

This package contains protocol definitions using structural typing.
Protocols enable:
- Easy swapping of implementations (Redis → S3, SQLite → PostgreSQL, etc.)
- Unit testing with in-memory fakes
- Clear separation of concerns

Usage:
    ```python
    from ptgen_gateway.protocols import ObjectStore, Provider

    store: ObjectStore = RedisObjectStore(client)  # works
    store: ObjectStore = InMemoryObjectStore()     # also works
    ```
"""

from .cache_store import ObjectStore, RowStore
from .provider import Provider, SearchProvider

__all__ = [
    "ObjectStore",
    "RowStore",
    "Provider",
    "SearchProvider",
]
