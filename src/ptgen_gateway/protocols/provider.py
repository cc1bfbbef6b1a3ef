"""Provider protocols.

A Provider is the capability bundle for one content source: fetch a
normalized record for an id, and render that record as text. A
SearchProvider turns a free-text query into normalized search hits.

Implementations raise the typed errors from ``ptgen_gateway.errors``
for failures; they never write to the cache.
"""

from typing import Protocol, runtime_checkable

from ptgen_gateway.config import Settings
from ptgen_gateway.entities import Record, SearchHit


@runtime_checkable
class Provider(Protocol):
    """Protocol for resource providers.

    Example:
        ```python
        provider: Provider = TmdbProvider(client)
        record = await provider.fetch("movie/603", settings)
        text = provider.format(record, settings)
        ```
    """

    name: str

    async def fetch(self, sid: str, settings: Settings) -> Record:
        """Fetch and normalize one resource.

        Args:
            sid: Source-specific id (may be composite, e.g. "movie/603")
            settings: Deployment configuration (credentials, cookies)

        Returns:
            Record with ``site``, ``sid`` and ``success=True``

        Raises:
            GatewayError: Typed failure (not found, upstream, rate limited)
        """
        ...

    def format(self, record: Record, settings: Settings) -> str:
        """Render a record as a human-readable description. Must be pure."""
        ...


@runtime_checkable
class SearchProvider(Protocol):
    """Protocol for free-text search providers."""

    name: str
    site: str

    async def search(self, query: str, settings: Settings) -> list[SearchHit]:
        """Search the source.

        Args:
            query: Free-text query
            settings: Deployment configuration

        Returns:
            Up to 10 hits; an empty list when nothing matched

        Raises:
            GatewayError: Typed failure (e.g. RateLimitedError on upstream 429)
        """
        ...
