"""PT-Gen Gateway - media metadata aggregation for private-tracker publishing.

This package provides a layered architecture around one HTTP endpoint:

Layers:
    - protocols: Interface contracts (ObjectStore, RowStore, Provider, SearchProvider)
    - repositories: Cache tier implementations (Redis, SQL)
    - providers: Upstream sources (TMDB, IMDb, Douban, Bangumi, Steam)
    - services: Validation, rate limiting, routing, two-tier cache, search
    - handlers: HTTP endpoint handler (route execution, envelopes)
    - dto: Data transfer objects (API contracts)
    - entities: Domain models (internal)

Usage:
    ```python
    from ptgen_gateway.api.dependencies import build_services

    services = build_services()
    status, body = await services.handler.handle_query({"url": "https://www.imdb.com/title/tt0111161/"})
    ```

For HTTP API:
    ```python
    from ptgen_gateway.api.app import app
    ```
"""

__version__ = "1.0.0"

from ptgen_gateway.config import get_settings, settings  # noqa: E402
from ptgen_gateway.errors import GatewayError  # noqa: E402

__all__ = [
    "__version__",
    # Configuration
    "settings",
    "get_settings",
    # Errors
    "GatewayError",
]
