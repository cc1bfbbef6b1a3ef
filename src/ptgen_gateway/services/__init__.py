"""Service layer for business logic.

This layer contains request validation, routing, caching and search
orchestration. Services depend on protocols (interfaces), not concrete
implementations, making them testable with in-memory fakes.

Architecture:
    Handler -> Service -> Repository / Provider
    (HTTP)  -> (Business) -> (Cache tiers / Upstream sites)

Usage:
    ```python
    from ptgen_gateway.services import QueryRouter, TwoTierCache

    router = QueryRouter(registry)
    route = router.resolve({"url": "https://www.imdb.com/title/tt0111161/"})

    cache = TwoTierCache(object_store, row_store, registry.volatile_sources)
    record = await cache.get_or_fetch(route.resource, fetch)
    ```
"""

from .cache_service import CacheWriteOutcome, TwoTierCache
from .fallback import FallbackChain, FallbackResult, FallbackStage
from .rate_limiter import SlidingWindowRateLimiter
from .registry import ProviderDescriptor, ProviderRegistry
from .router import QueryRouter, Route, RouteKind, is_cjk_text
from .search_service import SearchService
from .validator import RequestContext, RequestValidator, ValidationOutcome

__all__ = [
    "CacheWriteOutcome",
    "FallbackChain",
    "FallbackResult",
    "FallbackStage",
    "ProviderDescriptor",
    "ProviderRegistry",
    "QueryRouter",
    "RequestContext",
    "RequestValidator",
    "Route",
    "RouteKind",
    "SearchService",
    "SlidingWindowRateLimiter",
    "TwoTierCache",
    "ValidationOutcome",
    "is_cjk_text",
]
