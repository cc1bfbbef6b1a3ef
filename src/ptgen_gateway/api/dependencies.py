"""Dependency injection configuration for FastAPI app.

Uses FastAPI's app.state pattern for storing service instances.

Pattern:
    - Services built once (``build_services``) and stored in app.state during lifespan
    - Dependency functions retrieve from request.app.state
    - Clean separation, no global mutable state
"""

import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Annotated

import httpx
from fastapi import Depends, FastAPI, Request
from sqlalchemy.exc import SQLAlchemyError

from ptgen_gateway.config import Settings, settings
from ptgen_gateway.handlers import GatewayHandler
from ptgen_gateway.protocols import ObjectStore, RowStore, SearchProvider
from ptgen_gateway.providers import build_client, build_default_registry, build_search_providers
from ptgen_gateway.repositories import RedisObjectStore, SqlRowStore
from ptgen_gateway.services import (
    ProviderRegistry,
    QueryRouter,
    RequestValidator,
    SearchService,
    SlidingWindowRateLimiter,
    TwoTierCache,
)

logger = logging.getLogger(__name__)


@dataclass
class GatewayServices:
    """Everything a request needs, built once per process."""

    settings: Settings
    client: httpx.AsyncClient | None
    registry: ProviderRegistry
    validator: RequestValidator
    handler: GatewayHandler
    object_store: ObjectStore | None = None
    row_store: RowStore | None = None

    async def startup(self) -> None:
        """Prepare backing stores and report their health."""
        if isinstance(self.row_store, SqlRowStore):
            try:
                await self.row_store.ensure_schema()
            except SQLAlchemyError as e:
                logger.warning("Row tier schema setup failed: %s", e)

        for tier, store in (("object", self.object_store), ("row", self.row_store)):
            if store is None:
                logger.info("Cache %s tier not configured", tier)
                continue
            health_check = getattr(store, "health_check", None)
            if health_check is not None:
                healthy = await health_check()
                logger.info("Cache %s tier %s", tier, "reachable" if healthy else "UNREACHABLE")

    async def shutdown(self) -> None:
        """Release the HTTP client and store connections."""
        if self.client is not None:
            await self.client.aclose()
        for store in (self.object_store, self.row_store):
            close = getattr(store, "close", None)
            if close is not None:
                await close()


def build_services(
    config: Settings | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    registry: ProviderRegistry | None = None,
    search_providers: Mapping[str, SearchProvider] | None = None,
    object_store: ObjectStore | None = None,
    row_store: RowStore | None = None,
    connect_stores: bool = True,
) -> GatewayServices:
    """Wire every layer together.

    Args:
        config: Settings. Defaults to global settings.
        client: Shared AsyncClient. Created when both registry and search
            providers are left to their defaults.
        registry: Provider registry. Defaults to every built-in source.
        search_providers: Search providers keyed by source.
        object_store: Object tier. Created from settings when None and
            ``connect_stores`` is set.
        row_store: Row tier. Created from settings when None and
            ``connect_stores`` is set.
        connect_stores: Build missing stores from settings.

    Returns:
        GatewayServices ready for the lifespan to start
    """
    config = config or settings
    if client is None and (registry is None or search_providers is None):
        client = build_client()

    registry = registry or build_default_registry(client)
    if search_providers is None:
        search_providers = build_search_providers(client)

    if connect_stores:
        object_store = object_store or RedisObjectStore.create(config)
        row_store = row_store or SqlRowStore.create(config)

    rate_limiter = SlidingWindowRateLimiter(
        window_ms=config.rate_limit_window_ms,
        max_requests=config.rate_limit_max_requests,
        cleanup_interval_ms=config.rate_limit_cleanup_interval_ms,
    )
    cache = TwoTierCache(
        object_store=object_store,
        row_store=row_store,
        volatile_sources=registry.volatile_sources,
        config=config,
    )
    handler = GatewayHandler(
        router=QueryRouter(registry),
        cache=cache,
        search_service=SearchService(search_providers, config),
        config=config,
    )

    return GatewayServices(
        settings=config,
        client=client,
        registry=registry,
        validator=RequestValidator(rate_limiter, config),
        handler=handler,
        object_store=object_store,
        row_store=row_store,
    )


def get_services(request: Request) -> GatewayServices:
    """Dependency injection for GatewayServices from app.state.

    Args:
        request: FastAPI Request object

    Returns:
        The GatewayServices instance from app.state

    Raises:
        RuntimeError: If services are not initialized
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("GatewayServices not initialized. Check lifespan setup.")
    return services


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app.

    Uses services injected through ``create_app(services=...)`` when
    present, otherwise builds them from settings, and stores them in
    app.state.services.

    Cleanup:
        Closes the HTTP client and cache stores, then removes the services
        from app.state
    """
    services = getattr(app.state, "services", None) or build_services()
    app.state.services = services

    await services.startup()
    logger.info("✓ Gateway initialized with sources: %s", ", ".join(services.registry.names))
    logger.info(
        "✓ Rate limit: %d requests / %d ms",
        services.settings.rate_limit_max_requests,
        services.settings.rate_limit_window_ms,
    )

    yield

    await services.shutdown()
    del app.state.services
    logger.info("✓ Gateway shut down")


# Type aliases for cleaner dependency injection
ServicesDep = Annotated[GatewayServices, Depends(get_services)]
