"""HTTP handler for the gateway endpoint.

Handlers convert between request parameters and service calls. They own
the response envelope: every outcome, including unexpected exceptions,
leaves here as a JSON body with a status code.
"""

import logging
from collections.abc import Mapping
from typing import Any

from ptgen_gateway import __version__
from ptgen_gateway.config import Settings, settings
from ptgen_gateway.dto import ErrorResponse, QueryParams, SearchHitItem, SearchResponse, build_envelope
from ptgen_gateway.errors import GatewayError, InternalError
from ptgen_gateway.services import QueryRouter, Route, RouteKind, SearchService, TwoTierCache

logger = logging.getLogger(__name__)

PROJECT_URL = "https://github.com/rabbitwit/PT-Gen-Refactor"

ROOT_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <title>PT-Gen - Generate PT Descriptions</title>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif; margin: 40px; line-height: 1.6; }}
        .container {{ max-width: 800px; margin: 0 auto; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>PT-Gen API Service</h1>
        <p>这是一个媒体信息生成服务，支持从豆瓣、IMDb、TMDB、Bangumi、Steam、Melon 等平台获取媒体信息。</p>
        <h2>更多信息</h2>
        <p>请访问<a href="{project_url}" target="_blank" rel="noopener noreferrer">PT-Gen-Refactor</a>项目文档了解详细使用方法。</p>
        <p>{copyright}</p>
    </div>
</body>
</html>
"""


class GatewayHandler:
    """Executes resolved routes and renders envelopes.

    Example:
        ```python
        handler = GatewayHandler(router, cache, search_service)

        status, body = await handler.handle_query({"source": "douban", "sid": "1292052"})
        # 200, {"success": True, "chinese_title": "肖申克的救赎", "format": "...", ...}
        ```
    """

    def __init__(
        self,
        router: QueryRouter,
        cache: TwoTierCache,
        search_service: SearchService,
        config: Settings | None = None,
    ) -> None:
        """Initialize the handler.

        Args:
            router: Resolves parameters to routes
            cache: Two-tier cache wrapping provider fetches
            search_service: Explicit and automatic search
            config: Settings. Defaults to global settings.
        """
        self._router = router
        self._cache = cache
        self._search = search_service
        self._settings = config or settings

    async def handle_query(self, params: QueryParams | Mapping[str, Any]) -> tuple[int, dict[str, Any]]:
        """Handle one gateway request.

        Args:
            params: Routing parameters (query string merged with body)

        Returns:
            ``(status_code, envelope)``; never raises
        """
        if not isinstance(params, QueryParams):
            params = QueryParams.model_validate(params)

        route: Route | None = None
        try:
            route = self._router.resolve(params.routing())
            if route.is_search:
                return 200, await self._run_search(route)
            return 200, await self._run_fetch(route)
        except GatewayError as e:
            logger.info("Request failed with %s: %s", type(e).__name__, e.message)
            return e.status_code, self._error(e, searching=route is not None and route.is_search)
        except Exception:
            logger.exception("Unhandled error while processing %s", params.routing())
            return InternalError.status_code, self._error(InternalError())

    async def _run_fetch(self, route: Route) -> dict[str, Any]:
        descriptor, resource = route.descriptor, route.resource
        provider = descriptor.provider

        record = await self._cache.get_or_fetch(
            resource,
            lambda: provider.fetch(resource.sid, self._settings),
        )

        body = dict(record)
        body["format"] = provider.format(record, self._settings)
        body["success"] = True
        return self.envelope(body)

    async def _run_search(self, route: Route) -> dict[str, Any]:
        if route.kind is RouteKind.SEARCH:
            site, hits = await self._search.search(route.source, route.query)
        else:
            site, hits = await self._search.auto_search(route.query)

        response = SearchResponse(site=site, data=[SearchHitItem.from_entity(hit) for hit in hits])
        return self.envelope(response.model_dump())

    def _error(self, error: GatewayError, searching: bool = False) -> dict[str, Any]:
        response = ErrorResponse(error=error.message, data=[] if searching else None)
        return self.envelope(response.model_dump(exclude_none=True))

    def envelope(self, body: dict[str, Any]) -> dict[str, Any]:
        return build_envelope(body, self._settings)

    def root_page(self) -> str:
        """HTML landing page served to browsers."""
        return ROOT_PAGE_TEMPLATE.format(project_url=PROJECT_URL, copyright=self._settings.copyright)

    def root_document(self) -> dict[str, Any]:
        """JSON API description served to non-browser clients."""
        author = self._settings.author
        return self.envelope(
            {
                "success": True,
                "API Status": "PT-Gen API Service is running",
                "Version": __version__,
                "Author": author,
                "Copyright": self._settings.copyright,
                "Security": "API key required for access" if self._settings.requires_api_key else "Open access",
                "Endpoints": {
                    "/": "API documentation (this page)",
                    "/?source=[douban|imdb|tmdb]&query=[name]": "Search for media by name",
                    "/?query=[name]": "Search, picking the source from the query's language",
                    "/?url=[media_url]": "Generate media description by URL",
                    "/?source=[douban|imdb|tmdb|bgm|steam|melon]&sid=[id]": "Generate media description by id",
                },
                "Notes": (
                    "Please use the appropriate source and query parameters for search, "
                    "or provide a direct URL for generation."
                ),
            }
        )
