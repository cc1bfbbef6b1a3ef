"""Search orchestration.

Explicit searches go to the named source. Auto searches pick a native
provider by script (Douban for CJK text, IMDb otherwise) and fall back
to TMDB when the native provider comes up empty.
"""

import logging
from collections.abc import Mapping

from ptgen_gateway.config import Settings, settings
from ptgen_gateway.entities import SearchHit
from ptgen_gateway.errors import NO_RESULTS_ERROR, NotFoundError, RateLimitedError, ValidationError
from ptgen_gateway.protocols import SearchProvider
from ptgen_gateway.services.fallback import FallbackChain, FallbackStage
from ptgen_gateway.services.router import is_cjk_text

logger = logging.getLogger(__name__)

SEARCH_STAGE_TIMEOUT = 15.0

# Auto-search order per script
CJK_SEARCH_ORDER = ("douban", "tmdb")
LATIN_SEARCH_ORDER = ("imdb", "tmdb")


class SearchService:
    """Runs explicit and automatic searches over the search providers.

    Example:
        ```python
        service = SearchService(build_search_providers(client))
        site, hits = await service.search("imdb", "The Matrix")
        site, hits = await service.auto_search("肖申克的救赎")
        ```
    """

    def __init__(
        self,
        search_providers: Mapping[str, SearchProvider],
        config: Settings | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            search_providers: Providers keyed by source name
            config: Settings handed to providers (defaults to global settings)
        """
        self._providers = dict(search_providers)
        self._settings = config or settings

    @property
    def sources(self) -> list[str]:
        return sorted(self._providers)

    async def search(self, source: str, query: str) -> tuple[str, list[SearchHit]]:
        """Search one named source.

        Returns:
            ``(site, hits)`` where site is e.g. ``"search-imdb"``

        Raises:
            ValidationError: Unknown source or empty query
            NotFoundError: No hits
            GatewayError: Provider failure, surfaced unchanged
        """
        provider = self._providers.get(source.strip().lower())
        if provider is None:
            raise ValidationError(f"Invalid source. Supported sources: {', '.join(self.sources)}")

        query = query.strip()
        if not query:
            raise ValidationError("Invalid query")

        hits = await provider.search(query, self._settings)
        if not hits:
            raise NotFoundError(NO_RESULTS_ERROR)
        logger.info("Search %s for %r returned %d hits", provider.site, query, len(hits))
        return provider.site, hits

    async def auto_search(self, query: str) -> tuple[str, list[SearchHit]]:
        """Search without a source, choosing providers by the query's script.

        Raises:
            ValidationError: Empty query
            RateLimitedError: Every provider failed and one was rate limited
            NotFoundError: Every provider came up empty
        """
        query = (query or "").strip()
        if not query:
            raise ValidationError("Invalid query")

        order = CJK_SEARCH_ORDER if is_cjk_text(query) else LATIN_SEARCH_ORDER
        providers = [self._providers[name] for name in order if name in self._providers]
        chain = FallbackChain(
            [self._stage(provider, query) for provider in providers],
            label="auto-search",
        )

        result = await chain.resolve()
        if result.found:
            site = next(p.site for p in providers if p.name == result.stage)
            logger.info("Auto search for %r resolved by %s", query, site)
            return site, result.value

        error = result.first_error(RateLimitedError)
        if error is not None:
            raise error
        raise NotFoundError(NO_RESULTS_ERROR)

    def _stage(self, provider: SearchProvider, query: str) -> FallbackStage:
        return FallbackStage(
            provider.name,
            lambda: provider.search(query, self._settings),
            timeout=SEARCH_STAGE_TIMEOUT,
        )
