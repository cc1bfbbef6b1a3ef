"""Provider layer for upstream content sources.

Each provider fetches one source (TMDB, IMDb, Douban, Bangumi, Steam, Melon)
and renders its normalized record as text. Providers satisfy the
``Provider`` / ``SearchProvider`` protocols structurally and share one
httpx AsyncClient.

Usage:
    ```python
    from ptgen_gateway.providers import build_default_registry, build_client

    client = build_client()
    registry = build_default_registry(client)
    registry.for_url("https://movie.douban.com/subject/1292052/")
    ```
"""

import re

import httpx

from ptgen_gateway.protocols import SearchProvider
from ptgen_gateway.services.registry import ProviderDescriptor, ProviderRegistry

from .bangumi import BangumiProvider
from .douban import DoubanProvider, DoubanSearchProvider
from .http import HttpProvider, build_client
from .imdb import ImdbProvider, ImdbSearchProvider
from .melon import MelonProvider
from .steam import SteamProvider
from .tmdb import TmdbProvider, TmdbSearchProvider


def build_default_registry(client: httpx.AsyncClient | None = None) -> ProviderRegistry:
    """Build the registry of every supported source.

    Args:
        client: AsyncClient shared by all providers

    Returns:
        Registry with douban, imdb, tmdb, bangumi, steam and melon
    """
    return ProviderRegistry(
        [
            ProviderDescriptor(
                name="douban",
                provider=DoubanProvider(client),
                domains=("movie.douban.com",),
                pattern=re.compile(r"/subject/(\d+)"),
                volatile=True,
            ),
            ProviderDescriptor(
                name="imdb",
                provider=ImdbProvider(client),
                domains=("www.imdb.com", "m.imdb.com"),
                pattern=re.compile(r"/title/(tt\d+)"),
                volatile=True,
            ),
            ProviderDescriptor(
                name="tmdb",
                provider=TmdbProvider(client),
                domains=("api.themoviedb.org", "www.themoviedb.org"),
                pattern=re.compile(r"/(movie|tv)/(\d+)"),
                id_formatter=lambda m: f"{m.group(1)}/{m.group(2)}",
                namespaces=("movie", "tv"),
            ),
            ProviderDescriptor(
                name="bangumi",
                provider=BangumiProvider(client),
                domains=("bgm.tv", "bangumi.tv"),
                pattern=re.compile(r"/subject/(\d+)"),
                aliases=("bgm",),
                volatile=True,
            ),
            ProviderDescriptor(
                name="steam",
                provider=SteamProvider(client),
                domains=("store.steampowered.com",),
                pattern=re.compile(r"/app/(\d+)"),
                volatile=True,
            ),
            ProviderDescriptor(
                name="melon",
                provider=MelonProvider(client),
                domains=("www.melon.com",),
                pattern=re.compile(r"albumId=(\d+)"),
                id_formatter=lambda m: f"album/{m.group(1)}",
                volatile=True,
            ),
        ]
    )


def build_search_providers(client: httpx.AsyncClient | None = None) -> dict[str, SearchProvider]:
    """Search providers keyed by source name."""
    return {
        "douban": DoubanSearchProvider(client),
        "imdb": ImdbSearchProvider(client),
        "tmdb": TmdbSearchProvider(client),
    }


__all__ = [
    "BangumiProvider",
    "DoubanProvider",
    "DoubanSearchProvider",
    "HttpProvider",
    "ImdbProvider",
    "ImdbSearchProvider",
    "MelonProvider",
    "SteamProvider",
    "TmdbProvider",
    "TmdbSearchProvider",
    "build_client",
    "build_default_registry",
    "build_search_providers",
]
