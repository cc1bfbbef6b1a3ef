"""
Tests for the provider registry and query routing.
"""

import re

import pytest

from ptgen_gateway.errors import ValidationError
from ptgen_gateway.services import ProviderDescriptor, ProviderRegistry, QueryRouter, RouteKind, is_cjk_text
from ptgen_gateway.services.registry import host_of


@pytest.fixture
def router(registry):
    return QueryRouter(registry)


def test_registry_lookup_is_case_insensitive_with_aliases(registry):
    assert registry.get("TMDB").name == "tmdb"
    assert registry.get("bgm").name == "bangumi"
    assert registry.get("qq_music") is None
    assert set(registry.names) == {"douban", "imdb", "tmdb", "bangumi", "steam", "melon"}


def test_registry_volatile_sources(registry):
    assert registry.volatile_sources == {"douban", "imdb", "bangumi", "steam", "melon"}


def test_registry_rejects_duplicate_domains(fake_providers):
    douban = fake_providers["douban"]
    with pytest.raises(ValueError, match="already registered"):
        ProviderRegistry(
            [
                ProviderDescriptor("a", douban, domains=("example.com",), pattern=re.compile(r"/(\d+)")),
                ProviderDescriptor("b", douban, domains=("EXAMPLE.com",), pattern=re.compile(r"/(\d+)")),
            ]
        )


def test_host_of():
    assert host_of("https://Movie.Douban.com:443/subject/1/") == "movie.douban.com"
    assert host_of("www.imdb.com/title/tt0111161/") == "www.imdb.com"


@pytest.mark.parametrize(
    "url, source, sid",
    [
        ("https://movie.douban.com/subject/1292052/", "douban", "1292052"),
        ("https://www.imdb.com/title/tt0111161/", "imdb", "tt0111161"),
        ("m.imdb.com/title/tt0111161/", "imdb", "tt0111161"),
        ("https://www.themoviedb.org/movie/603-the-matrix", "tmdb", "movie/603"),
        ("https://www.themoviedb.org/tv/1399", "tmdb", "tv/1399"),
        ("https://bgm.tv/subject/253", "bangumi", "253"),
        ("https://store.steampowered.com/app/570/Dota_2/", "steam", "570"),
        ("https://www.melon.com/album/detail.htm?albumId=10123456", "melon", "album/10123456"),
    ],
)
def test_url_mode(router, url, source, sid):
    route = router.resolve({"url": url})

    assert route.kind is RouteKind.URL
    assert route.descriptor.name == source
    assert route.resource.sid == sid


def test_url_mode_tmdb_keys(router):
    route = router.resolve({"url": "https://www.themoviedb.org/movie/603"})

    assert route.resource.object_key == "tmdb/movie/603"
    assert route.resource.row_key == "tmdb:movie:603"


def test_unsupported_url(router):
    with pytest.raises(ValidationError, match="Unsupported URL"):
        router.resolve({"url": "https://example.com/subject/1"})


def test_invalid_url_for_known_host(router):
    with pytest.raises(ValidationError, match="Invalid douban URL"):
        router.resolve({"url": "https://movie.douban.com/top250"})


def test_url_takes_priority(router):
    route = router.resolve({"url": "https://www.imdb.com/title/tt0111161/", "source": "douban", "query": "x"})
    assert route.kind is RouteKind.URL


def test_search_routes(router):
    explicit = router.resolve({"source": "IMDb", "query": "The Matrix"})
    assert explicit.kind is RouteKind.SEARCH
    assert explicit.source == "imdb"
    assert explicit.is_search

    auto = router.resolve({"query": "肖申克的救赎"})
    assert auto.kind is RouteKind.AUTO_SEARCH
    assert auto.query == "肖申克的救赎"


def test_source_and_sid(router):
    route = router.resolve({"source": "bgm", "sid": "253"})

    assert route.kind is RouteKind.RESOURCE
    assert route.resource.source == "bangumi"
    assert route.resource.object_key == "bangumi/253"


def test_tmdb_sid_needs_type(router):
    with pytest.raises(ValidationError, match="type"):
        router.resolve({"source": "tmdb", "sid": "603"})

    with pytest.raises(ValidationError, match="type"):
        router.resolve({"source": "tmdb", "sid": "603", "type": "anime"})

    route = router.resolve({"source": "tmdb", "sid": "603", "type": "movie"})
    assert route.resource.sid == "movie/603"
    assert route.resource.sub_namespace == "movie"


def test_tmdb_composite_sid_with_underscore(router):
    route = router.resolve({"source": "tmdb", "sid": "tv_1399"})
    assert route.resource.sid == "tv/1399"


def test_tmdb_id_implies_tmdb(router):
    route = router.resolve({"tmdb_id": "1399", "type": "tv"})
    assert route.resource.object_key == "tmdb/tv/1399"


@pytest.mark.parametrize("sid", ["album/10123456", "album_10123456"])
def test_melon_album_sid(router, sid):
    route = router.resolve({"source": "melon", "sid": sid})

    assert route.resource.sid == "album/10123456"
    assert route.resource.sub_namespace is None
    assert route.resource.object_key == "melon/10123456"


def test_unsupported_source(router):
    with pytest.raises(ValidationError, match="Unsupported source: qq_music"):
        router.resolve({"source": "qq_music", "sid": "123"})


def test_invalid_parameters(router):
    with pytest.raises(ValidationError, match="Invalid parameters"):
        router.resolve({"source": "douban"})
    with pytest.raises(ValidationError, match="Invalid parameters"):
        router.resolve({"sid": "   "})


@pytest.mark.parametrize(
    "text, expected",
    [
        ("肖申克的救赎", True),
        ("The Matrix", False),
        ("黑客帝国 The Matrix", False),
        ("黑客帝国 Neo", True),
        ("A", False),
        ("猫", True),
        ("", False),
        ("   ", False),
        ("1994", False),
    ],
)
def test_is_cjk_text(text, expected):
    assert is_cjk_text(text) is expected
