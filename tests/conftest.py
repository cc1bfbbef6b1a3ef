"""Shared fixtures: settings, in-memory cache tiers and fake providers."""

import asyncio
from dataclasses import replace

import pytest

from ptgen_gateway.config import Settings
from ptgen_gateway.entities import SearchHit, new_record
from ptgen_gateway.errors import GatewayError
from ptgen_gateway.providers import build_default_registry
from ptgen_gateway.services import ProviderRegistry

DOUBAN_SUBJECT_HTML = """<!DOCTYPE html>
<html lang="zh-CN">
<head>
<title>肖申克的救赎 (豆瓣)</title>
<script type="application/ld+json">
{
  "@context": "http://schema.org",
  "name": "肖申克的救赎 The Shawshank Redemption",
  "url": "/subject/1292052/",
  "image": "https://img3.doubanio.com/view/photo/s_ratio_poster/public/p480747492.webp",
  "director": [{"@type": "Person", "url": "/celebrity/1047973/", "name": "弗兰克·德拉邦特 Frank Darabont"}],
  "author": [{"@type": "Person", "url": "/celebrity/1049547/", "name": "斯蒂芬·金 Stephen King"}],
  "actor": [
    {"@type": "Person", "url": "/celebrity/1054521/", "name": "蒂姆·罗宾斯 Tim Robbins"},
    {"@type": "Person", "url": "/celebrity/1054534/", "name": "摩根·弗里曼 Morgan Freeman"}
  ],
  "datePublished": "1994-09-10",
  "genre": ["剧情", "犯罪"],
  "duration": "PT2H22M",
  "@type": "Movie",
  "aggregateRating": {"@type": "AggregateRating", "ratingCount": "3071869", "bestRating": "10", "worstRating": "2", "ratingValue": "9.7"}
}
</script>
</head>
<body>
<div id="content">
  <h1><span property="v:itemreviewed">肖申克的救赎 The Shawshank Redemption</span> <span class="year">(1994)</span></h1>
  <div id="info">
    <span class="pl">类型:</span> <span property="v:genre">剧情</span> / <span property="v:genre">犯罪</span><br/>
    <span class="pl">制片国家/地区:</span> 美国<br/>
    <span class="pl">语言:</span> 英语<br/>
    <span class="pl">上映日期:</span> <span property="v:initialReleaseDate">1994-10-14(美国)</span> / <span property="v:initialReleaseDate">1994-09-10(多伦多电影节)</span><br/>
    <span class="pl">片长:</span> <span property="v:runtime" content="142">142分钟</span><br/>
    <span class="pl">又名:</span> 月黑高飞(港) / 刺激1995(台)<br/>
    <span class="pl">IMDb:</span> tt0111161<br/>
  </div>
  <div id="link-report-intra">
    <span property="v:summary">一场谋杀案使银行家安迪蒙冤入狱，谋杀妻子及其情人的指控将囚禁他终生。</span>
  </div>
  <div class="tags-body"><a href="/tag/经典">经典</a><a href="/tag/励志">励志</a></div>
</div>
</body>
</html>
"""


def make_settings(**overrides) -> Settings:
    """Settings isolated from the process environment."""
    values = {
        "api_key": None,
        "author": "Tester",
        "tmdb_api_key": "tmdb-test-key",
        "douban_cookie": None,
        "enabled_cache": True,
        "redis_url": None,
        "cache_database_url": None,
        "rate_limit_window_ms": 60_000,
        "rate_limit_max_requests": 30,
        "rate_limit_cleanup_interval_ms": 10_000,
    }
    values.update(overrides)
    return Settings(**values)


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: int = 1_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class InMemoryObjectStore:
    """ObjectStore backed by a dict, with failure and latency knobs."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.data: dict[str, bytes] = {}
        self.fail = fail
        self.delay = delay
        self.gets = 0
        self.cancelled = False

    async def get(self, key: str) -> bytes | None:
        self.gets += 1
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.fail:
            raise ConnectionError("object tier down")
        return self.data.get(key)

    async def put(self, key: str, data: bytes) -> None:
        if self.fail:
            raise ConnectionError("object tier down")
        self.data[key] = data


class InMemoryRowStore:
    """RowStore backed by a dict of ``key -> (data, timestamp)``."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.rows: dict[str, tuple[bytes, int]] = {}
        self.fail = fail
        self.delay = delay
        self.cancelled = False

    async def get_row(self, key: str) -> bytes | None:
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.fail:
            raise ConnectionError("row tier down")
        row = self.rows.get(key)
        return row[0] if row else None

    async def upsert_row(self, key: str, data: bytes, timestamp: int) -> None:
        if self.fail:
            raise ConnectionError("row tier down")
        self.rows[key] = (data, timestamp)


class FakeProvider:
    """Provider returning canned records and counting fetches."""

    def __init__(self, name: str, fields: dict | None = None, error: GatewayError | None = None) -> None:
        self.name = name
        self.fields = fields or {}
        self.error = error
        self.fetched: list[str] = []

    async def fetch(self, sid: str, settings: Settings) -> dict:
        self.fetched.append(sid)
        if self.error is not None:
            raise self.error
        record = new_record(self.name, sid)
        record.update(self.fields)
        record["success"] = True
        return record

    def format(self, record: dict, settings: Settings) -> str:
        return f"❁ {self.name}: {record.get('title', record['sid'])}"


class FakeSearchProvider:
    """SearchProvider returning canned hits."""

    def __init__(self, name: str, hits: list[SearchHit] | None = None, error: Exception | None = None) -> None:
        self.name = name
        self.site = f"search-{name}"
        self.hits = hits or []
        self.error = error
        self.queries: list[str] = []

    async def search(self, query: str, settings: Settings) -> list[SearchHit]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.hits)


def registry_with(**providers) -> ProviderRegistry:
    """Default registry with some providers swapped for fakes."""
    return ProviderRegistry(
        replace(descriptor, provider=providers.get(descriptor.name, descriptor.provider))
        for descriptor in build_default_registry()
    )


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def row_store() -> InMemoryRowStore:
    return InMemoryRowStore()


@pytest.fixture
def fake_providers() -> dict[str, FakeProvider]:
    return {
        name: FakeProvider(name, {"title": f"{name} title"})
        for name in ("douban", "imdb", "tmdb", "bangumi", "steam", "melon")
    }


@pytest.fixture
def registry(fake_providers) -> ProviderRegistry:
    return registry_with(**fake_providers)
