"""Douban provider and search provider.

Subject pages are scraped (JSON-LD plus the ``#info`` block). Douban
blocks anonymous scrapers aggressively, so fetching walks a fallback
chain: desktop page, mobile page, then the community static mirror of
pre-generated records. Configure DOUBAN_COOKIE to avoid the captcha wall.
"""

import logging
import re
from typing import Any
from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup, Tag

from ptgen_gateway.config import Settings
from ptgen_gateway.entities import Record, SearchHit, new_record
from ptgen_gateway.errors import (
    NONE_EXIST_ERROR,
    NotFoundError,
    RateLimitedError,
    UpstreamTransientError,
    ValidationError,
)
from ptgen_gateway.providers.http import HTML_HEADERS, HttpProvider, check_status, parse_json, parse_json_ld
from ptgen_gateway.providers.text import FOOTER, FULL_WIDTH_INDENT, join_names
from ptgen_gateway.services.fallback import FallbackChain, FallbackStage

logger = logging.getLogger(__name__)

DOUBAN_SUBJECT_URL = "https://movie.douban.com/subject/{}/"
DOUBAN_MOBILE_URL = "https://m.douban.com/movie/subject/{}/"
STATIC_MIRROR_URLS = (
    "https://cdn.ourhelp.club/ptgen/douban/{}.json",
    "https://ourbits.github.io/PtGen/douban/{}.json",
)
SEARCH_URL = "https://api.wmdb.tv/api/v1/movie/search"

ANTI_BOT_PATTERN = re.compile(r"验证码|检测到有异常请求|机器人程序|请先登录|访问受限")
MISSING_PAGE_TEXT = "你想访问的页面不存在"
ANTI_BOT_ERROR = "Douban blocked request (captcha/anti-bot). Provide valid cookie or try later."
SEARCH_RATE_LIMITED = "请求过于频繁，请等待30秒后再试 | Too many requests, please wait 30 seconds and try again"

INTRO_SELECTOR = (
    '#link-report-intra > span.all.hidden, #link-report-intra > [property="v:summary"], '
    '#link-report > span.all.hidden, #link-report > [property="v:summary"]'
)
SEARCH_LIMIT = 10


def _as_list(value: Any) -> list:
    if isinstance(value, list):
        return value
    return [value] if value else []


def _info_value(soup: BeautifulSoup, label: str) -> str:
    """Text following a ``#info span.pl`` label, e.g. "又名:" -> "A / B"."""
    for span in soup.select("#info span.pl"):
        if label not in span.get_text():
            continue
        sibling = span.next_sibling
        if sibling is not None and not isinstance(sibling, Tag) and str(sibling).strip():
            return str(sibling).strip()
        parent = span.parent
        if parent is not None:
            return parent.get_text().replace(span.get_text(), "").strip()
    return ""


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(" / ") if part.strip()]


def _texts(soup: BeautifulSoup, selector: str) -> list[str]:
    return [node.get_text(strip=True) for node in soup.select(selector)]


def parse_subject_page(html: str, sid: str) -> Record:
    """Parse a Douban subject page.

    Raises:
        NotFoundError: Douban's missing-page notice
        UpstreamTransientError: Captcha or login wall
    """
    if MISSING_PAGE_TEXT in html:
        raise NotFoundError(NONE_EXIST_ERROR)
    if ANTI_BOT_PATTERN.search(html):
        raise UpstreamTransientError(ANTI_BOT_ERROR)

    soup = BeautifulSoup(html, "html.parser")
    ld_json = parse_json_ld(soup)

    record = new_record("douban", sid)
    record["douban_link"] = DOUBAN_SUBJECT_URL.format(sid)

    title = soup.title.get_text() if soup.title else ""
    record["chinese_title"] = title.replace("(豆瓣)", "").strip() or ld_json.get("name", "")
    reviewed = soup.select_one('span[property="v:itemreviewed"]')
    record["foreign_title"] = (
        reviewed.get_text().replace(record["chinese_title"], "").strip() if reviewed else ""
    )

    aka = _info_value(soup, "又名")
    if aka:
        record["aka"] = sorted(_split(aka))

    year = soup.select_one("#content > h1 > span.year")
    year_match = re.search(r"\d{4}", year.get_text()) if year else None
    record["year"] = year_match.group(0) if year_match else ""
    record["region"] = _split(_info_value(soup, "制片国家/地区"))
    record["genre"] = _texts(soup, '#info span[property="v:genre"]')
    record["language"] = _split(_info_value(soup, "语言"))
    record["playdate"] = sorted(_texts(soup, '#info span[property="v:initialReleaseDate"]'))
    record["episodes"] = _info_value(soup, "集数")
    runtime = soup.select_one('#info span[property="v:runtime"]')
    record["duration"] = _info_value(soup, "单集片长") or (runtime.get_text(strip=True) if runtime else "")

    intro = soup.select_one(INTRO_SELECTOR)
    if intro is not None:
        lines = [line.strip() for line in intro.get_text().split("\n")]
        record["introduction"] = "\n".join(line for line in lines if line)
    else:
        record["introduction"] = ""

    image = str(ld_json.get("image") or "")
    image = re.sub(r"s(_ratio_poster|pic)", r"l\1", image).replace("img3", "img1")
    record["poster"] = re.sub(r"\.webp$", ".jpg", image)
    record["director"] = _as_list(ld_json.get("director"))
    record["writer"] = _as_list(ld_json.get("author"))
    record["cast"] = _as_list(ld_json.get("actor"))

    tags = _texts(soup, 'div.tags-body > a[href^="/tag"]')
    if tags:
        record["tags"] = tags

    rating = ld_json.get("aggregateRating") or {}
    page_average = soup.select_one("#interest_sectl .rating_num")
    page_votes = soup.select_one('#interest_sectl span[property="v:votes"]')
    average = str(rating.get("ratingValue") or (page_average.get_text(strip=True) if page_average else "") or "0")
    votes = str(rating.get("ratingCount") or (page_votes.get_text(strip=True) if page_votes else "") or "0")
    record["douban_rating_average"] = average
    record["douban_votes"] = votes
    try:
        rated = float(average) > 0 and int(votes) > 0
    except ValueError:
        rated = False
    record["douban_rating"] = f"{average}/10 from {votes} users" if rated else "0/10 from 0 users"

    imdb_id = _info_value(soup, "IMDb")
    if imdb_id:
        record["imdb_id"] = imdb_id
        record["imdb_link"] = f"https://www.imdb.com/title/{imdb_id}/"

    if not record["chinese_title"] and not record["foreign_title"]:
        raise UpstreamTransientError("Douban page carried no subject data")

    record["success"] = True
    return record


class DoubanProvider(HttpProvider):
    """Fetches Douban movie subjects."""

    name = "douban"
    label = "Douban"

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 15.0) -> None:
        super().__init__(client=client, timeout=timeout)

    def _headers(self, config: Settings) -> dict[str, str]:
        headers = dict(HTML_HEADERS)
        if config.douban_cookie:
            headers["Cookie"] = config.douban_cookie
        return headers

    async def fetch(self, sid: str, settings: Settings) -> Record:
        if not sid.isdigit():
            raise ValidationError(f"Invalid Douban id: {sid}")

        chain = FallbackChain(
            [
                FallbackStage("desktop", lambda: self._from_page(sid, DOUBAN_SUBJECT_URL, settings), timeout=self._timeout),
                FallbackStage("mobile", lambda: self._from_page(sid, DOUBAN_MOBILE_URL, settings), timeout=self._timeout),
                FallbackStage("static-mirror", lambda: self._from_mirror(sid), timeout=self._timeout),
            ],
            label=f"douban:{sid}",
        )
        result = await chain.resolve()
        if result.found:
            logger.info("Douban data generated for %s (%s)", sid, result.stage)
            return result.value

        if result.first_error(NotFoundError) is not None:
            raise NotFoundError(NONE_EXIST_ERROR)
        rate_limited = result.first_error(RateLimitedError)
        if rate_limited is not None:
            raise rate_limited
        error = result.first_error(UpstreamTransientError)
        raise error if error is not None else UpstreamTransientError("Failed to fetch Douban page")

    async def _from_page(self, sid: str, url_template: str, config: Settings) -> Record:
        response = await self._request(url_template.format(sid), headers=self._headers(config), check=False)
        if response.status_code != 404 and response.status_code >= 400:
            if ANTI_BOT_PATTERN.search(response.text):
                raise UpstreamTransientError(ANTI_BOT_ERROR)
        check_status(response, self.label)
        return parse_subject_page(response.text, sid)

    async def _from_mirror(self, sid: str) -> Record | None:
        for template in STATIC_MIRROR_URLS:
            response = await self._request(template.format(quote(sid)), check=False)
            if response.status_code != 200:
                continue
            data = parse_json(response.content, self.label)
            if isinstance(data, dict) and data:
                record = {**data, "site": "douban", "sid": sid}
                record.pop("format", None)
                record["success"] = True
                return record
        return None

    def format(self, record: Record, settings: Settings) -> str:
        lines = []
        if record.get("poster"):
            lines += [f"[img]{record['poster']}[/img]", ""]

        aka = list(record.get("aka") or [])
        if record.get("foreign_title"):
            title = record["foreign_title"]
            translated = [record.get("chinese_title") or ""] + aka
        else:
            title = record.get("chinese_title")
            translated = aka
        if title:
            lines.append(f"❁ 片　　名:　{title}")
        rows = (
            ("译　　名", join_names(translated)),
            ("年　　代", record.get("year")),
            ("产　　地", join_names(record.get("region"))),
            ("类　　别", join_names(record.get("genre"))),
            ("语　　言", join_names(record.get("language"))),
            ("上映日期", join_names(record.get("playdate"))),
            ("IMDb评分", record.get("imdb_rating")),
            ("IMDb链接", record.get("imdb_link")),
            ("豆瓣评分", record.get("douban_rating")),
            ("豆瓣链接", record.get("douban_link")),
            ("集　　数", record.get("episodes")),
            ("片　　长", record.get("duration")),
            ("导　　演", join_names(record.get("director"))),
            ("编　　剧", join_names(record.get("writer"))),
        )
        lines += [f"❁ {label}:　{value}" for label, value in rows if value]

        cast = [c.get("name", "") if isinstance(c, dict) else str(c) for c in record.get("cast") or []]
        cast = [name for name in cast if name]
        if cast:
            lines.append(f"❁ 主　　演:　{cast[0]}")
            lines += [f"　　　　　　　{name}" for name in cast[1:]]

        if record.get("tags"):
            lines += ["", f"❁ 标　　签:　{' | '.join(record['tags'])}"]
        if record.get("introduction"):
            intro = record["introduction"].replace("\n", "\n" + FULL_WIDTH_INDENT)
            lines += ["", "❁ 简　　介", "", FULL_WIDTH_INDENT + intro]
        lines += ["", FOOTER]
        return "\n".join(lines).strip()


class DoubanSearchProvider(HttpProvider):
    """Searches Douban subjects through the wmdb.tv mirror API."""

    name = "douban"
    site = "search-douban"
    label = "Douban"

    async def search(self, query: str, settings: Settings) -> list[SearchHit]:
        response = await self._request(
            SEARCH_URL,
            params={"q": query, "skip": "0", "lang": "Cn"},
            check=False,
        )
        if response.status_code == 429:
            raise RateLimitedError(SEARCH_RATE_LIMITED)
        if response.status_code == 404:
            return []
        if response.status_code >= 400:
            raise UpstreamTransientError("豆瓣API请求失败 | Douban API request failed")

        payload = parse_json(response.content, self.label)
        items = payload.get("data") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            return []
        return [self._to_hit(item) for item in items[:SEARCH_LIMIT] if isinstance(item, dict)]

    @staticmethod
    def _to_hit(item: dict[str, Any]) -> SearchHit:
        subject_id = str(item.get("id") or item.get("doubanId") or "")
        return SearchHit(
            year=str(item.get("year") or ""),
            subtype=item.get("type") or "movie",
            title=item.get("title") or item.get("name") or "",
            subtitle=str(item.get("sub_title") or ""),
            link=DOUBAN_SUBJECT_URL.format(subject_id) if subject_id else "",
            id=subject_id,
            rating=str(item.get("doubanRating") or ""),
            img=item.get("img") or item.get("poster") or "",
            episode=str(item.get("episode") or ""),
        )
