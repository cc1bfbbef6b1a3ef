"""Melon provider: Korean music albums scraped from the album detail page."""

import logging
import re

import httpx
from bs4 import BeautifulSoup, Tag

from ptgen_gateway.config import Settings
from ptgen_gateway.entities import Record, new_record
from ptgen_gateway.errors import NONE_EXIST_ERROR, NotFoundError, ValidationError
from ptgen_gateway.providers.http import BROWSER_USER_AGENT, HttpProvider
from ptgen_gateway.providers.text import indent_block

logger = logging.getLogger(__name__)

MELON_ALBUM_URL = "https://www.melon.com/album/detail.htm"
MELON_BASE_URL = "https://www.melon.com"
MELON_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "text/html",
    "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8",
}

ALBUM_SID_PATTERN = re.compile(r"^album/(\d+)$")

# .meta labels -> record fields
META_LABELS = {
    "발매일": "release_date",
    "장르": "genres",
    "발매사": "publisher",
    "기획사": "planning",
    "유형": "album_type",
}
# Older pages carry no labels; the values sit in this order
POSITIONAL_META = ("release_date", "genres", "publisher", "album_type")

TRACK_ROW_SELECTORS = ("#frm .tbl_song_list tbody tr", ".tbl_song_list tbody tr")
ARTIST_LINK = 'a[href*="goArtistDetail"]'


def parse_album_sid(sid: str) -> str:
    """``album/123456`` -> ``123456``."""
    match = ALBUM_SID_PATTERN.match(sid.strip())
    if not match:
        raise ValidationError("Invalid Melon ID format. Expected 'album/<digits>'")
    return match.group(1)


def normalize_poster(src: str) -> str:
    """Drop query and resize suffixes, ask for the 1000px cover, make the URL absolute."""
    if not src:
        return ""
    src = src.split("?", 1)[0]
    jpg = src.find(".jpg")
    if jpg != -1:
        src = src[: jpg + 4]
    src = re.sub(r"500\.jpg$", "1000.jpg", src)
    if not re.match(r"^https?://", src, re.IGNORECASE):
        src = f"{MELON_BASE_URL}/{src.lstrip('/')}"
    return src


def _text(node: Tag | None) -> str:
    return node.get_text(strip=True) if node is not None else ""


def _unique(names: list[str]) -> list[str]:
    seen = []
    for name in names:
        if name and name not in seen:
            seen.append(name)
    return seen


def _set_meta(record: Record, field: str, value: str) -> None:
    if not value:
        return
    if field == "genres":
        record[field] = [genre.strip() for genre in value.split(",") if genre.strip()]
    else:
        record[field] = value


def _parse_tracks(soup: BeautifulSoup) -> list[dict]:
    rows = []
    for selector in TRACK_ROW_SELECTORS:
        rows = soup.select(selector)
        if rows:
            break

    tracks = []
    for row in rows:
        number = re.sub(r"\D+", "", _text(row.select_one(".rank"))) or _text(row.select_one(".no"))

        title = _text(row.select_one('a[title*="재생"]'))
        if not title:
            info = row.select_one('a[title*="곡정보"]')
            if info is not None:
                match = re.match(r"^(.*?)\s+(재생|곡정보)", info.get("title", ""))
                title = match.group(1).strip() if match else ""
        if not title:
            title = _text(row.select_one(".ellipsis a")) or _text(row.select_one(".song_name"))
        if not title:
            continue

        artists = _unique([a.get_text(strip=True) for a in row.select(ARTIST_LINK)])
        tracks.append({"number": number, "title": title, "artists": artists})
    return tracks


def parse_album_page(html: str, album_id: str) -> Record:
    """Parse a Melon album detail page.

    Raises:
        NotFoundError: The page carries no album block
    """
    soup = BeautifulSoup(html, "html.parser")
    info = soup.select_one(".wrap_info")
    if info is None:
        raise NotFoundError(NONE_EXIST_ERROR)

    record = new_record("melon", f"album/{album_id}")
    record.update(
        melon_id=album_id,
        melon_link=f"{MELON_ALBUM_URL}?albumId={album_id}",
        type="album",
    )

    title = re.sub(r"^앨범명\s*", "", _text(info.select_one(".song_name")), flags=re.IGNORECASE).strip()
    if title:
        record["title"] = title

    artists = _unique([a.get_text(strip=True) for a in info.select(f".artist {ARTIST_LINK}")])
    if artists:
        record["artists"] = artists

    labelled = False
    for dt in info.select(".meta dl dt"):
        field = META_LABELS.get(dt.get_text(strip=True))
        dd = dt.find_next_sibling("dd")
        if field is not None and dd is not None:
            labelled = True
            _set_meta(record, field, dd.get_text(strip=True))
    if not labelled:
        values = [dd.get_text(strip=True) for dd in info.select(".meta dl dd")]
        for field, value in zip(POSITIONAL_META, values):
            _set_meta(record, field, value)

    poster = info.select_one(".thumb img")
    if poster is not None:
        src = normalize_poster(poster.get("src") or poster.get("data-src") or "")
        if src:
            record["poster"] = src

    description = soup.select_one(".dtl_albuminfo")
    if description is not None:
        for br in description.find_all("br"):
            br.replace_with("\n")
        record["description"] = description.get_text().strip()

    tracks = _parse_tracks(soup)
    if tracks:
        record["tracks"] = tracks

    record["success"] = True
    return record


class MelonProvider(HttpProvider):
    """Fetches Melon albums. Ids are ``album/<digits>``."""

    name = "melon"
    label = "Melon"

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 15.0) -> None:
        super().__init__(client=client, timeout=timeout)

    async def fetch(self, sid: str, settings: Settings) -> Record:
        album_id = parse_album_sid(sid)
        html = await self.get_text(MELON_ALBUM_URL, params={"albumId": album_id}, headers=MELON_HEADERS)
        record = parse_album_page(html, album_id)
        logger.info("Melon data generated for: %s", record.get("title", album_id))
        return record

    def format(self, record: Record, settings: Settings) -> str:
        lines = []
        if record.get("poster"):
            lines += [f"[img]{record['poster']}[/img]", ""]

        genres = " / ".join(record.get("genres") or []) or record.get("album_type")
        lines += [
            f"❁ 专辑名称: {record.get('title') or 'N/A'}",
            f"❁ 歌　　手: {' / '.join(record.get('artists') or []) or 'N/A'}",
            f"❁ 发行日期: {record.get('release_date') or 'N/A'}",
            f"❁ 类　　型: {genres or 'N/A'}",
            f"❁ 发 行 商: {record.get('publisher') or 'N/A'}",
            f"❁ 制作公司: {record.get('planning') or 'N/A'}",
            f"❁ 专辑链接: {record.get('melon_link', '')}",
        ]

        if record.get("description"):
            lines += ["", "❁ 专辑介绍", indent_block(record["description"])]
        if record.get("tracks"):
            lines += ["", "❁ 歌曲列表"]
            for track in record["tracks"]:
                artists = f" ({', '.join(track['artists'])})" if track.get("artists") else ""
                lines.append(f"  {track.get('number') or '-'}. {track['title']}{artists}")
        return "\n".join(lines).strip()
