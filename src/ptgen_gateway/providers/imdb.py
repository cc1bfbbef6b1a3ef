"""IMDb provider and search provider.

Title pages are read through their JSON-LD block. IMDb regularly answers
scrapers with empty 204 pages, so fetching walks a fallback chain: the
desktop page, then the mobile page, then the suggestion endpoint (which
only yields a minimal record).
"""

import logging
import re
from typing import Any
from urllib.parse import quote

from bs4 import BeautifulSoup

from ptgen_gateway.config import Settings
from ptgen_gateway.entities import Record, SearchHit, new_record
from ptgen_gateway.errors import (
    NONE_EXIST_ERROR,
    NotFoundError,
    RateLimitedError,
    UpstreamTransientError,
    ValidationError,
)
from ptgen_gateway.providers.http import HttpProvider, JSON_HEADERS, parse_json_ld
from ptgen_gateway.providers.text import indent_block, join_names
from ptgen_gateway.services.fallback import FallbackChain, FallbackStage

logger = logging.getLogger(__name__)

IMDB_TITLE_URL = "https://www.imdb.com/title/{}/"
IMDB_MOBILE_URL = "https://m.imdb.com/title/{}/"
IMDB_FIND_URL = "https://www.imdb.com/find"
SUGGESTION_URL = "https://v2.sg.media-imdb.com/suggestion/{}/{}.json"

IMDB_ID_PATTERN = re.compile(r"^(?:tt)?(\d+)$")
YEAR_PATTERN = re.compile(r"\((\d{4})\)")
TITLE_LINK_PATTERN = re.compile(r"/title/(tt\d+)")

COPIED_FIELDS = ("@type", "name", "genre", "contentRating", "datePublished", "description", "duration")
PERSON_FIELDS = ("actor", "director", "creator")
SEARCH_LIMIT = 10


def normalize_imdb_id(sid: str) -> str:
    """``111161`` / ``tt111161`` -> ``tt0111161``."""
    match = IMDB_ID_PATTERN.match(sid.strip())
    if not match:
        raise ValidationError(f"Invalid IMDb id: {sid}")
    return "tt" + match.group(1).zfill(7)


def convert_duration(duration: Any) -> str:
    """ISO-8601 duration (``PT2H22M``) -> ``2H 22Min``."""
    if not isinstance(duration, str):
        return ""
    hours = re.search(r"(\d+)H", duration)
    minutes = re.search(r"(\d+)M", duration)
    parts = []
    if hours and int(hours.group(1)):
        parts.append(f"{int(hours.group(1))}H")
    if minutes and int(minutes.group(1)):
        parts.append(f"{int(minutes.group(1))}Min")
    return " ".join(parts)


def _first_string(value: Any) -> str:
    if isinstance(value, list):
        return str(value[0]) if value else ""
    return value if isinstance(value, str) else ""


def _persons(raw: Any) -> list[dict[str, str]]:
    if not isinstance(raw, list):
        raw = [raw]
    persons = []
    for person in raw:
        if not isinstance(person, dict) or person.get("@type") != "Person":
            continue
        role = person.get("role")
        if isinstance(role, dict):
            character = role.get("characterName") or role.get("name") or ""
        else:
            character = role if isinstance(role, str) else ""
        persons.append(
            {
                "name": person.get("name", ""),
                "url": person.get("url", ""),
                "character": character or person.get("character", ""),
            }
        )
    return persons


def _suggestion_image(item: dict[str, Any]) -> str:
    image = item.get("i")
    if isinstance(image, dict):
        return image.get("imageUrl", "")
    if isinstance(image, list) and image:
        return str(image[0])
    return ""


class ImdbProvider(HttpProvider):
    """Fetches IMDb titles via their JSON-LD metadata."""

    name = "imdb"
    label = "IMDb"

    async def fetch(self, sid: str, settings: Settings) -> Record:
        imdb_id = normalize_imdb_id(sid)

        chain = FallbackChain(
            [
                FallbackStage("desktop", lambda: self._from_page(sid, imdb_id, IMDB_TITLE_URL), timeout=self._timeout),
                FallbackStage("mobile", lambda: self._from_page(sid, imdb_id, IMDB_MOBILE_URL), timeout=self._timeout),
                FallbackStage("suggestion", lambda: self._from_suggestion(sid, imdb_id), timeout=5.0),
            ],
            label=f"imdb:{imdb_id}",
        )
        result = await chain.resolve()
        if result.found:
            logger.info("IMDb data generated for %s (%s page)", imdb_id, result.stage)
            return result.value

        if result.first_error(NotFoundError) is not None:
            raise NotFoundError(NONE_EXIST_ERROR)
        error = result.first_error(RateLimitedError)
        if error is not None:
            raise error
        raise UpstreamTransientError(
            "Failed to fetch IMDb page. This may be due to network issues or Cloudflare protection."
        )

    async def _from_page(self, sid: str, imdb_id: str, url_template: str) -> Record | None:
        html = await self.get_text(url_template.format(imdb_id))
        if not html.strip():
            return None

        page = parse_json_ld(BeautifulSoup(html, "html.parser"))
        if not page.get("name"):
            return None

        record = new_record("imdb", sid)
        record["imdb_id"] = imdb_id
        record["imdb_link"] = IMDB_TITLE_URL.format(imdb_id)
        for key in COPIED_FIELDS:
            if key in page:
                record[key] = page[key]

        record["poster"] = _first_string(page.get("image"))
        if record.get("datePublished"):
            record["year"] = str(record["datePublished"])[:4]

        for field in PERSON_FIELDS:
            persons = _persons(page.get(field, []))
            if persons:
                record[f"{field}s"] = persons

        keywords = page.get("keywords", [])
        if isinstance(keywords, str):
            keywords = [k.strip() for k in keywords.split(",") if k.strip()]
        record["keywords"] = keywords

        rating = page.get("aggregateRating") or {}
        record["imdb_votes"] = rating.get("ratingCount", 0)
        record["imdb_rating_average"] = rating.get("ratingValue", 0)
        record["imdb_rating"] = f"{record['imdb_rating_average']}/10 from {record['imdb_votes']} users"
        record["success"] = True
        return record

    async def _from_suggestion(self, sid: str, imdb_id: str) -> Record | None:
        payload = await self.get_json(SUGGESTION_URL.format(imdb_id[0], imdb_id), headers=JSON_HEADERS)
        items = payload.get("d") if isinstance(payload, dict) else None
        match = next((item for item in items or [] if item.get("id") == imdb_id), None)
        if match is None:
            return None

        record = new_record("imdb", sid)
        record.update(
            imdb_id=imdb_id,
            imdb_link=IMDB_TITLE_URL.format(imdb_id),
            name=match.get("l", ""),
            year=str(match.get("y", "")),
            poster=_suggestion_image(match),
            actors=[{"name": name.strip(), "character": ""} for name in match.get("s", "").split(",") if name.strip()],
            success=True,
        )
        return record

    def format(self, record: Record, settings: Settings) -> str:
        lines = []
        if record.get("poster"):
            lines += [f"[img]{record['poster']}[/img]", ""]
        if record.get("name"):
            lines.append(f"❁ Title: {record['name']}")
        if record.get("@type"):
            lines.append(f"❁ Type: {record['@type']}")
        if record.get("keywords"):
            lines.append(f"❁ Keywords: {', '.join(record['keywords'])}")
        if record.get("datePublished"):
            lines.append(f"❁ Date Published: {record['datePublished']}")
        if record.get("imdb_rating"):
            lines.append(f"❁ IMDb Rating: {record['imdb_rating']}")
        if record.get("imdb_link"):
            lines.append(f"❁ IMDb Link: {record['imdb_link']}")
        duration = convert_duration(record.get("duration"))
        if duration:
            lines.append(f"❁ Duration: {duration}")
        if record.get("directors"):
            lines.append(f"❁ Directors: {join_names(record['directors'])}")
        if record.get("creators"):
            lines.append(f"❁ Creators: {join_names(record['creators'])}")
        if record.get("actors"):
            actors = [
                f"{a['name']} as {a['character']}" if a.get("character") else a.get("name", "")
                for a in record["actors"]
            ]
            lines.append(f"❁ Actors: {' / '.join(actors)}")
        if record.get("description"):
            lines += ["", "❁ Introduction", indent_block(record["description"], "    ")]
        return "\n".join(lines).strip()


class ImdbSearchProvider(HttpProvider):
    """Searches IMDb: suggestion API first, find-page scraping second."""

    name = "imdb"
    site = "search-imdb"
    label = "IMDb"

    async def search(self, query: str, settings: Settings) -> list[SearchHit]:
        chain = FallbackChain(
            [
                FallbackStage("suggestion", lambda: self._suggest(query), timeout=5.0),
                FallbackStage("find-page", lambda: self._find(query), timeout=self._timeout),
            ],
            label="imdb-search",
        )
        result = await chain.resolve()
        if result.found:
            return result.value

        error = result.first_error(RateLimitedError)
        if error is not None:
            raise error
        return []

    async def _suggest(self, query: str) -> list[SearchHit]:
        payload = await self.get_json(SUGGESTION_URL.format("h", quote(query, safe="")))
        items = payload.get("d") if isinstance(payload, dict) else None
        hits = []
        for item in items or []:
            imdb_id = item.get("id", "")
            if not imdb_id.startswith("tt"):
                continue
            hits.append(
                SearchHit(
                    year=str(item.get("y", "")),
                    subtype=item.get("qid", ""),
                    title=item.get("l", ""),
                    subtitle=item.get("s", ""),
                    link=IMDB_TITLE_URL.format(imdb_id),
                    id=imdb_id,
                    img=_suggestion_image(item),
                )
            )
        return hits[:SEARCH_LIMIT]

    async def _find(self, query: str) -> list[SearchHit]:
        html = await self.get_text(IMDB_FIND_URL, params={"q": query, "s": "tt"})
        soup = BeautifulSoup(html, "html.parser")

        hits = []
        for result in soup.select(".findResult, li.find-title-result"):
            anchor = result.select_one(".result_text a, a.ipc-metadata-list-summary-item__t")
            if anchor is None:
                continue
            match = TITLE_LINK_PATTERN.search(anchor.get("href", ""))
            if match is None:
                continue

            title = anchor.get_text(strip=True)
            text = result.get_text(" ", strip=True)
            year = YEAR_PATTERN.search(text) or re.search(r"\b(\d{4})\b", text.replace(title, "", 1))
            hits.append(
                SearchHit(
                    year=year.group(1) if year else "",
                    subtype="feature",
                    title=title,
                    subtitle=text.replace(title, "", 1).strip(),
                    link=IMDB_TITLE_URL.format(match.group(1)),
                    id=match.group(1),
                )
            )
            if len(hits) >= SEARCH_LIMIT:
                break
        return hits
