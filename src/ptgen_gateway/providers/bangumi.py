"""Bangumi (bgm.tv) provider backed by the public v0 API."""

import asyncio
import logging
import re
from typing import Any

import httpx

from ptgen_gateway.config import Settings
from ptgen_gateway.entities import Record, new_record
from ptgen_gateway.errors import UpstreamTransientError, ValidationError
from ptgen_gateway.providers.http import BROWSER_USER_AGENT, HttpProvider, parse_json
from ptgen_gateway.providers.text import FOOTER, indent_block

logger = logging.getLogger(__name__)

BGM_API_BASE = "https://api.bgm.tv/v0"
BGM_SUBJECT_URL = "https://bgm.tv/subject/{}"
BGM_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9,zh-CN;q=0.8,zh;q=0.7",
    "Referer": "https://bgm.tv/",
}

SUBJECT_TIMEOUT = 20.0
RELATED_TIMEOUT = 15.0

DIRECTOR_RELATION = re.compile(r"导(演|演员)|监督|director")
WRITER_RELATION = re.compile(r"编剧|脚本|writer")
ACTOR_RELATION = re.compile(r"声优|cast|actor|演员")

TYPE_NAMES = {
    "anime": "动画",
    "book": "书籍",
    "game": "游戏",
    "music": "音乐",
    "real": "三次元",
    "tv": "电视",
    "movie": "电影",
}
TYPE_CODES = {1: "书籍", 2: "动画", 3: "音乐", 4: "游戏", 6: "三次元"}

MAX_ACTORS = 10
MAX_CHARACTERS = 20


def normalize_type(subject: dict[str, Any]) -> str:
    """Readable (Chinese where known) subject type from ``type``/``type_name``."""
    for key in ("type_name", "type_cn"):
        value = str(subject.get(key) or "").strip()
        if value:
            return value

    kind = subject.get("type")
    if isinstance(kind, bool):
        return ""
    if isinstance(kind, int):
        return TYPE_CODES.get(kind, str(kind))
    if isinstance(kind, str) and kind.strip():
        return TYPE_NAMES.get(kind.strip().lower(), kind.strip())
    return ""


def classify_persons(persons: list[Any]) -> dict[str, list[dict[str, Any]]]:
    """Split staff into directors, writers, actors and others by their relation."""
    groups: dict[str, list[dict[str, Any]]] = {"directors": [], "writers": [], "actors": [], "others": []}
    for person in persons:
        if not isinstance(person, dict):
            continue
        relation = person.get("relation") or ""
        info = {
            "id": person.get("id") or "",
            "name": person.get("name") or "",
            "name_cn": person.get("name_cn") or "",
            "relation": relation,
        }
        lowered = relation.lower()
        if DIRECTOR_RELATION.search(lowered):
            groups["directors"].append(info)
        elif WRITER_RELATION.search(lowered):
            groups["writers"].append(info)
        elif ACTOR_RELATION.search(lowered):
            groups["actors"].append(info)
        else:
            groups["others"].append(info)
    return groups


def format_characters(characters: list[Any]) -> list[str]:
    """``["Name (中文名): 声优1、声优2", ...]``"""
    lines = []
    for character in characters:
        if not isinstance(character, dict):
            continue
        name = character.get("name") or ""
        name_cn = character.get("name_cn") or ""
        actors = [
            actor.get("name_cn") or actor.get("name") or ""
            for actor in character.get("actors") or []
            if isinstance(actor, dict)
        ]
        actors = [actor for actor in actors if actor]
        title = f"{name} ({name_cn})" if name and name_cn else name or name_cn
        if title:
            lines.append(f"{title}: {'、'.join(actors) if actors else '未知'}")
    return lines


def _display_names(people: list[dict[str, Any]]) -> list[str]:
    return [p.get("name_cn") or p.get("name") or "" for p in people]


class BangumiProvider(HttpProvider):
    """Fetches Bangumi subjects with their staff and characters."""

    name = "bangumi"
    label = "Bangumi"

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = SUBJECT_TIMEOUT) -> None:
        super().__init__(client=client, timeout=timeout)

    async def fetch(self, sid: str, settings: Settings) -> Record:
        if not sid.isdigit():
            raise ValidationError("Invalid Bangumi subject id")

        subject_url = f"{BGM_API_BASE}/subjects/{sid}"
        subject = await self.get_json(subject_url, headers=BGM_HEADERS, timeout=SUBJECT_TIMEOUT)
        if not isinstance(subject, dict) or not subject:
            raise UpstreamTransientError("Failed to parse Bangumi subject response")

        # Staff and characters are optional extras
        persons, characters = await asyncio.gather(
            self._related(f"{subject_url}/persons"),
            self._related(f"{subject_url}/characters"),
        )

        record = self._build_record(sid, subject, persons, characters)
        logger.info("Bangumi data generated for: %s", record["name_cn"] or record["name"])
        return record

    async def _related(self, url: str) -> list[Any]:
        response = None
        try:
            response = await self._request(url, headers=BGM_HEADERS, timeout=RELATED_TIMEOUT, check=False)
        except UpstreamTransientError as e:
            logger.warning("Bangumi related request failed for %s: %s", url, e)
        if response is None or response.status_code != 200:
            return []
        try:
            data = parse_json(response.content, self.label)
        except UpstreamTransientError:
            return []
        return data if isinstance(data, list) else []

    @staticmethod
    def _build_record(
        sid: str,
        subject: dict[str, Any],
        persons: list[Any],
        characters: list[Any],
    ) -> Record:
        images = subject.get("images") or {}
        rating = subject.get("rating") or {}
        date = subject.get("date") or ""

        record = new_record("bangumi", sid)
        record.update(
            bgm_id=subject.get("id") or sid,
            bgm_link=BGM_SUBJECT_URL.format(subject.get("id") or sid),
            name=subject.get("name") or "",
            name_cn=subject.get("name_cn") or "",
            summary=subject.get("summary") or "",
            poster=images.get("large") or images.get("common") or subject.get("image") or "",
            bgm_rating_average=rating.get("score", 0),
            bgm_votes=rating.get("total", 0),
            bgm_rating=f"{rating.get('score')}/10 from {rating.get('total')} users" if rating else "",
            date=date,
            year=str(date)[:4],
            platform=subject.get("platform") or "",
            tags=[tag.get("name") for tag in subject.get("tags") or [] if isinstance(tag, dict)],
            eps=subject.get("eps_count") or subject.get("eps") or "",
            type=normalize_type(subject),
            collection=subject.get("collection") or {},
        )

        groups = classify_persons(persons)
        record.update(
            directors=groups["directors"],
            writers=groups["writers"],
            actors=groups["actors"],
            persons_other=groups["others"],
            characters=format_characters(characters),
            success=True,
        )
        return record

    def format(self, record: Record, settings: Settings) -> str:
        lines = []
        if record.get("poster"):
            lines += [f"[img]{record['poster']}[/img]", ""]

        lines.append(f"❁ 标题: {record.get('name_cn') or record.get('name') or 'N/A'}")
        rows = (
            ("类型", record.get("type")),
            ("话数", record.get("eps")),
            ("首播", record.get("date")),
            ("年份", record.get("year")),
            ("平台", record.get("platform")),
            ("标签", " / ".join(record.get("tags") or [])),
            ("Bangumi评分", record.get("bgm_rating")),
            ("Bangumi链接", record.get("bgm_link")),
            ("导演", " / ".join(_display_names(record.get("directors") or []))),
            ("编剧", " / ".join(_display_names(record.get("writers") or []))),
            ("主要人物", " / ".join(_display_names(record.get("actors") or [])[:MAX_ACTORS])),
        )
        lines += [f"❁ {label}: {value}" for label, value in rows if value]

        if record.get("characters"):
            lines += ["", "❁ 角色信息:"]
            lines += [f"  {c}" for c in record["characters"][:MAX_CHARACTERS]]
        if record.get("summary"):
            lines += ["", "❁ 简介", indent_block(record["summary"])]

        lines += ["", FOOTER]
        return "\n".join(lines).strip()

