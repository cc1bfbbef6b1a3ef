"""Steam store provider (appdetails API)."""

import logging
import re
import textwrap
from typing import Any

from bs4 import BeautifulSoup

from ptgen_gateway.config import Settings
from ptgen_gateway.entities import Record, new_record
from ptgen_gateway.errors import NotFoundError, UpstreamTransientError, ValidationError
from ptgen_gateway.providers.http import HttpProvider
from ptgen_gateway.providers.text import FOOTER, indent_block

logger = logging.getLogger(__name__)

STEAM_APP_DETAILS_URL = "https://store.steampowered.com/api/appdetails"
STEAM_APP_URL = "https://store.steampowered.com/app/{}/"

MAX_SCREENSHOTS = 3
WRAP_WIDTH = 80
REQUIREMENT_LABELS = {"minimum", "minimum:", "recommended", "recommended:"}
ADDITIONAL_NOTES = re.compile(r"additional notes[:：]\s*", re.IGNORECASE)


def html_to_text(html: str) -> str:
    """Strip markup, turning ``<br>`` and block boundaries into newlines."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    return soup.get_text("\n").replace("\r\n", "\n").strip()


def format_price(price: Any) -> dict[str, Any] | None:
    """Steam prices come in cents: ``{"initial": 1999}`` -> ``"19.99"``."""
    if not isinstance(price, dict):
        return None

    def cents(value: Any) -> str | None:
        return f"{value / 100:.2f}" if isinstance(value, (int, float)) else None

    return {
        "currency": price.get("currency") or "",
        "initial": cents(price.get("initial")),
        "final": cents(price.get("final")),
        "discount": price.get("discount_percent") or 0,
    }


def _wrap(line: str, indent: str = "    ") -> list[str]:
    return textwrap.wrap(line, width=WRAP_WIDTH, initial_indent=indent, subsequent_indent=indent) or []


def format_requirements(html: str, title: str) -> list[str]:
    """Render a PC requirements block, dropping the Minimum/Recommended labels."""
    lines = [line.strip() for line in html_to_text(html).split("\n") if line.strip()]
    if not lines:
        return []

    out = [f"❁ {title}"]
    for line in lines:
        if line.lower() in REQUIREMENT_LABELS:
            continue
        match = ADDITIONAL_NOTES.search(line)
        if match:
            out.append("  Additional Notes:")
            note = line[match.end():].strip()
            if note:
                out += _wrap(note)
            continue
        out += _wrap(line)
    out.append("")
    return out


class SteamProvider(HttpProvider):
    """Fetches Steam store app details."""

    name = "steam"
    label = "Steam"

    async def fetch(self, sid: str, settings: Settings) -> Record:
        if not sid.isdigit():
            raise ValidationError("Invalid Steam ID format. Expected numeric appid")

        payload = await self.get_json(STEAM_APP_DETAILS_URL, params={"appids": sid, "l": "english"})
        entry = payload.get(sid) if isinstance(payload, dict) else None
        if not isinstance(entry, dict):
            raise UpstreamTransientError("Failed to retrieve Steam app details")
        if not entry.get("success"):
            # Steam answers unknown appids with {"success": false}
            raise NotFoundError()

        record = self._build_record(sid, entry.get("data") or {})
        logger.info("Steam data generated for: %s", record["name"])
        return record

    @staticmethod
    def _build_record(sid: str, app: dict[str, Any]) -> Record:
        release = app.get("release_date") or {}
        platforms = app.get("platforms") or {}
        requirements = app.get("pc_requirements")
        if not isinstance(requirements, dict):
            # Steam sends [] instead of {} when there are no requirements
            requirements = {}

        record = new_record("steam", sid)
        record.update(
            steam_id=sid,
            steam_link=STEAM_APP_URL.format(sid),
            name=app.get("name") or "N/A",
            type=app.get("type") or "N/A",
            short_description=app.get("short_description") or "",
            header_image=app.get("header_image") or "",
            website=app.get("website") or "",
            developers=list(app.get("developers") or []),
            publishers=list(app.get("publishers") or []),
            release_date=release.get("date") or "N/A",
            coming_soon=bool(release.get("coming_soon")),
            supported_languages=app.get("supported_languages") or "",
            platforms={os_name: bool(platforms.get(os_name)) for os_name in ("windows", "mac", "linux")},
            categories=[c.get("description") for c in app.get("categories") or [] if isinstance(c, dict)],
            genres=[g.get("description") for g in app.get("genres") or [] if isinstance(g, dict)],
            pc_requirements={
                "minimum": requirements.get("minimum") or "",
                "recommended": requirements.get("recommended") or "",
            },
            screenshots=[
                {"id": s.get("id"), "path_thumbnail": s.get("path_thumbnail"), "path_full": s.get("path_full")}
                for s in (app.get("screenshots") or [])[:MAX_SCREENSHOTS]
                if isinstance(s, dict)
            ],
            success=True,
        )
        price = format_price(app.get("price_overview"))
        if price:
            record["price"] = price
        return record

    def format(self, record: Record, settings: Settings) -> str:
        lines = []
        if record.get("header_image"):
            lines += [f"[img]{record['header_image']}[/img]", ""]

        lines.append(f"❁ 游戏名称: {record.get('name', 'N/A')}")
        lines.append(f"❁ 游戏类型: {record.get('type', 'N/A')}")
        lines.append(f"❁ 发行日期: {record.get('release_date', 'N/A')}")
        if record.get("developers"):
            lines.append(f"❁ 开 发 商: {', '.join(record['developers'])}")
        if record.get("publishers"):
            lines.append(f"❁ 发 行 商: {', '.join(record['publishers'])}")
        if record.get("genres"):
            lines.append(f"❁ 游戏类型: {', '.join(record['genres'])}")
        if record.get("categories"):
            lines.append(f"❁ 分类标签: {', '.join(record['categories'])}")

        price = record.get("price") or {}
        if price.get("discount") and price.get("initial"):
            lines.append(f"❁ 原　　价: {price['initial']} {price['currency']}")
            lines.append(f"❁ 现　　价: {price['final']} {price['currency']} (折扣{price['discount']}%)")
        elif price.get("final"):
            lines.append(f"❁ 价　　格: {price['final']} {price['currency']}")

        platforms = [name for key, name in (("windows", "Windows"), ("mac", "Mac"), ("linux", "Linux"))
                     if (record.get("platforms") or {}).get(key)]
        if platforms:
            lines.append(f"❁ 支持平台: {', '.join(platforms)}")
        lines += [f"❁ Steam链接: {STEAM_APP_URL.format(record.get('sid'))}", ""]

        if record.get("short_description"):
            lines += ["❁ 简介", indent_block(html_to_text(record["short_description"])), ""]

        requirements = record.get("pc_requirements") or {}
        lines += format_requirements(requirements.get("minimum", ""), "最低配置")
        lines += format_requirements(requirements.get("recommended", ""), "推荐配置")

        screenshots = [s["path_full"] for s in record.get("screenshots") or [] if s.get("path_full")]
        if screenshots:
            lines.append("❁ 游戏截图")
            lines += [f"[img]{path}[/img]" for path in screenshots]
            lines.append("")

        lines.append(FOOTER)
        return "\n".join(lines).strip()
