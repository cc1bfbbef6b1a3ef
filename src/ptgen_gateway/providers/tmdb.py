"""TMDB provider and search provider (JSON API, requires TMDB_API_KEY)."""

import asyncio
import logging
from typing import Any

import httpx

from ptgen_gateway.config import Settings
from ptgen_gateway.entities import Record, SearchHit, new_record
from ptgen_gateway.errors import NotFoundError, UpstreamTransientError, ValidationError
from ptgen_gateway.providers.http import HttpProvider, check_status, parse_json
from ptgen_gateway.providers.text import FOOTER, indent_block, join_names, truncate

logger = logging.getLogger(__name__)

TMDB_API_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p/w500"
TMDB_SITE_URL = "https://www.themoviedb.org"

KEY_NOT_CONFIGURED = "TMDB API密钥未配置 | TMDB API key not configured"
MAX_CAST = 15
SEARCH_LIMIT = 10


def _require_key(config: Settings) -> str:
    if not config.tmdb_api_key:
        raise UpstreamTransientError(KEY_NOT_CONFIGURED)
    return config.tmdb_api_key


def _image(path: str | None) -> str:
    return f"{TMDB_IMAGE_BASE_URL}{path}" if path else ""


def _names(items: Any, *keys: str) -> list[str]:
    if not isinstance(items, list):
        return []
    out = []
    for item in items:
        for key in keys:
            if item.get(key):
                out.append(item[key])
                break
    return out


def _character(actor: dict[str, Any]) -> str:
    if actor.get("character"):
        return actor["character"]
    # aggregate credits on series carry the role list instead
    roles = actor.get("roles") or []
    return " / ".join(role["character"] for role in roles if role.get("character"))


class TmdbProvider(HttpProvider):
    """Fetches movie and series details from the TMDB v3 API.

    Ids are namespaced: ``movie/603`` and ``tv/1399`` live in parallel
    id spaces, so the sid always carries its media type.
    """

    name = "tmdb"
    label = "TMDB"

    async def fetch(self, sid: str, settings: Settings) -> Record:
        api_key = _require_key(settings)

        media_type, _, media_id = sid.partition("/")
        if not media_id:
            raise ValidationError(
                "Invalid TMDB ID format. Expected 'movie/12345' or 'tv/12345'"
            )

        response = await self._request(
            f"{TMDB_API_URL}/{media_type}/{media_id}",
            params={
                "api_key": api_key,
                "language": "zh-CN",
                "append_to_response": "credits,release_dates,external_ids",
            },
            headers={"Accept": "application/json"},
            check=False,
        )
        if response.status_code == 401:
            raise UpstreamTransientError("TMDB API key invalid")
        check_status(response, self.label)

        payload = parse_json(response.content, self.label)
        if not isinstance(payload, dict) or "id" not in payload:
            raise UpstreamTransientError("TMDB API response parsing failed")

        record = self._build_record(sid, media_type, payload)
        logger.info("TMDB data generated for: %s", record["title"])
        return record

    @staticmethod
    def _build_record(sid: str, media_type: str, data: dict[str, Any]) -> Record:
        is_movie = media_type == "movie"
        record = new_record("tmdb", sid)
        record.update(
            media_type=media_type,
            tmdb_id=data.get("id"),
            title=(data.get("title") if is_movie else data.get("name")) or "",
            original_title=(data.get("original_title") if is_movie else data.get("original_name")) or "",
            overview=data.get("overview") or "",
            poster=_image(data.get("poster_path")),
            backdrop=_image(data.get("backdrop_path")),
        )

        if is_movie:
            release_date = data.get("release_date") or ""
            record.update(
                release_date=release_date,
                year=release_date[:4],
                runtime=f"{data['runtime']} minutes" if data.get("runtime") else "",
            )
        else:
            first_air_date = data.get("first_air_date") or ""
            run_times = data.get("episode_run_time") or []
            record.update(
                first_air_date=first_air_date,
                last_air_date=data.get("last_air_date") or "",
                year=first_air_date[:4],
                episode_run_time=f"{run_times[0]} minutes" if run_times else "",
                number_of_episodes=data.get("number_of_episodes") or "",
                number_of_seasons=data.get("number_of_seasons") or "",
            )

        average = data.get("vote_average") or 0
        votes = data.get("vote_count") or 0
        record.update(
            tmdb_rating_average=average,
            tmdb_votes=votes,
            tmdb_rating=f"{average}/10 from {votes} users",
            genres=_names(data.get("genres"), "name"),
            languages=_names(data.get("spoken_languages"), "english_name", "name"),
            countries=_names(data.get("production_countries"), "name"),
            production_companies=_names(data.get("production_companies"), "name"),
        )

        credits = data.get("credits") or {}
        crew = credits.get("crew") or []
        record["directors"] = [
            {"name": p.get("name", ""), "id": p.get("id")} for p in crew if p.get("job") == "Director"
        ]
        record["producers"] = [
            {"name": p.get("name", ""), "id": p.get("id")} for p in crew if p.get("job") == "Producer"
        ]
        record["cast"] = [
            {
                "name": actor.get("name") or actor.get("original_name") or "",
                "character": _character(actor),
                "id": actor.get("id") or "",
            }
            for actor in (credits.get("cast") or [])[:MAX_CAST]
        ]

        imdb_id = (data.get("external_ids") or {}).get("imdb_id") or ""
        record["imdb_id"] = imdb_id
        record["imdb_link"] = f"https://www.imdb.com/title/{imdb_id}/" if imdb_id else ""
        record["success"] = True
        return record

    def format(self, record: Record, settings: Settings) -> str:
        is_movie = record.get("media_type", "movie") == "movie"
        lines = []
        if record.get("poster"):
            lines += [f"[img]{record['poster']}[/img]", ""]

        lines.append(f"❁ Title: {record.get('title') or 'N/A'}")
        lines.append(f"❁ Original Title: {record.get('original_title') or 'N/A'}")
        lines.append(f"❁ Genres: {join_names(record.get('genres')) or 'N/A'}")
        lines.append(f"❁ Languages: {join_names(record.get('languages')) or 'N/A'}")
        if is_movie:
            lines.append(f"❁ Release Date: {record.get('release_date') or 'N/A'}")
            lines.append(f"❁ Runtime: {record.get('runtime') or 'N/A'}")
        else:
            lines.append(f"❁ First Air Date: {record.get('first_air_date') or 'N/A'}")
            lines.append(f"❁ Number of Episodes: {record.get('number_of_episodes') or 'N/A'}")
            lines.append(f"❁ Number of Seasons: {record.get('number_of_seasons') or 'N/A'}")
            lines.append(f"❁ Episode Runtime: {record.get('episode_run_time') or 'N/A'}")
        lines.append(f"❁ Production Countries: {join_names(record.get('countries')) or 'N/A'}")
        lines.append(f"❁ Rating: {record.get('tmdb_rating') or 'N/A'}")
        media = "movie" if is_movie else "tv"
        lines.append(f"❁ TMDB Link: {TMDB_SITE_URL}/{media}/{record.get('tmdb_id')}/")
        if record.get("imdb_link"):
            lines.append(f"❁ IMDb Link: {record['imdb_link']}")
        if record.get("directors"):
            lines.append(f"❁ Directors: {join_names(record['directors'])}")
        if record.get("producers"):
            lines.append(f"❁ Producers: {join_names(record['producers'])}")

        if record.get("cast"):
            lines += ["", "❁ Cast"]
            for actor in record["cast"]:
                role = f" as {actor['character']}" if actor.get("character") else ""
                lines.append(f"  {actor.get('name', '')}{role}")

        if record.get("overview"):
            lines += ["", "❁ Overview", indent_block(record["overview"])]

        lines += ["", FOOTER]
        return "\n".join(lines).strip()


class TmdbSearchProvider(HttpProvider):
    """Searches movies and series concurrently, most popular first."""

    name = "tmdb"
    site = "search-tmdb"
    label = "TMDB"

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 8.0) -> None:
        super().__init__(client=client, timeout=timeout)

    async def search(self, query: str, settings: Settings) -> list[SearchHit]:
        api_key = _require_key(settings)
        query = query.strip()
        if not query:
            raise ValidationError("Invalid query")

        results = await asyncio.gather(
            self._search_type("movie", query, api_key),
            self._search_type("tv", query, api_key),
            return_exceptions=True,
        )

        items: list[dict[str, Any]] = []
        failures: list[BaseException] = []
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("TMDB search branch failed: %s", result)
                failures.append(result)
            else:
                items.extend(result)

        # both branches failed: surface the first typed error
        if len(failures) == len(results):
            raise failures[0]

        items.sort(key=lambda item: item.get("popularity") or 0, reverse=True)
        return [self._to_hit(item) for item in items[:SEARCH_LIMIT]]

    async def _search_type(self, media_type: str, query: str, api_key: str) -> list[dict[str, Any]]:
        try:
            payload = await self.get_json(
                f"{TMDB_API_URL}/search/{media_type}",
                params={"api_key": api_key, "language": "zh-CN", "query": query},
            )
        except NotFoundError:
            return []
        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            return []
        return [{**item, "media_type": media_type} for item in results if isinstance(item, dict)]

    @staticmethod
    def _to_hit(item: dict[str, Any]) -> SearchHit:
        media = "tv" if item.get("media_type") == "tv" else "movie"
        date = item.get("release_date") or item.get("first_air_date") or ""

        if item.get("original_name"):
            title = f"{item.get('name', '')} / {item['original_name']}"
        else:
            title = item.get("original_title") or item.get("title") or item.get("name") or ""

        rating = item.get("vote_average")
        return SearchHit(
            year=str(date).split("-")[0],
            subtype=media,
            title=title,
            subtitle=truncate(item.get("overview") or "", 100),
            link=f"{TMDB_SITE_URL}/{media}/{item.get('id')}",
            id=str(item.get("id") or ""),
            rating="" if rating is None else str(rating),
            img=_image(item.get("poster_path")),
        )
