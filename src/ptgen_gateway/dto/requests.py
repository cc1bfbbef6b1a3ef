"""Request DTOs for the gateway endpoint."""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

QUERY_FIELDS = ("source", "query", "url", "tmdb_id", "sid", "type", "key")


class QueryParams(BaseModel):
    """Routing parameters accepted from the query string or a POST body.

    Values are coerced to stripped strings; blanks become None so the
    router only ever sees meaningful values.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    source: str | None = Field(None, description="Source name (douban, imdb, tmdb, bangumi/bgm, steam)")
    query: str | None = Field(None, description="Free-text search query")
    url: str | None = Field(None, description="Resource page URL on a supported site")
    tmdb_id: str | None = Field(None, description="TMDB id, implies source=tmdb")
    sid: str | None = Field(None, description="Source-specific id")
    type: str | None = Field(None, description="TMDB media type: movie or tv")
    key: str | None = Field(None, description="API key")

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return {}
        cleaned = {}
        for name in QUERY_FIELDS:
            value = data.get(name)
            if value is None or isinstance(value, (dict, list)):
                continue
            text = str(value).strip()
            if text:
                cleaned[name] = text
        return cleaned

    @classmethod
    def merge(cls, query: Mapping[str, Any], body: Any = None) -> "QueryParams":
        """Combine query-string and JSON body parameters.

        Body fields win; fields absent from the body fall back to the
        query string. A body that is not a JSON object is ignored.

        Example:
            ```python
            params = QueryParams.merge({"source": "imdb"}, {"source": "tmdb", "sid": "tv/1399"})
            assert params.source == "tmdb"
            ```
        """
        merged = cls.model_validate(query).routing()
        if isinstance(body, Mapping):
            merged.update(cls.model_validate(body).routing())
        return cls.model_validate(merged)

    def routing(self) -> dict[str, str]:
        """Non-empty parameters as a plain mapping."""
        return self.model_dump(exclude_none=True)
