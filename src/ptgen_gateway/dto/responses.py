"""Response DTOs and the JSON envelope."""

import time
from typing import Any

from pydantic import BaseModel, Field

from ptgen_gateway import __version__
from ptgen_gateway.config import Settings, settings
from ptgen_gateway.entities import SearchHit


def build_envelope(body: dict[str, Any] | None = None, config: Settings | None = None) -> dict[str, Any]:
    """Wrap a response body in the standard envelope.

    Defaults (``success=False``, ``error=None``, empty ``format``, version,
    generation time in ms and copyright) are overridden by ``body``.

    Args:
        body: Response fields
        config: Settings supplying the author (defaults to global settings)

    Returns:
        The envelope as a JSON-ready dict
    """
    config = config or settings
    return {
        "success": False,
        "error": None,
        "format": "",
        "version": __version__,
        "generate_at": int(time.time() * 1000),
        "copyright": config.copyright,
        **(body or {}),
    }


class SearchHitItem(BaseModel):
    """Single search result (in the ``data`` array)."""

    year: str = Field("", description="Release year")
    subtype: str = Field("", description="movie / tv / feature / ...")
    title: str = Field("", description="Display title")
    subtitle: str = Field("", description="Secondary line")
    link: str = Field("", description="Page URL on the source site")
    id: str = Field("", description="Source-specific id")
    rating: str = Field("", description="Source rating")
    img: str = Field("", description="Poster URL")
    episode: str = Field("", description="Episode count for series")

    @classmethod
    def from_entity(cls, hit: SearchHit) -> "SearchHitItem":
        return cls(**hit.to_dict())


class SearchResponse(BaseModel):
    """Successful search body."""

    success: bool = True
    site: str = Field(..., description="Search site, e.g. 'search-imdb'")
    data: list[SearchHitItem] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Failure body; ``data`` is present (empty) for searches."""

    success: bool = False
    error: str = Field(..., description="Human-readable (often bilingual) message")
    data: list[SearchHitItem] | None = None
