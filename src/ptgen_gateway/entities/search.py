"""Search hit domain entity."""

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class SearchHit:
    """One normalized search result, identical in shape across sources.

    Attributes:
        year: Release year, empty if unknown
        subtype: movie / tv / feature / ... as reported by the source
        title: Display title (bilingual for TMDB when the names differ)
        subtitle: Secondary line (cast, overview excerpt, original title)
        link: Canonical page URL on the source site
        id: Source-specific id
        rating: Source rating as text, empty if absent
        img: Poster URL, empty if absent
        episode: Episode count for series, empty if absent
    """

    year: str = ""
    subtype: str = ""
    title: str = ""
    subtitle: str = ""
    link: str = ""
    id: str = ""
    rating: str = ""
    img: str = ""
    episode: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)
