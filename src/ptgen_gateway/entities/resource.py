"""Resource identifier domain entity."""

import re
from dataclasses import dataclass

# Segments of a sid; ':' is reserved as the row-tier separator.
SID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+(?:/[A-Za-z0-9_-]+)*$")


@dataclass(frozen=True)
class ResourceId:
    """Names one cacheable media item.

    Attributes:
        source: Provider name (e.g. "tmdb", "douban")
        sid: The id handed to the provider, possibly composite ("movie/603")
        sub_namespace: Parallel id space within the source (TMDB "movie"/"tv")
    """

    source: str
    sid: str
    sub_namespace: str | None = None

    @property
    def resource_key(self) -> str:
        """Last segment of the sid, the id proper."""
        return self.sid.rsplit("/", 1)[-1]

    def _parts(self) -> list[str]:
        parts = [self.source]
        if self.sub_namespace:
            parts.append(self.sub_namespace)
        parts.append(self.resource_key)
        return parts

    @property
    def object_key(self) -> str:
        """Key in the object tier, e.g. ``tmdb/movie/603``."""
        return "/".join(self._parts())

    @property
    def row_key(self) -> str:
        """Key in the row tier, e.g. ``tmdb:movie:603``."""
        return ":".join(self._parts())
