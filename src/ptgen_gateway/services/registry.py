"""Provider registry.

Static table of content sources. Each descriptor names a provider and,
for URL dispatch, the hosts it serves and the pattern that both confirms
a URL belongs to it and extracts the id. Built once at startup and never
mutated afterwards.
"""

import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from urllib.parse import urlsplit

from ptgen_gateway.protocols import Provider

IdFormatter = Callable[[re.Match], str]


@dataclass(frozen=True)
class ProviderDescriptor:
    """Immutable registry entry for one source.

    Attributes:
        name: Stable source name, also the cache key prefix
        provider: Fetch/format implementation
        domains: Hosts recognized in URL mode (lower-case, no port)
        pattern: Regex applied to the full URL; group 1 is the id
        id_formatter: Builds a composite id from the match (e.g. "movie/603")
        aliases: Extra names accepted for ``source`` (e.g. "bgm")
        namespaces: Parallel id spaces within the source (TMDB "movie", "tv")
        volatile: Skip caching when the deployment disables cache
    """

    name: str
    provider: Provider
    domains: tuple[str, ...] = ()
    pattern: re.Pattern | None = None
    id_formatter: IdFormatter | None = None
    aliases: tuple[str, ...] = ()
    namespaces: tuple[str, ...] = ()
    volatile: bool = False

    @property
    def sub_namespaced(self) -> bool:
        return bool(self.namespaces)

    def extract_id(self, url: str) -> str | None:
        """Extract the resource id from a URL on one of this source's hosts."""
        if self.pattern is None:
            return None
        match = self.pattern.search(url)
        if match is None:
            return None
        if self.id_formatter is not None:
            return self.id_formatter(match)
        return match.group(1)


def host_of(url: str) -> str:
    """Lower-cased host of a URL, port stripped. A missing scheme is assumed https."""
    if "://" not in url:
        url = f"https://{url}"
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


class ProviderRegistry:
    """Lookup of descriptors by name, alias or URL host.

    Example:
        ```python
        registry = ProviderRegistry([douban, imdb, tmdb])
        registry.get("TMDB")              # case-insensitive
        registry.for_host("bgm.tv")       # bangumi descriptor
        ```
    """

    def __init__(self, descriptors: Iterable[ProviderDescriptor]) -> None:
        """Build the lookup tables.

        Raises:
            ValueError: Two descriptors claim the same name, alias or host
        """
        self._by_name: dict[str, ProviderDescriptor] = {}
        self._by_host: dict[str, ProviderDescriptor] = {}
        aliases: dict[str, ProviderDescriptor] = {}

        for descriptor in descriptors:
            for name in (descriptor.name, *descriptor.aliases):
                name = name.lower()
                if name in self._by_name or name in aliases:
                    raise ValueError(f"Duplicate provider name: {name}")
                target = self._by_name if name == descriptor.name.lower() else aliases
                target[name] = descriptor

            for domain in descriptor.domains:
                domain = domain.lower()
                if domain in self._by_host:
                    raise ValueError(f"Domain {domain} already registered")
                self._by_host[domain] = descriptor

        self._aliases = aliases

    def get(self, name: str) -> ProviderDescriptor | None:
        key = name.strip().lower()
        return self._by_name.get(key) or self._aliases.get(key)

    def for_host(self, host: str) -> ProviderDescriptor | None:
        return self._by_host.get(host.lower())

    def for_url(self, url: str) -> ProviderDescriptor | None:
        return self.for_host(host_of(url))

    @property
    def names(self) -> list[str]:
        return list(self._by_name)

    @property
    def volatile_sources(self) -> frozenset[str]:
        return frozenset(name for name, d in self._by_name.items() if d.volatile)

    def __iter__(self) -> Iterator[ProviderDescriptor]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)
