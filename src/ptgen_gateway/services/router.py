"""Query routing.

Turns the request parameters into one of four routes, tried in priority
order: URL, explicit source + query (search), query only (auto search),
and source + sid (direct fetch).
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from ptgen_gateway.entities import SID_PATTERN, ResourceId
from ptgen_gateway.errors import ValidationError
from ptgen_gateway.services.registry import ProviderDescriptor, ProviderRegistry

CJK_PATTERN = re.compile(
    "[\u4e00-\u9fff\u3400-\u4dbf\uf900-\ufaff"
    "\U00020000-\U0002a6df\U0002a700-\U0002b73f\U0002b740-\U0002b81f\U0002b820-\U0002ceaf]"
)
LATIN_PATTERN = re.compile(r"[a-zA-Z]")

INVALID_PARAMETERS = (
    "Invalid parameters. For search, use both `source` and `query`. "
    "For generation, use `url` or `source` and `sid`."
)


class RouteKind(str, Enum):
    URL = "url"
    SEARCH = "search"
    AUTO_SEARCH = "auto_search"
    RESOURCE = "resource"


@dataclass(frozen=True)
class Route:
    """A resolved request.

    ``descriptor`` and ``resource`` are set for URL and RESOURCE routes;
    ``source`` and ``query`` for the search routes.
    """

    kind: RouteKind
    descriptor: ProviderDescriptor | None = None
    resource: ResourceId | None = None
    source: str | None = None
    query: str | None = None

    @property
    def is_search(self) -> bool:
        return self.kind in (RouteKind.SEARCH, RouteKind.AUTO_SEARCH)


def is_cjk_text(text: str) -> bool:
    """Check whether text is primarily CJK.

    Very short texts (fewer than two CJK or Latin letters) count as CJK
    as soon as they contain a single ideograph.
    """
    if not isinstance(text, str) or not text.strip():
        return False

    cjk = len(CJK_PATTERN.findall(text))
    latin = len(LATIN_PATTERN.findall(text))

    if cjk + latin < 2:
        return cjk > 0
    return cjk > latin


def _present(params: Mapping[str, str | None], name: str) -> str | None:
    value = params.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class QueryRouter:
    """Resolves request parameters against the provider registry."""

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def resolve(self, params: Mapping[str, str | None]) -> Route:
        """Pick the route for a request.

        Args:
            params: Routing parameters (source, query, url, tmdb_id, sid, type)

        Returns:
            The resolved Route

        Raises:
            ValidationError: Parameters do not describe a supported request
        """
        url = _present(params, "url")
        source = _present(params, "source")
        query = _present(params, "query")
        sid = _present(params, "sid")
        tmdb_id = _present(params, "tmdb_id")
        media_type = _present(params, "type")

        if url:
            return self._resolve_url(url)

        if source and query:
            return Route(kind=RouteKind.SEARCH, source=source.lower(), query=query)

        if query:
            return Route(kind=RouteKind.AUTO_SEARCH, query=query)

        if tmdb_id and not sid:
            return self._resolve_resource("tmdb", tmdb_id, media_type)

        if source and sid:
            return self._resolve_resource(source, sid, media_type)

        raise ValidationError(INVALID_PARAMETERS)

    def _resolve_url(self, url: str) -> Route:
        descriptor = self._registry.for_url(url)
        if descriptor is None:
            raise ValidationError("Unsupported URL")

        sid = descriptor.extract_id(url)
        if not sid:
            raise ValidationError(f"Invalid {descriptor.name} URL")

        return Route(
            kind=RouteKind.URL,
            descriptor=descriptor,
            resource=self._resource_for(descriptor, sid),
        )

    def _resolve_resource(self, source: str, raw_sid: str, media_type: str | None) -> Route:
        descriptor = self._registry.get(source)
        if descriptor is None:
            raise ValidationError(f"Unsupported source: {source}")

        # '/' cannot travel in a path segment, so clients send composite ids with '_'
        sid = raw_sid.replace("_", "/") if "/" not in raw_sid else raw_sid
        sid = sid.strip("/")
        if not SID_PATTERN.match(sid):
            raise ValidationError(f"Invalid sid for {descriptor.name}: {raw_sid}")

        if descriptor.sub_namespaced:
            sid = self._namespaced_sid(descriptor, sid, media_type)

        return Route(
            kind=RouteKind.RESOURCE,
            descriptor=descriptor,
            resource=self._resource_for(descriptor, sid),
        )

    @staticmethod
    def _namespaced_sid(descriptor: ProviderDescriptor, sid: str, media_type: str | None) -> str:
        """Qualify a bare id with its namespace ("603" + type=movie -> "movie/603")."""
        expected = ", ".join(descriptor.namespaces)

        if "/" in sid:
            namespace = sid.split("/", 1)[0].lower()
            if namespace not in descriptor.namespaces:
                raise ValidationError(f"Invalid 'type': {namespace}. Expected one of: {expected}")
            return sid

        if not media_type:
            raise ValidationError(
                f"Parameter 'type' is required for numeric {descriptor.name} ids "
                f"(one of: {expected})"
            )
        media_type = media_type.lower()
        if media_type not in descriptor.namespaces:
            raise ValidationError(f"Invalid 'type': {media_type}. Expected one of: {expected}")
        return f"{media_type}/{sid}"

    @staticmethod
    def _resource_for(descriptor: ProviderDescriptor, sid: str) -> ResourceId:
        sub_namespace = None
        if descriptor.sub_namespaced and "/" in sid:
            sub_namespace = sid.split("/", 1)[0]
        return ResourceId(source=descriptor.name, sid=sid, sub_namespace=sub_namespace)
