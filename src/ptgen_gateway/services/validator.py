"""Request validation: malicious-pattern rejection, API key, rate limiting.

The three checks run in that fixed order and stop at the first failure, so
a traversal attempt is rejected before its key is even looked at.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import unquote_plus, urlsplit

from ptgen_gateway.config import Settings, settings
from ptgen_gateway.errors import MaliciousRequestError, RateLimitedError, UnauthorizedError
from ptgen_gateway.services.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

MALICIOUS_PATTERNS = (
    re.compile(r"\.{2,}/"),
    re.compile(r"(?:script|javascript|vbscript):", re.IGNORECASE),
    re.compile(r"<\s*(?:iframe|object|embed)", re.IGNORECASE),
)

# Checked in order; the first header present identifies the client.
CLIENT_IP_HEADERS = ("cf-connecting-ip", "x-forwarded-for", "x-real-ip")
UNKNOWN_CLIENT = "unknown"

INTERNAL_REQUEST_HEADER = "x-internal-request"
ROOT_PATHS = ("/", "/api")

MISSING_KEY_MESSAGE = "API key required. Access denied."
INVALID_KEY_MESSAGE = "Invalid API key. Access denied."


@dataclass(frozen=True)
class RequestContext:
    """Transport-neutral view of an inbound request.

    Attributes:
        method: Upper-case HTTP method
        path: URL path, e.g. "/api/secret"
        query: Raw query string without the leading "?"
        headers: Header mapping with lower-case names
        params: Parsed routing parameters (query string merged with body)
    """

    method: str
    path: str
    query: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, str | None] = field(default_factory=dict)

    @property
    def target(self) -> str:
        return f"{self.path}?{self.query}" if self.query else self.path

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of a request that passed validation."""

    client_key: str
    serve_root_page: bool = False


def is_malicious_request(target: str) -> bool:
    """Check a request target against known attack patterns.

    Both the raw and the percent-decoded path and query are checked. A
    target that cannot be parsed counts as malicious.
    """
    try:
        parts = urlsplit(target)
        candidates = [parts.path, parts.query]
        candidates += [unquote_plus(part) for part in candidates]
    except ValueError:
        return True

    return any(pattern.search(text) for text in candidates for pattern in MALICIOUS_PATTERNS)


def client_key_from_headers(headers: Mapping[str, str]) -> str:
    for name in CLIENT_IP_HEADERS:
        value = headers.get(name)
        if value:
            # x-forwarded-for may carry a proxy chain; the first hop is the client
            return value.split(",")[0].strip() or UNKNOWN_CLIENT
    return UNKNOWN_CLIENT


def key_from_path(path: str) -> str | None:
    """Extract an API key embedded as a path segment (``/{key}`` or ``/api/{key}``)."""
    segments = [segment for segment in path.split("/") if segment]
    if len(segments) == 2 and segments[0] == "api":
        return segments[1]
    if len(segments) == 1 and segments[0] != "api":
        return segments[0]
    return None


def is_browser(headers: Mapping[str, str]) -> bool:
    return "text/html" in headers.get("accept", "")


class RequestValidator:
    """Composes the request checks in their fixed order.

    Example:
        ```python
        validator = RequestValidator(rate_limiter=SlidingWindowRateLimiter())
        outcome = validator.validate(ctx)  # raises a GatewayError on rejection
        ```
    """

    def __init__(
        self,
        rate_limiter: SlidingWindowRateLimiter,
        config: Settings | None = None,
    ) -> None:
        self._limiter = rate_limiter
        self._settings = config or settings

    def validate(self, ctx: RequestContext) -> ValidationOutcome:
        """Run every check against a request.

        Args:
            ctx: The inbound request

        Returns:
            ValidationOutcome naming the client and whether to serve the root page

        Raises:
            MaliciousRequestError: Target matched an attack pattern
            UnauthorizedError: API key missing or wrong
            RateLimitedError: Client exceeded its window
        """
        if is_malicious_request(ctx.target):
            logger.warning("Rejected malicious request target: %s", ctx.target)
            raise MaliciousRequestError()

        client_key = client_key_from_headers(ctx.headers)

        if self._check_auth(ctx):
            return ValidationOutcome(client_key=client_key, serve_root_page=True)

        if self._limiter.check_and_record(client_key):
            raise RateLimitedError()

        return ValidationOutcome(client_key=client_key)

    def _check_auth(self, ctx: RequestContext) -> bool:
        """Authenticate the request.

        Returns:
            True when the caller should get the HTML root page instead of an error
        """
        if not self._settings.requires_api_key:
            return False
        if (ctx.header(INTERNAL_REQUEST_HEADER) or "").lower() == "true":
            return False

        provided = ctx.params.get("key") or key_from_path(ctx.path)

        if not provided:
            path = ctx.path.rstrip("/") or "/"
            if ctx.method == "GET" and path in ROOT_PATHS and is_browser(ctx.headers):
                return True
            raise UnauthorizedError(MISSING_KEY_MESSAGE)

        if provided != self._settings.api_key:
            raise UnauthorizedError(INVALID_KEY_MESSAGE)

        return False
