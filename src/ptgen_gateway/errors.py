"""Error taxonomy for the gateway.

Every failure that crosses a component boundary is one of these types.
The request handler turns them into JSON envelopes using ``status_code``;
anything else reaching the handler is treated as an internal error.
"""

NONE_EXIST_ERROR = "The corresponding resource does not exist."
NO_RESULTS_ERROR = "未找到查询的结果 | No results found for the given query"
INTERNAL_ERROR = "Internal Server Error. Please contact the administrator."


class GatewayError(Exception):
    """Base class for typed gateway failures."""

    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(GatewayError):
    """Malformed request parameters. Never retried."""

    status_code = 400
    default_message = "Invalid parameters"


class UnauthorizedError(ValidationError):
    """Missing or wrong API key."""

    status_code = 401
    default_message = "API key required. Access denied."


class MaliciousRequestError(ValidationError):
    """Request target matched a known attack pattern."""

    status_code = 403
    default_message = "Malicious request detected. Access denied."


class NotFoundError(GatewayError):
    """Upstream confirmed the resource (or any search result) does not exist."""

    status_code = 404
    default_message = NONE_EXIST_ERROR


class UpstreamTransientError(GatewayError):
    """Upstream failed in a way that may succeed later (5xx, bad payload, anti-bot)."""

    status_code = 502
    default_message = "Upstream request failed"


class UpstreamTimeoutError(UpstreamTransientError):
    """Upstream call was cancelled by its timeout."""

    status_code = 504
    default_message = "Upstream request timeout"


class RateLimitedError(GatewayError):
    """Rejected by this gateway's limiter or by an upstream 429."""

    status_code = 429
    default_message = "Rate limit exceeded. Please try again later."


class InternalError(GatewayError):
    """Unexpected failure converted at the outermost boundary."""

    status_code = 500
    default_message = INTERNAL_ERROR
