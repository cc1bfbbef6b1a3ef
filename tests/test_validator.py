"""
Tests for request validation: attack patterns, API keys and rate limiting.
"""

import pytest
from conftest import make_settings

from ptgen_gateway.errors import MaliciousRequestError, RateLimitedError, UnauthorizedError
from ptgen_gateway.services import RequestContext, RequestValidator, SlidingWindowRateLimiter
from ptgen_gateway.services.validator import (
    UNKNOWN_CLIENT,
    client_key_from_headers,
    is_malicious_request,
    key_from_path,
)


def make_validator(clock, max_requests=30, **overrides):
    limiter = SlidingWindowRateLimiter(window_ms=60_000, max_requests=max_requests, clock=clock)
    return RequestValidator(limiter, make_settings(**overrides))


@pytest.mark.parametrize(
    "target",
    [
        "/../etc/passwd",
        "/?url=..%2F..%2Fetc%2Fpasswd",
        "/?query=javascript:alert(1)",
        "/?query=%3Ciframe%20src%3Dx%3E",
        "/?query=%3Cscript%3E%3C/script%3E+vbscript:x",
        "/api/<embed>",
        "//[::1",
    ],
)
def test_malicious_targets(target):
    assert is_malicious_request(target) is True


@pytest.mark.parametrize(
    "target",
    [
        "/",
        "/?source=douban&sid=1292052",
        "/?url=https%3A%2F%2Fwww.imdb.com%2Ftitle%2Ftt0111161%2F",
        "/?query=%E8%82%96%E7%94%B3%E5%85%8B",
        "/api/secret",
    ],
)
def test_benign_targets(target):
    assert is_malicious_request(target) is False


def test_client_key_header_precedence():
    headers = {"x-real-ip": "10.0.0.3", "x-forwarded-for": "10.0.0.2, 172.16.0.1"}
    assert client_key_from_headers(headers) == "10.0.0.2"

    headers["cf-connecting-ip"] = "10.0.0.1"
    assert client_key_from_headers(headers) == "10.0.0.1"

    assert client_key_from_headers({}) == UNKNOWN_CLIENT


def test_key_from_path():
    assert key_from_path("/secret") == "secret"
    assert key_from_path("/api/secret") == "secret"
    assert key_from_path("/api") is None
    assert key_from_path("/") is None
    assert key_from_path("/a/b") is None


def test_open_access_without_key(clock):
    """No API key configured: every request passes auth."""
    validator = make_validator(clock)
    outcome = validator.validate(RequestContext("GET", "/", headers={"x-real-ip": "1.2.3.4"}))

    assert outcome.client_key == "1.2.3.4"
    assert outcome.serve_root_page is False


def test_placeholder_key_means_open_access(clock):
    validator = make_validator(clock, api_key="your-secret-api-key-here")
    assert validator.validate(RequestContext("GET", "/")).serve_root_page is False


def test_key_required(clock):
    validator = make_validator(clock, api_key="secret")

    with pytest.raises(UnauthorizedError, match="API key required"):
        validator.validate(RequestContext("GET", "/", params={"source": "imdb"}))

    with pytest.raises(UnauthorizedError, match="Invalid API key"):
        validator.validate(RequestContext("GET", "/", params={"key": "wrong"}))

    validator.validate(RequestContext("GET", "/", params={"key": "secret"}))
    validator.validate(RequestContext("GET", "/secret"))
    validator.validate(RequestContext("POST", "/api/secret"))


def test_internal_requests_skip_auth(clock):
    validator = make_validator(clock, api_key="secret")
    ctx = RequestContext("GET", "/", headers={"x-internal-request": "true"})

    assert validator.validate(ctx).serve_root_page is False


def test_browser_root_without_key_gets_root_page(clock):
    validator = make_validator(clock, api_key="secret")
    browser = {"accept": "text/html,application/xhtml+xml"}

    assert validator.validate(RequestContext("GET", "/", headers=browser)).serve_root_page is True
    assert validator.validate(RequestContext("GET", "/api", headers=browser)).serve_root_page is True

    # non-browser clients and non-GET methods still need the key
    with pytest.raises(UnauthorizedError):
        validator.validate(RequestContext("GET", "/"))
    with pytest.raises(UnauthorizedError):
        validator.validate(RequestContext("POST", "/", headers=browser))


def test_malicious_check_runs_before_auth(clock):
    """A traversal attempt is refused as malicious even without a key."""
    validator = make_validator(clock, api_key="secret")

    with pytest.raises(MaliciousRequestError):
        validator.validate(RequestContext("GET", "/", query="url=../../etc/passwd"))


def test_rate_limit(clock):
    validator = make_validator(clock, max_requests=2)
    ctx = RequestContext("GET", "/", headers={"cf-connecting-ip": "9.9.9.9"})

    validator.validate(ctx)
    validator.validate(ctx)
    with pytest.raises(RateLimitedError):
        validator.validate(ctx)

    # another client is unaffected
    validator.validate(RequestContext("GET", "/", headers={"cf-connecting-ip": "8.8.8.8"}))
