"""Sliding-window rate limiter.

Each client key owns a list of request timestamps (milliseconds). A request
is admitted while fewer than ``max_requests`` timestamps fall inside the
trailing window. Memory is bounded only by :meth:`SlidingWindowRateLimiter.sweep`,
which runs opportunistically from ``check_and_record`` at most once per
cleanup interval: a key whose last request left the window keeps its entry
until the next sweep.
"""

import logging
import time
from collections.abc import Callable

from ptgen_gateway.config import settings

logger = logging.getLogger(__name__)


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class SlidingWindowRateLimiter:
    """Per-client sliding-window request counter.

    The limiter is owned by a single event loop and holds no locks.
    Construct one per application (it lives on ``app.state``) and one per
    test; there is no module-level instance.

    Example:
        ```python
        limiter = SlidingWindowRateLimiter(window_ms=60_000, max_requests=30)
        if limiter.check_and_record("203.0.113.7"):
            raise RateLimitedError()
        ```
    """

    def __init__(
        self,
        window_ms: int | None = None,
        max_requests: int | None = None,
        cleanup_interval_ms: int | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the limiter.

        Args:
            window_ms: Trailing window length. Defaults to settings.
            max_requests: Admissions allowed per window. Defaults to settings.
            cleanup_interval_ms: Minimum time between sweeps. Defaults to settings.
            clock: Millisecond clock, monotonic by default. Tests inject a fake.
        """
        self._window_ms = window_ms or settings.rate_limit_window_ms
        self._max_requests = max_requests or settings.rate_limit_max_requests
        self._cleanup_interval_ms = (
            settings.rate_limit_cleanup_interval_ms
            if cleanup_interval_ms is None
            else cleanup_interval_ms
        )
        self._clock = clock or _monotonic_ms
        self._requests: dict[str, list[int]] = {}
        self._last_cleanup = self._clock()

    def check_and_record(self, client_key: str) -> bool:
        """Check the client's window and record the request if admitted.

        Args:
            client_key: Client identity (usually the forwarded IP)

        Returns:
            True if the request is rate limited, False if it was admitted
        """
        now = self._clock()

        if now - self._last_cleanup > self._cleanup_interval_ms:
            self.sweep(now)

        window_start = now - self._window_ms
        recent = [t for t in self._requests.get(client_key, ()) if t >= window_start]

        if len(recent) >= self._max_requests:
            self._requests[client_key] = recent
            logger.info("Rate limit hit for client %s (%d in window)", client_key, len(recent))
            return True

        recent.append(now)
        self._requests[client_key] = recent
        return False

    def sweep(self, now: int | None = None) -> int:
        """Evict clients with no timestamps left in the window.

        Idempotent: a second sweep at the same instant removes nothing.

        Args:
            now: Current time in ms. Defaults to the limiter's clock.

        Returns:
            Number of client keys removed
        """
        now = self._clock() if now is None else now
        window_start = now - self._window_ms
        removed = 0

        for client_key in list(self._requests):
            recent = [t for t in self._requests[client_key] if t >= window_start]
            if recent:
                self._requests[client_key] = recent
            else:
                del self._requests[client_key]
                removed += 1

        self._last_cleanup = now
        if removed:
            logger.debug("Rate limiter sweep evicted %d idle clients", removed)
        return removed

    def reset(self) -> None:
        """Forget every client."""
        self._requests.clear()
        self._last_cleanup = self._clock()

    def __len__(self) -> int:
        return len(self._requests)

    def __contains__(self, client_key: object) -> bool:
        return client_key in self._requests

    @property
    def window_ms(self) -> int:
        return self._window_ms

    @property
    def max_requests(self) -> int:
        return self._max_requests
