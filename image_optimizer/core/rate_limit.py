"""
Per-client fixed-window rate limiting.
"""
import math
import time
import logging
import threading
from typing import Callable, Dict, NamedTuple

logger = logging.getLogger(__name__)


class RateLimitDecision(NamedTuple):
    allowed: bool
    limit: int
    remaining: int
    reset_after: int  # seconds until the client's window resets

    def headers(self) -> Dict[str, str]:
        """RateLimit-* response headers describing this decision."""
        return {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_after),
        }


class _Window:
    __slots__ = ("started_at", "count")

    def __init__(self, started_at: float):
        self.started_at = started_at
        self.count = 0


class FixedWindowRateLimiter:
    """
    Counts requests per client key over a fixed window.

    A key's window opens on its first request and lasts window_seconds. The
    request that takes the count past max_requests is refused, as is every
    later one until the window ends.

    Args:
        max_requests: Requests allowed per window
        window_seconds: Window length in seconds
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_purge = clock()

    def hit(self, key: str) -> RateLimitDecision:
        """Record one request for key and decide whether it is allowed."""
        with self._lock:
            now = self._clock()
            if now - self._last_purge >= self.window_seconds:
                self._purge(now)

            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                window = _Window(now)
                self._windows[key] = window
            window.count += 1

            reset_after = max(0, math.ceil(window.started_at + self.window_seconds - now))
            allowed = window.count <= self.max_requests
            remaining = max(0, self.max_requests - window.count)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {key} ({window.count}/{self.max_requests})")
        return RateLimitDecision(allowed, self.max_requests, remaining, reset_after)

    def purge_expired(self) -> int:
        """Drop windows that have ended; returns how many were removed."""
        with self._lock:
            return self._purge(self._clock())

    def _purge(self, now: float) -> int:
        expired = [
            key for key, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        self._last_purge = now
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)
