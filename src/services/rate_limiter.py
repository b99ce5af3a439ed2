"""Sliding-window rate limiter guarding the upstream request budget."""

import threading
import time
from collections import defaultdict
from collections.abc import Callable


class RateLimiter:
    """
    In-memory rate limiter using sliding window algorithm.

    The upstream provider enforces an undocumented request budget, so every
    outbound call is counted against a local window first. Calls from the
    ingestion thread and from request threads share one limiter.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the rate limiter.

        Args:
            clock: Monotonic time source in seconds
        """
        # Format: {key: [timestamp1, timestamp2, ...]}
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._clock = clock
        self._lock = threading.Lock()

    def is_allowed(self, key: str, limit: int, window_seconds: int) -> tuple[bool, dict]:
        """
        Check whether a request is allowed and record it if so.

        Args:
            key: Budget identifier (e.g. upstream provider name)
            limit: Maximum number of requests allowed in the time window
            window_seconds: Time window in seconds

        Returns:
            Tuple of (is_allowed, rate_info) where rate_info carries limit,
            remaining, window_seconds and, when refused, retry_after
        """
        with self._lock:
            current_time = self._clock()
            window_start = current_time - window_seconds

            self._requests[key] = [t for t in self._requests[key] if t > window_start]
            current_count = len(self._requests[key])

            rate_info = {
                "limit": limit,
                "remaining": max(0, limit - current_count),
                "window_seconds": window_seconds,
            }

            if current_count >= limit:
                oldest_request = min(self._requests[key])
                retry_after = (oldest_request + window_seconds) - current_time
                rate_info["retry_after"] = max(1, int(retry_after))
                return False, rate_info

            self._requests[key].append(current_time)
            rate_info["remaining"] -= 1
            return True, rate_info

    def clear_key(self, key: str) -> None:
        """Clear all requests for a specific key."""
        with self._lock:
            self._requests.pop(key, None)

    def clear_all(self) -> None:
        """Clear all stored requests."""
        with self._lock:
            self._requests.clear()

    def get_stats(self, key: str) -> dict:
        """Get current request count and timestamps for a key."""
        with self._lock:
            timestamps = list(self._requests.get(key, []))
        return {
            "key": key,
            "current_requests": len(timestamps),
            "request_timestamps": timestamps,
        }
