"""
In-memory rate limiting for the checkout endpoint.

Every successful POST /checkout takes stock out of circulation for the
reservation TTL, so a single client is capped at
settings.checkout_rate_limit reservations per checkout_rate_window_seconds.

Uses a simple sliding-window counter per (IP, route). Not shared between
worker processes.
"""
import time
import logging
from collections import defaultdict

from fastapi import Request

from config import settings
from domain.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Simple in-memory sliding-window rate limiter.

    Tracks request timestamps per key.
    """

    def __init__(self):
        # {key: [timestamp1, timestamp2, ...]}
        self._requests: dict[str, list[float]] = defaultdict(list)

    def _cleanup(self, key: str, window_seconds: int):
        """Remove expired timestamps from the window."""
        cutoff = time.monotonic() - window_seconds
        self._requests[key] = [ts for ts in self._requests[key] if ts > cutoff]

    def check(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """
        Record a request for `key` if it fits in the window.

        Returns:
            True if allowed, False if rate-limited
        """
        self._cleanup(key, window_seconds)

        if len(self._requests[key]) >= max_requests:
            return False

        self._requests[key].append(time.monotonic())
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        self._cleanup(key, window_seconds)
        return max(0, max_requests - len(self._requests[key]))

    def reset(self):
        self._requests.clear()


# Global rate limiter instance
_limiter = RateLimiter()


def get_limiter() -> RateLimiter:
    return _limiter


def rate_limit(max_requests: int | None = None, window_seconds: int | None = None):
    """
    FastAPI dependency factory for rate limiting.

    Limits default to the checkout settings and are read per request, so
    they follow runtime changes to `settings`.

    Usage:
        @router.post("/checkout", dependencies=[Depends(rate_limit())])
    """
    async def _check_rate_limit(request: Request):
        limit = max_requests if max_requests is not None else settings.checkout_rate_limit
        window = window_seconds if window_seconds is not None else settings.checkout_rate_window_seconds

        client_ip = request.client.host if request.client else "unknown"
        key = f"{client_ip}:{request.url.path}"

        if not _limiter.check(key, limit, window):
            logger.warning(f"Rate limit exceeded: {client_ip} on {request.url.path} ({limit}/{window}s)")
            raise RateLimitError(
                f"Too many requests. Maximum {limit} per {window} seconds, try again later.",
                details={"limit": limit, "window_seconds": window},
                headers={
                    "Retry-After": str(window),
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return _check_rate_limit
