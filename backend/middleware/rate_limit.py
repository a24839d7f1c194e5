"""
In-memory rate limiting for the self-service promotion endpoints.

Sliding-window counter per (client, route). Edge concern only: the core
services never consult it. Not shared across workers.
"""
import time
import logging
from collections import defaultdict, deque

from fastapi import Request

from domain.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limiter keyed by arbitrary strings."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._hits: dict[str, deque] = defaultdict(deque)

    def reset(self):
        self._hits.clear()

    def _window(self, key: str, window_seconds: int) -> deque:
        hits = self._hits[key]
        cutoff = self._clock() - window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def check(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Record a hit and return True, or return False if the window is full."""
        hits = self._window(key, window_seconds)
        if len(hits) >= max_requests:
            return False
        hits.append(self._clock())
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        return max(0, max_requests - len(self._window(key, window_seconds)))


# Global rate limiter instance
limiter = RateLimiter()


def _client_key(request: Request) -> str:
    # Authenticated callers are limited per token, anonymous ones per IP
    auth = request.headers.get("Authorization")
    if auth:
        return f"auth:{hash(auth)}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    FastAPI dependency factory for rate limiting.

    Usage:
        @router.post("/vendor/apply", dependencies=[Depends(rate_limit(5, 3600))])
    """
    async def _check_rate_limit(request: Request):
        client = _client_key(request)
        route_path = request.url.path
        key = f"{client}:{route_path}"

        if not limiter.check(key, max_requests, window_seconds):
            remaining = limiter.remaining(key, max_requests, window_seconds)
            logger.warning(
                f"Rate limit exceeded: {client} on {route_path} "
                f"({max_requests}/{window_seconds}s)"
            )
            raise RateLimitError(
                f"Rate limit exceeded. Maximum {max_requests} requests "
                f"per {window_seconds} seconds. Try again later.",
                details={"limit": max_requests, "remaining": remaining, "windowSeconds": window_seconds},
                retry_after=window_seconds,
            )

    return _check_rate_limit
