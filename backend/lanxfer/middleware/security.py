"""Security middleware for headers and rate limiting."""

import math
import time
from collections import defaultdict, deque

from fastapi import status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from lanxfer.config import settings

# Relay endpoints only talk to the relay itself over WebSockets
CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'none'",
        "connect-src 'self' ws: wss:",
        "frame-ancestors 'none'",
        "base-uri 'none'",
    ]
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
}

# Paths that are polled by monitors and never limited
UNLIMITED_PATHS = frozenset({"/api/health"})


class RateLimiter:
    """Sliding-window request counter per client address."""

    def __init__(self, requests: int, window_seconds: int):
        self.requests = requests
        self.window = window_seconds
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    def _expire(self, client_id: str, now: float) -> deque[float]:
        hits = self._hits[client_id]
        while hits and hits[0] <= now - self.window:
            hits.popleft()
        return hits

    def hit(self, client_id: str) -> bool:
        """Record a request and report whether it is within the limit."""
        now = time.monotonic()
        hits = self._expire(client_id, now)
        if len(hits) >= self.requests:
            return False
        hits.append(now)
        return True

    def retry_after(self, client_id: str) -> int:
        """Whole seconds until the client may send again."""
        now = time.monotonic()
        hits = self._expire(client_id, now)
        if len(hits) < self.requests:
            return 0
        return max(1, math.ceil(hits[0] + self.window - now))

    def reset(self) -> None:
        self._hits.clear()


rate_limiter = RateLimiter(
    requests=settings.rate_limit_requests,
    window_seconds=settings.rate_limit_window_seconds,
)


def client_address(request: Request) -> str:
    """Client IP, taking the first hop of X-Forwarded-For when present."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers to HTTP responses and rate limits clients.

    BaseHTTPMiddleware only sees plain HTTP requests, so WebSocket
    connections to the relay are never rate limited.
    """

    def __init__(self, app, limiter: RateLimiter = rate_limiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next) -> Response:
        limited = request.method != "OPTIONS" and request.url.path not in UNLIMITED_PATHS
        if limited:
            client_ip = client_address(request)
            if not self.limiter.hit(client_ip):
                return Response(
                    content="Rate limit exceeded",
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    headers={"Retry-After": str(self.limiter.retry_after(client_ip))},
                )

        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response
