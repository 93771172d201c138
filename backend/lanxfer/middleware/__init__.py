"""HTTP middleware."""

from lanxfer.middleware.security import RateLimiter, SecurityHeadersMiddleware

__all__ = ["RateLimiter", "SecurityHeadersMiddleware"]
