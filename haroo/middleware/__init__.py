"""
Middleware components for request processing.

This package contains middleware for:
- Request context (request ID echoed on every response)
- Per-user rate limiting on mutating endpoints
"""

from haroo.middleware.rate_limit_dependencies import rate_limit_user_only
from haroo.middleware.rate_limit_headers import RateLimitHeadersMiddleware
from haroo.middleware.rate_limiter import rate_limiter
from haroo.middleware.request_context import RequestContextMiddleware

__all__ = [
    "RequestContextMiddleware",
    "RateLimitHeadersMiddleware",
    "rate_limiter",
    "rate_limit_user_only",
]
