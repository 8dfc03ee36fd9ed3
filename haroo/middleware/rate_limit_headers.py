"""
Rate Limit Headers Middleware - expose limiter state to clients.

Reads request.state.rate_limit_info (set by rate_limit_user_only) and adds
X-RateLimit-Limit, X-RateLimit-Remaining and, when limited, Retry-After.
Responses from routes without a limiter get no headers.
"""

from starlette.middleware.base import BaseHTTPMiddleware


class RateLimitHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)

        info = getattr(request.state, "rate_limit_info", None)
        if not info:
            return response

        if "limit" in info:
            response.headers["X-RateLimit-Limit"] = str(info["limit"])
        if "remaining" in info:
            response.headers["X-RateLimit-Remaining"] = str(info["remaining"])
        if not info.get("allowed", True) and info.get("retry_after") is not None:
            response.headers["Retry-After"] = str(info["retry_after"])

        return response
