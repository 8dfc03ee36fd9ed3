"""
Rate Limit Dependencies - per-user limits for mutation endpoints.

Usage:
    @router.post("/my-endpoint")
    async def my_endpoint(
        principal: Principal = Depends(auth_dependency),
        _rate: None = Depends(rate_limit_user_only),
    ):
        ...
"""

from fastapi import Depends, HTTPException, Request, status

from haroo.auth.verify import Principal, auth_dependency
from haroo.config import settings
from haroo.infrastructure.observability.logging import get_logger
from haroo.middleware.rate_limiter import rate_limiter

logger = get_logger(__name__)


async def rate_limit_user_only(
    request: Request,
    principal: Principal = Depends(auth_dependency),
) -> None:
    """
    Raises:
        HTTPException: 429 if the caller exceeded the per-user limit
    """
    if not settings.RATE_LIMIT_ENABLED:
        return

    allowed, info = await rate_limiter.check_user_rate_limit(principal.user_id)

    # Read by RateLimitHeadersMiddleware
    request.state.rate_limit_info = info

    if not allowed:
        logger.warning(
            "User rate limit exceeded",
            user_id=principal.user_id,
            limit=info["limit"],
            retry_after=info["retry_after"],
            path=request.url.path,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "rate_limit_exceeded",
                "message": f"Too many requests. Try again in {info['retry_after']} seconds.",
                "limit": info["limit"],
                "retry_after": info["retry_after"],
            },
            headers={"Retry-After": str(info["retry_after"])},
        )
