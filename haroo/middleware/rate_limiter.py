"""
Per-user request limiter for mutation endpoints.

Mode requests, messages, trace writes, likes and reports all count against
one sliding window per user kept in a Redis sorted set. When Redis cannot
answer, the limiter fails open unless RATE_LIMIT_FAIL_OPEN is off; the
storage constraints still hold either way.
"""

import time

from haroo.config import settings
from haroo.infrastructure.observability.logging import get_logger
from haroo.services.redis_client import fast_redis

logger = get_logger(__name__)

KEY_PREFIX = "haroo:rl"

# KEYS[1] window key; ARGV limit, window, now, member.
# Returns {admitted, count_in_window, oldest_score}
SLIDING_WINDOW_SCRIPT = """
local now = tonumber(ARGV[3])
local window = tonumber(ARGV[2])
redis.call('ZREMRANGEBYSCORE', KEYS[1], '-inf', now - window)
local count = redis.call('ZCARD', KEYS[1])
if count >= tonumber(ARGV[1]) then
    local head = redis.call('ZRANGE', KEYS[1], 0, 0, 'WITHSCORES')
    return {0, count, tonumber(head[2] or 0)}
end
redis.call('ZADD', KEYS[1], now, ARGV[4])
redis.call('EXPIRE', KEYS[1], window * 2)
return {1, count + 1, 0}
"""


def _info(
    allowed: bool,
    limit: int,
    remaining: int,
    retry_after: int | None = None,
    window_seconds: int | None = None,
    error: str | None = None,
) -> dict:
    info = {"allowed": allowed, "limit": limit, "remaining": remaining, "retry_after": retry_after}
    if window_seconds is not None:
        info["window_seconds"] = window_seconds
    if error:
        info["error"] = error
    return info


class RateLimiter:
    def __init__(self, default_limit: int = 60, window_seconds: int = 60, fail_open: bool = True):
        self.default_limit = default_limit
        self.window_seconds = window_seconds
        self.fail_open = fail_open

    async def check_rate_limit(
        self, key: str, limit: int | None = None, window_seconds: int | None = None
    ) -> tuple[bool, dict]:
        """
        Count one request against `key`.

        Returns:
            (allowed, info); info carries limit, remaining and retry_after
            (seconds) plus an error code when Redis could not decide.
        """
        limit = limit or self.default_limit
        window = window_seconds or self.window_seconds

        client = fast_redis.client
        if client is None:
            logger.warning("Rate limiter has no Redis connection", fail_open=self.fail_open)
            return self._undecided(limit, "redis_not_initialized")

        now = int(time.time())
        try:
            admitted, count, oldest = await client.eval(
                SLIDING_WINDOW_SCRIPT,
                1,
                f"{KEY_PREFIX}:{key}",
                limit,
                window,
                now,
                f"{now}:{time.time_ns()}",
            )
        except Exception as e:
            logger.error("Rate limiter Redis error", key=key, error=str(e), error_type=type(e).__name__)
            return self._undecided(limit, "rate_limiter_error")

        if admitted:
            return True, _info(True, limit, max(0, limit - int(count)), window_seconds=window)

        oldest = int(oldest or 0)
        retry_after = max(1, oldest + window - now) if oldest else window
        return False, _info(False, limit, 0, retry_after=retry_after, window_seconds=window)

    async def check_user_rate_limit(self, user_id: str, limit: int | None = None) -> tuple[bool, dict]:
        return await self.check_rate_limit(
            f"user:{user_id}",
            limit=limit or settings.RATE_LIMIT_USER_PER_MINUTE,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        )

    def _undecided(self, limit: int, error: str) -> tuple[bool, dict]:
        if self.fail_open:
            return True, _info(True, limit, limit, error=error)
        return False, _info(False, limit, 0, error=error)


rate_limiter = RateLimiter(
    default_limit=settings.RATE_LIMIT_USER_PER_MINUTE,
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    fail_open=settings.RATE_LIMIT_FAIL_OPEN,
)
