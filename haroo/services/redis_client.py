"""
Shared asyncio Redis connection.

Redis only backs the per-user rate limiter, which fails open, so callers
treat `client is None` as "limiter unavailable" rather than an error.
"""

import redis.asyncio as redis

from haroo.config import settings
from haroo.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RedisConnection:
    def __init__(self, url: str | None = None, max_connections: int = 20):
        self.url = url or settings.REDIS_URL
        self.max_connections = max_connections
        self.client: redis.Redis | None = None

    async def initialize(self) -> None:
        if self.client is not None:
            return

        client = redis.Redis.from_url(
            self.url,
            max_connections=self.max_connections,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
            decode_responses=True,
        )
        try:
            await client.ping()
        except redis.RedisError as e:
            await client.aclose()
            logger.error("Redis ping failed at startup", error=str(e))
            raise RuntimeError("Redis initialization failed") from e

        self.client = client
        # Credentials stay out of the log
        logger.info("Redis connected", host=self.url.rsplit("@", 1)[-1])

    async def close(self) -> None:
        if self.client is None:
            return
        client, self.client = self.client, None
        await client.aclose()
        logger.info("Redis connection closed")

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except redis.RedisError as e:
            logger.warning("Redis ping failed", error=str(e))
            return False


fast_redis = RedisConnection()
