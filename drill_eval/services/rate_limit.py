"""Per-user fixed-window rate limiting backed by Redis."""

from __future__ import annotations

import logging
import time

import redis.asyncio as redis
from redis.exceptions import RedisError

from drill_eval.application.interfaces import RateLimiterInterface

logger = logging.getLogger(__name__)


class RedisRateLimiter(RateLimiterInterface):
    """Allow ``limit`` hits per identifier per ``window_s`` seconds.

    A limit of 0 disables the check. When Redis is unreachable the limiter
    fails open and logs a warning.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        limit: int,
        window_s: int = 60,
        key_prefix: str = "drill_eval",
    ) -> None:
        self._redis = client
        self._limit = limit
        self._window_s = window_s
        self._key_prefix = key_prefix

    async def hit(self, identifier: str) -> bool:
        if self._limit <= 0:
            return True

        window = int(time.time() // self._window_s)
        key = f"{self._key_prefix}:ratelimit:evaluate:{identifier}:{window}"
        try:
            pipe = self._redis.pipeline()
            pipe.incr(key, 1)
            pipe.expire(key, self._window_s)
            count, _ = await pipe.execute()
        except RedisError:
            logger.warning("Rate limiter unavailable; allowing request", exc_info=True)
            return True

        if count > self._limit:
            logger.info("Rate limit exceeded for %s (%s/%s)", identifier, count, self._limit)
            return False
        return True


__all__ = ["RedisRateLimiter"]
