from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis

from chat_sync.application.ports.rate_limit import RateLimitDecision
from chat_sync.config import settings

logger = logging.getLogger(__name__)


class RedisRateLimiter:
    """Fixed-window send counter per user.

    The first send in a window creates the counter and sets its expiry; the
    window resets when the key expires.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        limit: int = settings.SEND_RATE_LIMIT,
        window_seconds: int = settings.SEND_RATE_WINDOW_SECONDS,
        key_prefix: str = "ratelimit:send:",
    ) -> None:
        self._redis = redis
        self._limit = limit
        self._window_seconds = window_seconds
        self._key_prefix = key_prefix

    async def check_send_allowed(self, user_id: str) -> RateLimitDecision:
        key = f"{self._key_prefix}{user_id}"
        pipe = self._redis.pipeline()
        pipe.incr(key)
        pipe.ttl(key)
        count, ttl = await pipe.execute()
        if ttl is None or ttl < 0:
            await self._redis.expire(key, self._window_seconds)
            ttl = self._window_seconds

        reset_at = datetime.now(timezone.utc) + timedelta(seconds=int(ttl))
        allowed = int(count) <= self._limit
        if not allowed:
            logger.info("Send rate limit hit user=%s count=%s", user_id, count)
        return RateLimitDecision(
            allowed=allowed,
            remaining=max(0, self._limit - int(count)),
            limit=self._limit,
            reset_at=reset_at,
        )
