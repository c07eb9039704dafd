"""
Invalid verification attempt limiter.
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger


class RedisAttemptLimiter:
    """Fixed-window counter of invalid codes per address.

    A ``max_attempts`` of 0 disables limiting. Redis outages fail open so a
    cache problem never locks residents out of verification.
    """

    KEY_PREFIX = "verification_attempts:"

    def __init__(self, redis_url: str, max_attempts: int = 5, window_seconds: int = 3600,
                 client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.logger = get_logger("gate_access.verification.limiter")
        self.redis: Optional[redis.Redis] = client

    @property
    def enabled(self) -> bool:
        return self.max_attempts > 0

    async def start(self):
        """Connect to Redis when limiting is enabled."""
        if not self.enabled or self.redis is not None:
            return
        self.redis = redis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30
        )
        self.logger.info("Attempt limiter started", max_attempts=self.max_attempts)

    async def stop(self):
        if self.redis is not None:
            await self.redis.aclose()
            self.logger.info("Attempt limiter stopped")

    def _key(self, address_ref: str) -> str:
        return f"{self.KEY_PREFIX}{address_ref}"

    async def is_blocked(self, address_ref: str) -> bool:
        """True once the address has used up its invalid attempts."""
        if not self.enabled or self.redis is None:
            return False
        try:
            count = await self.redis.get(self._key(address_ref))
        except RedisError as e:
            self.logger.warning("Attempt limiter unavailable", error=str(e))
            return False
        return int(count or 0) >= self.max_attempts

    async def record_failure(self, address_ref: str) -> int:
        """Count one invalid attempt; returns the attempts used in this window."""
        if not self.enabled or self.redis is None:
            return 0
        key = self._key(address_ref)
        try:
            count = await self.redis.incr(key)
            if count == 1:
                await self.redis.expire(key, self.window_seconds)
        except RedisError as e:
            self.logger.warning("Attempt limiter unavailable", error=str(e))
            return 0
        return int(count)

    async def reset(self, address_ref: str) -> None:
        if not self.enabled or self.redis is None:
            return
        try:
            await self.redis.delete(self._key(address_ref))
        except RedisError as e:
            self.logger.warning("Attempt limiter unavailable", error=str(e))

    async def health_check(self) -> bool:
        if not self.enabled:
            return True
        if self.redis is None:
            return False
        try:
            return bool(await self.redis.ping())
        except RedisError:
            return False
