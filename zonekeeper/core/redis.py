"""Redis connection and utilities"""
from typing import Optional
import redis.asyncio as aioredis
from redis.asyncio.lock import Lock

from zonekeeper.core.config import settings


class RedisClient:
    """Redis client wrapper"""

    def __init__(self, url: Optional[str] = None):
        self.url = url if url is not None else settings.REDIS_URL
        self.redis: Optional[aioredis.Redis] = None

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    async def connect(self):
        """Connect to Redis when a URL is configured"""
        if not self.url:
            return
        self.redis = await aioredis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True
        )

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.close()
            self.redis = None

    def lock(self, name: str, timeout: Optional[int] = None) -> Optional[Lock]:
        """Distributed lock shared by every process using this Redis"""
        if not self.redis:
            return None
        return self.redis.lock(
            f"zonekeeper:lock:{name}",
            timeout=timeout or settings.ZONE_LOCK_TIMEOUT,
            blocking_timeout=timeout or settings.ZONE_LOCK_TIMEOUT,
        )


redis_client = RedisClient()
