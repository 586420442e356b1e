"""Per-zone write serialization"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from redis.exceptions import LockError

from zonekeeper.core.redis import RedisClient

logger = logging.getLogger(__name__)


class ZoneLockManager:
    """Hands out one lock per zone key.

    Writers to the same zone queue behind each other; writers to different
    zones never contend. When a connected RedisClient is supplied the lock is
    also taken in Redis so separate worker processes serialize too.
    """

    def __init__(self, redis: Optional[RedisClient] = None):
        self.redis = redis
        self._locks: Dict[str, asyncio.Lock] = {}

    def _local_lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the zone lock for the duration of the block"""
        async with self._local_lock(key):
            remote_lock = self.redis.lock(key) if self.redis and self.redis.enabled else None
            if remote_lock is None:
                yield
                return

            acquired = await remote_lock.acquire()
            if not acquired:
                raise TimeoutError(f"Timed out waiting for zone lock {key}")
            try:
                yield
            finally:
                try:
                    await remote_lock.release()
                except LockError as e:
                    logger.warning(f"Failed to release zone lock {key}: {e}")
