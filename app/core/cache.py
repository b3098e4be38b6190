"""
Redis helpers shared between workers
Without REDIS_URL (or when Redis is down) every call degrades to a local answer.
"""
import json
import logging
from typing import Optional, Any

import redis.asyncio as redis

from config import settings

logger = logging.getLogger(__name__)


class CacheManager:
    """Async Redis connection owned by the application lifespan"""

    def __init__(self):
        self.redis_client: Optional[redis.Redis] = None
        self.enabled = False

    async def connect(self, redis_url: Optional[str] = None):
        redis_url = redis_url or settings.REDIS_URL
        if not redis_url:
            logger.info("Redis URL not configured. Shared sync memo disabled.")
            self.enabled = False
            return

        try:
            self.redis_client = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
            await self.redis_client.ping()
            self.enabled = True
            logger.info("Redis cache connected")
        except Exception as e:
            logger.warning(f"Redis connection failed: {e}. Continuing without cache.")
            self.redis_client = None
            self.enabled = False

    async def disconnect(self):
        if self.redis_client:
            await self.redis_client.aclose()
        self.redis_client = None
        self.enabled = False

    async def add(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """
        Store ``key`` only if it does not exist yet (SET NX).

        True when the key was added, or when Redis is unavailable (the caller
        then relies on its own in-process bookkeeping).
        """
        if not self.enabled or not self.redis_client:
            return True

        try:
            added = await self.redis_client.set(key, json.dumps(value), ex=ttl, nx=True)
            return bool(added)
        except Exception as e:
            logger.warning(f"Cache add error: {e}")
            return True


# Global cache manager instance
cache_manager = CacheManager()
