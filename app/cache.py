"""
Redis cache used as a fast path for webhook deduplication.
Fails open: without Redis every call is a miss and callers fall back to the database.
"""
import json
import logging
from typing import Any, Optional

import redis

from .config import REDIS_URL

logger = logging.getLogger(__name__)


def get_redis_client() -> Optional[redis.Redis]:
    """Create a Redis client from REDIS_URL, or None when caching is not configured"""
    if not REDIS_URL:
        return None

    client = redis.from_url(
        REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30,
    )
    client.ping()
    logger.info("Redis connected successfully via URL")
    return client


class Cache:
    """Redis cache wrapper with automatic serialization"""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.redis_client = client
        self._disabled = False

    def _get_client(self):
        """Lazy load Redis client"""
        if self.redis_client is None and not self._disabled:
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Redis cache unavailable: {e}")
                return None
            if self.redis_client is None:
                self._disabled = True
        return self.redis_client

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        client = self._get_client()
        if not client:
            return None

        try:
            value = client.get(key)
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except Exception as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (default 1 hour)"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.setex(key, ttl, json.dumps(value))
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False


# Global cache instance
cache = Cache()
