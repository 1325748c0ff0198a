"""
Redis caching utilities
Driving distances are cached here so repeated suggestion runs do not re-query Mapbox.
Every operation degrades to a cache miss when Redis is unavailable.
"""

import json
import logging
import time
from typing import Any, Callable, Optional

import redis

from .config import DRIVING_DISTANCE_CACHE_TTL
from .rate_limiter import get_redis_client

logger = logging.getLogger(__name__)


REDIS_RETRY_INTERVAL = 60  # Seconds before reconnecting after a failed connect


class Cache:
    """Redis cache wrapper with automatic serialization"""

    def __init__(self, retry_interval: int = REDIS_RETRY_INTERVAL, clock: Callable[[], float] = time.monotonic):
        self.redis_client = None
        self.retry_interval = retry_interval
        self._clock = clock
        self._retry_at = 0.0

    def _get_client(self):
        """Lazy load Redis client, skipping reconnects for a while after a failure"""
        if self.redis_client is None:
            if self._clock() < self._retry_at:
                return None
            try:
                self.redis_client = get_redis_client()
            except redis.RedisError as e:
                self._retry_at = self._clock() + self.retry_interval
                logger.warning(f"⚠️ Redis cache unavailable, retrying in {self.retry_interval}s: {e}")
                return None
        return self.redis_client

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        client = self._get_client()
        if not client:
            return None

        try:
            value = client.get(key)
        except redis.RedisError as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

        if value:
            logger.debug(f"✅ Cache HIT: {key}")
            return json.loads(value)
        logger.debug(f"❌ Cache MISS: {key}")
        return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (default 1 hour)"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.setex(key, ttl, json.dumps(value))
        except redis.RedisError as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False
        logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
        return True


# Global cache instance
cache = Cache()


def build_driving_distance_key(from_lng: float, from_lat: float, to_lng: float, to_lat: float) -> str:
    """Coordinates rounded to ~11m so nearby lookups share an entry"""
    return f"driving:{from_lng:.4f},{from_lat:.4f}:{to_lng:.4f},{to_lat:.4f}"


def get_driving_distance_cached(key: str) -> Optional[dict]:
    return cache.get(key)


def set_driving_distance_cached(key: str, value: dict, ttl: int = DRIVING_DISTANCE_CACHE_TTL) -> bool:
    return cache.set(key, value, ttl)
