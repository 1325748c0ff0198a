"""
Hybrid in-memory + Redis rate limiting utilities
Counters live in process memory and are synced to Redis periodically.
Without Redis configured the limiter runs from memory alone.
"""

import logging
import time
from threading import Lock
from typing import Callable, Optional

import redis
from fastapi import HTTPException, Request

from .config import REDIS_DB, REDIS_HOST, REDIS_PASSWORD, REDIS_PORT, REDIS_SSL, REDIS_URL

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None

# In-memory counters
# Format: {key: {'count': int, 'reset_time': int, 'last_redis_sync': int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

MEMORY_CACHE_SYNC_INTERVAL = 10  # Sync to Redis every 10 seconds
MEMORY_CACHE_CLEANUP_INTERVAL = 60  # Clean up expired entries every 60 seconds
last_cleanup_time = 0


def redis_configured() -> bool:
    return bool(REDIS_URL or REDIS_HOST)


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create the Redis client, None when Redis is not configured

    Raises:
        redis.RedisError: Redis is configured but unreachable
    """
    global redis_client

    if redis_client is not None or not redis_configured():
        return redis_client

    logger.info("🔄 Initializing Redis connection...")

    options = {
        "decode_responses": True,
        "socket_connect_timeout": 15,
        "socket_timeout": 30,
        "retry_on_timeout": True,
        "health_check_interval": 30,
        "max_connections": 20,
    }

    if REDIS_URL:
        # Mask password in URL for logging
        if "@" in REDIS_URL:
            url_parts = REDIS_URL.split("@")
            protocol = url_parts[0].split(":")[0]
            masked_url = f"{protocol}:****@{url_parts[1]}"
        else:
            masked_url = "****"
        logger.info(f"📡 Using Redis URL connection: {masked_url}")
        client = redis.from_url(REDIS_URL, **options)
    else:
        logger.info(
            f"📡 Using Redis at {REDIS_HOST}:{REDIS_PORT} db={REDIS_DB} "
            f"({'SSL' if REDIS_SSL else 'no SSL'}, password {'set' if REDIS_PASSWORD else 'not set'})"
        )
        client = redis.Redis(
            host=REDIS_HOST,
            port=REDIS_PORT,
            password=REDIS_PASSWORD,
            db=REDIS_DB,
            ssl=REDIS_SSL,
            **options,
        )

    try:
        client.ping()
    except redis.RedisError as e:
        logger.error(f"❌ Failed to connect to Redis: {e}")
        raise

    logger.info("✅ Redis connected successfully")
    redis_client = client
    return redis_client


def reset_rate_limits() -> None:
    """Drop all in-memory counters"""
    global last_cleanup_time
    with cache_lock:
        memory_cache.clear()
    last_cleanup_time = 0


def cleanup_expired_cache():
    """Remove expired entries from memory cache"""
    global last_cleanup_time
    current_time = int(time.time())

    if current_time - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired_keys = [
            k for k, v in memory_cache.items() if current_time >= v.get("reset_time", 0)
        ]
        for k in expired_keys:
            del memory_cache[k]

        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired rate limit entries")

    last_cleanup_time = current_time


def _new_window(current_time: int, window_seconds: int) -> dict:
    return {
        "count": 0,
        "reset_time": current_time + window_seconds,
        "last_redis_sync": current_time,
    }


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: Optional[redis.Redis] = None
) -> tuple[bool, int, int]:
    """Check if rate limit is exceeded

    Memory is checked first; Redis (when given) seeds a new window and is
    written every MEMORY_CACHE_SYNC_INTERVAL seconds so several workers
    converge on one count.

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    current_time = int(time.time())

    cleanup_expired_cache()

    with cache_lock:
        if key not in memory_cache:
            memory_cache[key] = _new_window(current_time, window_seconds)
            if client is not None:
                try:
                    redis_count = client.get(key)
                    redis_ttl = client.ttl(key)
                    if redis_count and redis_ttl > 0:
                        memory_cache[key] = {
                            "count": int(redis_count),
                            "reset_time": current_time + redis_ttl,
                            "last_redis_sync": current_time,
                        }
                except redis.RedisError as e:
                    logger.warning(f"⚠️ Failed to load {key} from Redis, using memory only: {e}")

        cache_entry = memory_cache[key]

        if current_time >= cache_entry["reset_time"]:
            cache_entry.update(_new_window(current_time, window_seconds))
            cache_entry["last_redis_sync"] = 0

        current_count = cache_entry["count"]
        is_allowed = current_count < limit

        if is_allowed:
            cache_entry["count"] += 1

        if client is not None:
            time_since_sync = current_time - cache_entry.get("last_redis_sync", 0)
            if time_since_sync >= MEMORY_CACHE_SYNC_INTERVAL:
                try:
                    client.set(key, cache_entry["count"], ex=window_seconds)
                    cache_entry["last_redis_sync"] = current_time
                    logger.debug(f"📡 Synced {key} to Redis: {cache_entry['count']}/{limit}")
                except redis.RedisError as e:
                    logger.warning(f"⚠️ Failed to sync {key} to Redis: {e}")

        ttl = cache_entry["reset_time"] - current_time
        return is_allowed, cache_entry["count"], max(0, ttl)


def organization_key(request: Request) -> str:
    """Rate limit per organization, falling back to client IP"""
    organization_id = request.headers.get("X-Organization-Id")
    if organization_id:
        return f"org:{organization_id}"

    client_ip = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
    return f"ip:{client_ip}"


async def rate_limit_dependency(
    request: Request,
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
    key_func: Callable[[Request], str] = organization_key,
):
    """
    FastAPI dependency for rate limiting

    Args:
        request: FastAPI request object
        limit: Maximum requests allowed
        window_seconds: Time window in seconds
        key_prefix: Prefix for the counter key
        key_func: Builds the per-caller part of the key
    """
    try:
        client = get_redis_client()
    except redis.RedisError:
        logger.warning("⚠️ Redis unavailable, rate limiting from memory only")
        client = None

    key = f"{key_prefix}:{key_func(request)}"
    is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, client)

    if not is_allowed:
        logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
        raise HTTPException(
            status_code=429,
            detail={
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after": ttl,
                "limit": limit,
                "window_seconds": window_seconds,
            },
            headers={"Retry-After": str(ttl)},
        )

    request.state.rate_limit_remaining = limit - current_count
    request.state.rate_limit_limit = limit
    request.state.rate_limit_reset = int(time.time()) + ttl


def create_rate_limiter(
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
    key_func: Callable[[Request], str] = organization_key,
):
    """
    Create a rate limiter dependency with specific parameters

    Example usage:
        suggestion_rate_limit = create_rate_limiter(limit=30, window_seconds=60, key_prefix="suggestions")

        @router.post("/suggestions")
        async def create_suggestions(..., _: None = Depends(suggestion_rate_limit)):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix, key_func)

    return rate_limiter
