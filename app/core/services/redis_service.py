"""
Redis service for the shared user cache and rate limiting counters.

"""

from __future__ import annotations

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import redis_logger, settings
from app.core.services.base import SingletonService


class RedisService(SingletonService):
    """
    Singleton Redis client for async operations.

    Failures are logged and reported through the return value (None/False)
    so that callers can degrade instead of failing the request.

    Example:
        >>> await RedisService.init("redis://localhost:6379/0")
        >>> await RedisService.set("key", "value", ttl=60)
        >>> value = await RedisService.get("key")
        >>> await RedisService.aclose()
    """

    _client: Redis | None = None
    _url: str = settings.REDIS_URL

    # INCR + EXPIRE on first hit + TTL in one round trip; returns [count, ttl]
    _RATE_LIMIT_SCRIPT = """
    local count = redis.call('INCR', KEYS[1])
    if count == 1 then
        redis.call('EXPIRE', KEYS[1], ARGV[1])
    end
    local ttl = redis.call('TTL', KEYS[1])
    return {count, ttl}
    """

    @classmethod
    async def init(cls, url: str | None = None) -> None:
        """
        Create the Redis client, closing any previous one.

        Args:
            url: The Redis connection URL. If None, uses settings.REDIS_URL.
        """
        if url is not None:
            cls._url = url

        await cls.aclose()
        cls._client = Redis.from_url(cls._url, encoding="utf-8", decode_responses=True)
        cls._initialized = True
        redis_logger.info("Redis client initialized")

    @classmethod
    async def aclose(cls) -> None:
        if cls._client is not None:
            try:
                await cls._client.aclose()
                redis_logger.info("Redis client closed successfully")
            except RedisError as e:
                redis_logger.warning(f"Error closing Redis client: {str(e)}")
            finally:
                cls._client = None
                cls._initialized = False

    @classmethod
    async def ping(cls) -> bool:
        if cls._client is None:
            return False
        try:
            return bool(await cls._client.ping())  # type: ignore[misc]
        except RedisError as e:
            redis_logger.error(f"Redis ping failed: {str(e)}")
            return False

    @classmethod
    async def get(cls, key: str) -> str | None:
        if cls._client is None:
            redis_logger.warning(f"Redis get({key}) attempted but client not initialized")
            return None
        try:
            return await cls._client.get(key)
        except RedisError as e:
            redis_logger.error(f"Redis get({key}) failed: {str(e)}")
            return None

    @classmethod
    async def set(cls, key: str, value: str, ttl: int | None = None) -> bool:
        """
        Set a value, optionally with a time-to-live in seconds.

        Returns:
            bool: True if set succeeds, False otherwise.
        """
        if cls._client is None:
            redis_logger.warning(f"Redis set({key}) attempted but client not initialized")
            return False
        try:
            await cls._client.set(key, value, ex=ttl)
            return True
        except RedisError as e:
            redis_logger.error(f"Redis set({key}) failed: {str(e)}")
            return False

    @classmethod
    async def delete(cls, key: str) -> bool:
        if cls._client is None:
            redis_logger.warning(
                f"Redis delete({key}) attempted but client not initialized"
            )
            return False
        try:
            return await cls._client.delete(key) > 0
        except RedisError as e:
            redis_logger.error(f"Redis delete({key}) failed: {str(e)}")
            return False

    @classmethod
    async def delete_pattern(cls, pattern: str) -> int:
        """
        Delete all keys matching a pattern using SCAN, never KEYS.

        Returns:
            int: Number of keys deleted.
        """
        if cls._client is None:
            return 0
        try:
            deleted_count = 0
            async for key in cls._client.scan_iter(match=pattern, count=100):
                deleted_count += await cls._client.delete(key)
            return deleted_count
        except RedisError as e:
            redis_logger.error(f"Redis delete_pattern({pattern}) failed: {str(e)}")
            return 0

    @classmethod
    async def rate_limit_incr(
        cls, key: str, window_seconds: int
    ) -> tuple[int, int] | None:
        """
        Atomically increment a window counter and read its TTL.

        Args:
            key: The rate limit key.
            window_seconds: Window length, applied on the first hit.

        Returns:
            (count, ttl) or None if Redis is unavailable.
        """
        if cls._client is None:
            redis_logger.warning(
                f"Redis rate_limit_incr({key}) attempted but client not initialized"
            )
            return None
        try:
            result = await cls._client.eval(  # type: ignore[misc]
                cls._RATE_LIMIT_SCRIPT, 1, key, str(window_seconds)
            )
            return int(result[0]), int(result[1])
        except RedisError as e:
            redis_logger.error(f"Redis rate_limit_incr({key}) failed: {str(e)}")
            return None
