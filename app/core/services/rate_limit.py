"""
Rate limiting for OTP-issuing and credential endpoints.

Counters live either in process memory or in Redis. Limits are applied per
client IP through a FastAPI dependency, and per identifier (email or phone)
through an explicit check inside the handler.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Literal

from fastapi import Request

from app.core.config import rate_limit_logger, settings
from app.core.exceptions.types import RateLimitExceededException
from app.core.services.redis_service import RedisService


@dataclass
class RateLimitResult:
    """
    Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed.
        remaining: Number of remaining requests in the current window.
        limit: The maximum number of requests allowed.
        reset_at: When the rate limit window resets.
        retry_after: Seconds until the client can retry (only if not allowed).
    """

    allowed: bool
    remaining: int
    limit: int
    reset_at: datetime
    retry_after: int | None = None


class RateLimitBackend(ABC):
    @abstractmethod
    async def check(self, key: str, limit: int, window: int) -> RateLimitResult:
        """Count one request against `key` and report whether it is allowed."""

    @abstractmethod
    async def reset(self, key: str) -> None: ...


class MemoryBackend(RateLimitBackend):
    """
    Fixed-window counters in a dictionary.

    Suitable for single-process deployments and tests. The check has no await
    between read and write, so it is atomic within the event loop.
    """

    def __init__(self):
        self._store: dict[str, tuple[int, datetime]] = {}

    async def check(self, key: str, limit: int, window: int) -> RateLimitResult:
        now = datetime.now(timezone.utc)
        count, reset_at = self._store.get(key, (0, now))
        if now >= reset_at:
            count, reset_at = 0, now + timedelta(seconds=window)

        if count >= limit:
            retry_after = max(1, int((reset_at - now).total_seconds()))
            rate_limit_logger.warning(
                f"Rate limit exceeded for key: {key}, retry after: {retry_after}s"
            )
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=limit,
                reset_at=reset_at,
                retry_after=retry_after,
            )

        self._store[key] = (count + 1, reset_at)

        return RateLimitResult(
            allowed=True,
            remaining=limit - count - 1,
            limit=limit,
            reset_at=reset_at,
        )

    async def reset(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()


class RedisBackend(RateLimitBackend):
    """
    Redis counters shared across instances.

    If Redis is unavailable the request is allowed and a warning is logged.
    """

    async def check(self, key: str, limit: int, window: int) -> RateLimitResult:
        now = datetime.now(timezone.utc)
        result = await RedisService.rate_limit_incr(key, window)

        if result is None:
            rate_limit_logger.warning(
                f"Redis error during rate limit check for key: {key}, allowing request"
            )
            return RateLimitResult(
                allowed=True,
                remaining=limit - 1,
                limit=limit,
                reset_at=now + timedelta(seconds=window),
            )

        count, ttl = result
        if ttl < 0:
            ttl = window
        reset_at = now + timedelta(seconds=ttl)

        if count > limit:
            rate_limit_logger.warning(
                f"Rate limit exceeded for key: {key}, count: {count}, retry after: {ttl}s"
            )
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=limit,
                reset_at=reset_at,
                retry_after=max(1, ttl),
            )

        return RateLimitResult(
            allowed=True,
            remaining=limit - count,
            limit=limit,
            reset_at=reset_at,
        )

    async def reset(self, key: str) -> None:
        await RedisService.delete(key)


# One process-wide store so counts survive across requests
_memory_backend = MemoryBackend()
_redis_backend = RedisBackend()


class RateLimiter:
    """
    Rate limiter bound to the configured backend.

    Example:
        >>> limiter = RateLimiter(backend="memory")
        >>> result = await limiter.check("my_key", limit=10, window=60)
        >>> if not result.allowed:
        ...     raise RateLimitExceededException(retry_after=result.retry_after)
    """

    def __init__(self, backend: Literal["memory", "redis"] | None = None):
        backend = backend or settings.RATE_LIMIT_BACKEND
        self._backend: RateLimitBackend = (
            _redis_backend if backend == "redis" else _memory_backend
        )

    async def check(self, key: str, limit: int, window: int) -> RateLimitResult:
        return await self._backend.check(key, limit, window)

    async def enforce(self, key: str, limit: int, window: int) -> RateLimitResult:
        """Check the limit and raise RateLimitExceededException when exceeded."""
        if not settings.RATE_LIMIT_ENABLED:
            return RateLimitResult(
                allowed=True,
                remaining=limit,
                limit=limit,
                reset_at=datetime.now(timezone.utc),
            )

        result = await self.check(key, limit, window)
        if not result.allowed:
            raise RateLimitExceededException(
                message=f"Rate limit exceeded. Try again in {result.retry_after} seconds.",
                retry_after=result.retry_after,
            )
        return result

    async def reset(self, key: str) -> None:
        await self._backend.reset(key)


def format_rate_limit_key(
    key_type: Literal["ip", "identifier"],
    identifier: str,
    endpoint: str,
) -> str:
    """
    Format a rate limit key with consistent structure.

    Example:
        >>> format_rate_limit_key("ip", "192.168.1.1", "/auth/login")
        'rate_limit:ip:192.168.1.1:/auth/login'
    """
    return f"rate_limit:{key_type}:{identifier}:{endpoint}"


def rate_limit_by_ip(
    limit: int | None = None,
    window: int | None = None,
    backend: Literal["memory", "redis"] | None = None,
) -> Callable[[Request], Awaitable[RateLimitResult]]:
    """
    Create a FastAPI dependency for IP-based rate limiting.

    Args:
        limit: Maximum requests allowed. Defaults to settings.OTP_RATE_LIMIT_REQUESTS.
        window: Time window in seconds. Defaults to settings.OTP_RATE_LIMIT_WINDOW.
        backend: Backend type. Defaults to settings.RATE_LIMIT_BACKEND.

    Returns:
        A FastAPI dependency function.

    Example:
        >>> @router.post("/forgot-password", dependencies=[Depends(rate_limit_by_ip())])
        ... async def forgot_password(...): ...
    """
    _limit = limit if limit is not None else settings.OTP_RATE_LIMIT_REQUESTS
    _window = window if window is not None else settings.OTP_RATE_LIMIT_WINDOW

    async def dependency(request: Request) -> RateLimitResult:
        client_ip = request.client.host if request.client else "unknown"
        key = format_rate_limit_key("ip", client_ip, request.url.path)
        return await RateLimiter(backend=backend).enforce(key, _limit, _window)

    return dependency


def rate_limit_by_identifier(
    limit: int | None = None,
    window: int | None = None,
    backend: Literal["memory", "redis"] | None = None,
) -> Callable[[str, str], Awaitable[RateLimitResult]]:
    """
    Create a per-identifier check, called from the handler once the body is parsed.

    Example:
        >>> check_identifier = rate_limit_by_identifier()
        >>> await check_identifier(data.identifier, request.url.path)
    """
    _limit = limit if limit is not None else settings.OTP_RATE_LIMIT_REQUESTS
    _window = window if window is not None else settings.OTP_RATE_LIMIT_WINDOW

    async def check(identifier: str, endpoint: str) -> RateLimitResult:
        key = format_rate_limit_key("identifier", identifier.lower(), endpoint)
        return await RateLimiter(backend=backend).enforce(key, _limit, _window)

    return check


def reset_memory_backend() -> None:
    """Drop all in-memory counters (test teardown)."""
    _memory_backend.clear()


__all__ = [
    "RateLimitResult",
    "RateLimitBackend",
    "MemoryBackend",
    "RedisBackend",
    "RateLimiter",
    "format_rate_limit_key",
    "rate_limit_by_ip",
    "rate_limit_by_identifier",
    "reset_memory_backend",
]
