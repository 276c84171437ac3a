"""
User snapshot cache.

Holds the non-secret profile of authenticated users so that protected
requests do not read the users table every time. The cache is an explicit
component owned by the application lifespan (``app.state.user_cache``)
rather than a module-level singleton.

Backends:
    memory: dict with per-entry expiry, swept by a background task.
    redis: JSON values with a TTL, shared by every process.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime
import time
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, ValidationError

from app.core.config import cache_logger, settings
from app.core.enums import UserRole
from app.core.services.redis_service import RedisService


class UserSnapshot(BaseModel):
    """Cached profile fields of a user. Never holds credentials."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    phone: str | None = None
    role: UserRole = UserRole.USER
    location: str | None = None
    is_active: bool = True
    created_at: datetime | None = None


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    size: int | None = 0


class UserCacheBackend(ABC):
    """Storage for serialized snapshots keyed by user id."""

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> bool: ...

    @abstractmethod
    async def clear(self) -> None: ...

    @abstractmethod
    def size(self) -> int | None: ...


class MemoryCacheBackend(UserCacheBackend):
    """
    Process-local backend.

    Expired entries are never returned; the sweep task only reclaims memory.
    """

    def __init__(self, sweep_interval: float):
        self._entries: dict[str, tuple[str, float]] = {}
        self._sweep_interval = sweep_interval
        self._sweep_task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            removed = self.sweep()
            if removed:
                cache_logger.debug(f"User cache sweep removed {removed} entries")

    def sweep(self) -> int:
        now = time.monotonic()
        expired = [key for key, (_, expires) in self._entries.items() if expires <= now]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires = entry
        if expires <= time.monotonic():
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._entries[key] = (value, time.monotonic() + ttl)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int | None:
        return len(self._entries)


class RedisCacheBackend(UserCacheBackend):
    """Shared backend on top of RedisService. Redis errors degrade to misses."""

    def __init__(self, prefix: str = "user_snapshot:"):
        self.prefix = prefix

    async def get(self, key: str) -> str | None:
        return await RedisService.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        await RedisService.set(key, value, ttl=ttl)

    async def delete(self, key: str) -> bool:
        return await RedisService.delete(key)

    async def clear(self) -> None:
        await RedisService.delete_pattern(f"{self.prefix}*")

    def size(self) -> int | None:
        return None


class UserSnapshotCache:
    """
    Cache of user snapshots with an explicit start/stop lifecycle.

    Example:
        >>> cache = UserSnapshotCache(backend="memory", ttl_seconds=60)
        >>> await cache.start()
        >>> await cache.set(UserSnapshot.model_validate(user))
        >>> snapshot = await cache.get(user.id)
        >>> await cache.stop()
    """

    KEY_PREFIX = "user_snapshot:"

    def __init__(
        self,
        backend: Literal["memory", "redis"] | None = None,
        ttl_seconds: int | None = None,
        sweep_interval_seconds: float | None = None,
    ):
        self.backend_name = backend or settings.USER_CACHE_BACKEND
        self.ttl = ttl_seconds or settings.USER_CACHE_TTL_SECONDS
        if self.backend_name == "redis":
            self._backend: UserCacheBackend = RedisCacheBackend(self.KEY_PREFIX)
        else:
            self._backend = MemoryCacheBackend(
                sweep_interval_seconds or settings.USER_CACHE_SWEEP_INTERVAL_SECONDS
            )
        self._stats = CacheStats()
        self._started = False

    @property
    def backend(self) -> UserCacheBackend:
        return self._backend

    def _key(self, user_id: UUID | str) -> str:
        return f"{self.KEY_PREFIX}{user_id}"

    async def start(self) -> None:
        await self._backend.start()
        self._started = True
        cache_logger.info(f"User cache started: backend={self.backend_name}, ttl={self.ttl}s")

    async def stop(self) -> None:
        await self._backend.stop()
        self._started = False
        cache_logger.info("User cache stopped")

    @property
    def started(self) -> bool:
        return self._started

    async def get(self, user_id: UUID | str) -> UserSnapshot | None:
        raw = await self._backend.get(self._key(user_id))
        if raw is None:
            self._stats.misses += 1
            return None
        try:
            snapshot = UserSnapshot.model_validate_json(raw)
        except ValidationError:
            cache_logger.warning(f"Discarding unreadable snapshot for user_id={user_id}")
            await self._backend.delete(self._key(user_id))
            self._stats.misses += 1
            return None
        self._stats.hits += 1
        return snapshot

    async def set(self, snapshot: UserSnapshot) -> None:
        await self._backend.set(self._key(snapshot.id), snapshot.model_dump_json(), self.ttl)
        self._stats.sets += 1

    async def invalidate(self, user_id: UUID | str) -> None:
        if await self._backend.delete(self._key(user_id)):
            self._stats.deletes += 1
        cache_logger.debug(f"User cache invalidated: user_id={user_id}")

    async def clear(self) -> None:
        await self._backend.clear()
        cache_logger.info("User cache cleared")

    def stats(self) -> dict[str, int | None]:
        self._stats.size = self._backend.size()
        return asdict(self._stats)


__all__ = [
    "UserSnapshot",
    "UserSnapshotCache",
    "UserCacheBackend",
    "MemoryCacheBackend",
    "RedisCacheBackend",
]
