"""
Test suite for rate limiting.

Run all tests:
    pytest tests/services/test_rate_limit.py -v
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.config import settings
from app.core.exceptions.types import RateLimitExceededException
from app.core.services.rate_limit import (
    MemoryBackend,
    RateLimiter,
    RedisBackend,
    format_rate_limit_key,
    rate_limit_by_identifier,
    rate_limit_by_ip,
)
from app.core.services.redis_service import RedisService


class TestMemoryBackend:

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        backend = MemoryBackend()

        results = [await backend.check("k", limit=3, window=60) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results[:3]] == [2, 1, 0]
        assert 1 <= results[3].retry_after <= 60

    @pytest.mark.asyncio
    async def test_window_resets(self):
        backend = MemoryBackend()
        await backend.check("k", limit=1, window=60)
        count, _ = backend._store["k"]
        backend._store["k"] = (count, datetime.now(timezone.utc) - timedelta(seconds=1))

        assert (await backend.check("k", limit=1, window=60)).allowed is True

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        backend = MemoryBackend()
        await backend.check("a", limit=1, window=60)

        assert (await backend.check("b", limit=1, window=60)).allowed is True

    @pytest.mark.asyncio
    async def test_reset(self):
        backend = MemoryBackend()
        await backend.check("k", limit=1, window=60)

        await backend.reset("k")

        assert (await backend.check("k", limit=1, window=60)).allowed is True


class TestRedisBackend:

    @pytest.mark.asyncio
    async def test_over_limit(self):
        with patch.object(RedisService, "rate_limit_incr", new=AsyncMock(return_value=(4, 30))):
            result = await RedisBackend().check("k", limit=3, window=60)

        assert result.allowed is False
        assert result.retry_after == 30

    @pytest.mark.asyncio
    async def test_redis_down_allows(self):
        with patch.object(RedisService, "rate_limit_incr", new=AsyncMock(return_value=None)):
            result = await RedisBackend().check("k", limit=3, window=60)

        assert result.allowed is True

    @pytest.mark.asyncio
    async def test_missing_ttl_falls_back_to_window(self):
        with patch.object(RedisService, "rate_limit_incr", new=AsyncMock(return_value=(1, -1))):
            result = await RedisBackend().check("k", limit=3, window=60)

        assert result.allowed is True
        assert result.remaining == 2
        assert result.reset_at > datetime.now(timezone.utc) + timedelta(seconds=50)


class TestRateLimiter:

    @pytest.mark.asyncio
    async def test_disabled_limiter_never_counts(self):
        limiter = RateLimiter(backend="memory")

        for _ in range(5):
            await limiter.enforce("k", limit=1, window=60)

    @pytest.mark.asyncio
    async def test_enforce_raises_with_retry_after(self):
        limiter = RateLimiter(backend="memory")

        with patch.object(settings, "RATE_LIMIT_ENABLED", True):
            await limiter.enforce("k", limit=1, window=60)
            with pytest.raises(RateLimitExceededException) as exc_info:
                await limiter.enforce("k", limit=1, window=60)

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after >= 1

    def test_key_format(self):
        assert (
            format_rate_limit_key("ip", "192.168.1.1", "/auth/login")
            == "rate_limit:ip:192.168.1.1:/auth/login"
        )

    @pytest.mark.asyncio
    async def test_ip_dependency(self):
        request = MagicMock()
        request.client.host = "10.0.0.1"
        request.url.path = "/auth/forgot-password"
        dependency = rate_limit_by_ip(limit=1, window=60, backend="memory")

        with patch.object(settings, "RATE_LIMIT_ENABLED", True):
            await dependency(request)
            with pytest.raises(RateLimitExceededException):
                await dependency(request)

    @pytest.mark.asyncio
    async def test_identifier_check_is_case_insensitive(self):
        check = rate_limit_by_identifier(limit=1, window=60, backend="memory")

        with patch.object(settings, "RATE_LIMIT_ENABLED", True):
            await check("Asha@Example.com", "/auth/resend-otp")
            with pytest.raises(RateLimitExceededException):
                await check("asha@example.com", "/auth/resend-otp")
