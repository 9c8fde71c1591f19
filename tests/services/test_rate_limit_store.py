# tests/services/test_rate_limit_store.py
"""
Tests for the rate limit counter stores.
"""

import pytest
from unittest.mock import AsyncMock, Mock

from roofguard.core.exceptions import RateLimitStoreError
from roofguard.services.rate_limit_store import (
    MemoryRateLimitStore,
    RateLimitEntry,
    RedisRateLimitStore,
)

NOW = 1_700_000_000_000
WINDOW = 60_000


class TestMemoryStore:
    """Test the in-process store"""

    @pytest.fixture
    def store(self):
        return MemoryRateLimitStore()

    async def test_first_increment_opens_window(self, store):
        entry = await store.increment("k", WINDOW, NOW)
        assert entry == RateLimitEntry(count=1, reset_at=NOW + WINDOW)

    async def test_increments_within_window(self, store):
        await store.increment("k", WINDOW, NOW)
        entry = await store.increment("k", WINDOW, NOW + 59_999)

        assert entry.count == 2
        assert entry.reset_at == NOW + WINDOW

    async def test_window_expires_at_reset_time(self, store):
        await store.increment("k", WINDOW, NOW)
        entry = await store.increment("k", WINDOW, NOW + WINDOW)

        assert entry == RateLimitEntry(count=1, reset_at=NOW + 2 * WINDOW)

    async def test_returned_entry_is_a_copy(self, store):
        entry = await store.increment("k", WINDOW, NOW)
        entry.count = 99

        assert store.get("k").count == 1

    async def test_sweep(self, store):
        await store.increment("old", WINDOW, NOW)
        await store.increment("new", WINDOW, NOW + 30_000)

        assert await store.sweep(NOW + WINDOW) == 0
        assert await store.sweep(NOW + WINDOW + 1) == 1
        assert store.get("old") is None
        assert len(store) == 1

    async def test_reset(self, store):
        await store.increment("a", WINDOW, NOW)
        await store.increment("b", WINDOW, NOW)

        await store.reset("a")
        assert store.get("a") is None
        assert len(store) == 1

        await store.reset()
        assert len(store) == 0


class TestRedisStore:
    """Test the Redis-backed store"""

    @pytest.fixture
    def redis_service(self):
        service = Mock()
        service.incr_with_expiry = AsyncMock(return_value=(1, WINDOW))
        service.delete = AsyncMock(return_value=1)
        service.keys = AsyncMock(return_value=[])
        return service

    async def test_increment_prefixes_key(self, redis_service):
        store = RedisRateLimitStore(redis_service)

        entry = await store.increment("login:ip:1.2.3.4", WINDOW, NOW)

        assert entry == RateLimitEntry(count=1, reset_at=NOW + WINDOW)
        redis_service.incr_with_expiry.assert_called_once_with("roofguard:rl:login:ip:1.2.3.4", WINDOW)

    async def test_reset_at_from_ttl(self, redis_service):
        redis_service.incr_with_expiry.return_value = (4, 12_345)
        store = RedisRateLimitStore(redis_service, key_prefix="test:")

        entry = await store.increment("k", WINDOW, NOW)

        assert entry == RateLimitEntry(count=4, reset_at=NOW + 12_345)

    async def test_unavailable_raises_store_error(self, redis_service):
        redis_service.incr_with_expiry.return_value = None
        store = RedisRateLimitStore(redis_service)

        with pytest.raises(RateLimitStoreError) as exc_info:
            await store.increment("k", WINDOW, NOW)

        assert exc_info.value.key == "k"
        assert exc_info.value.operation == "increment"

    async def test_sweep_is_noop(self, redis_service):
        assert await RedisRateLimitStore(redis_service).sweep(NOW) == 0

    async def test_reset_single_key(self, redis_service):
        await RedisRateLimitStore(redis_service).reset("k")
        redis_service.delete.assert_called_once_with("roofguard:rl:k")

    async def test_reset_all(self, redis_service):
        redis_service.keys.return_value = ["roofguard:rl:a", "roofguard:rl:b"]

        await RedisRateLimitStore(redis_service).reset()

        redis_service.keys.assert_called_once_with("roofguard:rl:*")
        redis_service.delete.assert_called_once_with("roofguard:rl:a", "roofguard:rl:b")
