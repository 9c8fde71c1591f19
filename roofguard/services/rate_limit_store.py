"""
Counter storage for the fixed-window rate limiter.

The limiter owns the policy arithmetic; a store only keeps
``key -> (count, reset_at)`` and decides when a window has expired.

- MemoryRateLimitStore: process-local dict, for a single instance and tests.
  Counters are NOT shared between processes or machines: a restart or a
  scale-out resets them.
- RedisRateLimitStore: shared counters with Redis TTLs, for multi-instance
  deployments.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional
import logging

from roofguard.core.exceptions import store_error
from roofguard.services.redis_service import RedisService

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    """Requests seen in the current window and when it ends (epoch ms)"""
    count: int
    reset_at: int


class RateLimitStore(ABC):
    """Storage interface used by RateLimiter"""

    @abstractmethod
    async def increment(self, key: str, window_ms: int, now_ms: int) -> RateLimitEntry:
        """
        Count one request for key.

        If the key has a live window (reset_at > now) its count is increased,
        otherwise a fresh window starting at now_ms replaces it.

        Raises:
            RateLimitStoreError: If the backend is unavailable
        """

    @abstractmethod
    async def sweep(self, now_ms: int) -> int:
        """Drop expired windows. Returns the number of entries removed."""

    @abstractmethod
    async def reset(self, key: Optional[str] = None) -> None:
        """Forget one key, or every key when key is None."""


class MemoryRateLimitStore(RateLimitStore):
    """In-process store. Not for multi-instance deployments."""

    def __init__(self):
        self._entries: Dict[str, RateLimitEntry] = {}

    async def increment(self, key: str, window_ms: int, now_ms: int) -> RateLimitEntry:
        # No await between read and write: atomic within one event loop
        entry = self._entries.get(key)

        if entry is not None and entry.reset_at > now_ms:
            entry.count += 1
            return RateLimitEntry(entry.count, entry.reset_at)

        entry = RateLimitEntry(count=1, reset_at=now_ms + window_ms)
        self._entries[key] = entry
        return RateLimitEntry(entry.count, entry.reset_at)

    async def sweep(self, now_ms: int) -> int:
        expired = [key for key, entry in self._entries.items() if entry.reset_at < now_ms]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[RateLimitEntry]:
        return self._entries.get(key)


class RedisRateLimitStore(RateLimitStore):
    """Shared store backed by Redis counters with millisecond TTLs."""

    def __init__(self, redis_service: RedisService, key_prefix: str = "roofguard:rl:"):
        self.redis = redis_service
        self.key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def increment(self, key: str, window_ms: int, now_ms: int) -> RateLimitEntry:
        result = await self.redis.incr_with_expiry(self._key(key), window_ms)
        if result is None:
            raise store_error("Redis counter unavailable", key=key, operation="increment")

        count, ttl_ms = result
        return RateLimitEntry(count=count, reset_at=now_ms + ttl_ms)

    async def sweep(self, now_ms: int) -> int:
        # Redis expires windows on its own
        return 0

    async def reset(self, key: Optional[str] = None) -> None:
        if key is not None:
            await self.redis.delete(self._key(key))
            return

        keys = await self.redis.keys(f"{self.key_prefix}*")
        if keys:
            await self.redis.delete(*keys)
            logger.info(f"🧹 Cleared {len(keys)} rate limit counters")
