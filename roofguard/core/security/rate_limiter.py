"""
Fixed-window rate limiter.

Requests are counted per ``prefix:identity`` in discrete windows that start
at the first request and fully reset when they expire. This is not a sliding
window: a client can send up to about twice the limit across a window
boundary.

The limiter only returns allow/deny decisions. It never raises: if the
counter store fails, the request is allowed and the failure is logged.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from starlette.requests import Request

from roofguard.core.exceptions import RateLimitStoreError
from roofguard.core.rate_limit_config import RateLimitConfig, get_request_identifier
from roofguard.services.rate_limit_store import (
    MemoryRateLimitStore,
    RateLimitStore,
    RedisRateLimitStore,
)
from roofguard.services.redis_service import RedisService

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_INTERVAL = 5 * 60  # seconds


@dataclass(frozen=True)
class RateLimitResult:
    """Decision for one request"""
    allowed: bool
    remaining: int
    reset_at: int  # epoch ms
    retry_after: Optional[int] = None  # seconds, only set when denied


class RateLimiter:
    """
    Rate limiter with an injectable counter store.

    Args:
        store: Counter backend (defaults to a fresh in-memory store)
        clock: Returns the current time in epoch seconds
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = time.time
    ):
        self.store = store if store is not None else MemoryRateLimitStore()
        self.clock = clock
        self._cleanup_task: Optional[asyncio.Task] = None

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def check(self, identity: str, config: RateLimitConfig) -> RateLimitResult:
        """
        Count a request for identity under config and decide whether it may proceed.

        Args:
            identity: e.g. ``user:<id>`` or ``ip:<address>``
            config: Policy to apply

        Returns:
            RateLimitResult
        """
        key = f"{config.prefix}:{identity}"
        now = self._now_ms()

        try:
            entry = await self.store.increment(key, config.window_ms, now)
        except RateLimitStoreError as e:
            logger.warning(f"⚠️ Rate limit store unavailable, allowing request: {e}")
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests - 1,
                reset_at=now + config.window_ms
            )

        if entry.count == 1:
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests - 1,
                reset_at=entry.reset_at
            )

        allowed = entry.count <= config.max_requests
        remaining = max(0, config.max_requests - entry.count)
        retry_after = None
        if not allowed:
            retry_after = math.ceil((entry.reset_at - now) / 1000)
            logger.warning(f"🚦 Rate limit exceeded for {key} (count={entry.count}, retry in {retry_after}s)")

        return RateLimitResult(
            allowed=allowed,
            remaining=remaining,
            reset_at=entry.reset_at,
            retry_after=retry_after
        )

    async def rate_limit(
        self,
        request: Request,
        config: RateLimitConfig,
        user_id: Optional[str] = None
    ) -> RateLimitResult:
        """Check a request, keyed by user id when known, else by client IP."""
        identity = get_request_identifier(request, user_id)
        return await self.check(identity, config)

    async def sweep(self) -> int:
        """Remove expired windows from the store"""
        removed = await self.store.sweep(self._now_ms())
        if removed:
            logger.info(f"🧹 Cleaned up {removed} expired rate limit entries")
        return removed

    def start_cleanup(self, interval: float = DEFAULT_CLEANUP_INTERVAL) -> asyncio.Task:
        """
        Start the periodic sweep on the running event loop.

        Cleanup only bounds memory: expired entries are already treated as
        absent on their next access.
        """
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return self._cleanup_task

        async def _cleanup_loop():
            while True:
                await asyncio.sleep(interval)
                try:
                    await self.sweep()
                except Exception as e:
                    logger.error(f"❌ Rate limit sweep failed: {e}")

        self._cleanup_task = asyncio.create_task(_cleanup_loop())
        logger.info(f"🧹 Rate limit cleanup scheduled every {interval}s")
        return self._cleanup_task

    async def stop_cleanup(self) -> None:
        """Cancel the periodic sweep if it is running"""
        task = self._cleanup_task
        self._cleanup_task = None
        if task is None or task.done():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


def create_rate_limiter(
    backend: str = "memory",
    redis_service: Optional[RedisService] = None
) -> RateLimiter:
    """
    Build a limiter for the configured backend.

    ``redis`` needs a connected RedisService; without one the limiter falls
    back to the in-memory store.
    """
    backend = (backend or "memory").strip().lower()

    if backend == "redis":
        if redis_service is not None and redis_service.is_connected():
            logger.info("🔐 Rate limiter using Redis store")
            return RateLimiter(RedisRateLimitStore(redis_service))
        logger.warning("⚠️ Redis rate limit backend requested but not connected - using memory store")

    return RateLimiter(MemoryRateLimitStore())
