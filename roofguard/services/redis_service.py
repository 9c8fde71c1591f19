# roofguard/services/redis_service.py
"""
Redis service for RoofGuard.

Redis is only used as the shared counter store of the rate limiter when the
API runs on several instances. The service exposes exactly what the counter
store needs: a windowed atomic increment, key deletion and key listing.

Operations never raise; they log and return a neutral value (``None``, ``0``,
``[]``) and the caller decides how to degrade.
"""
import redis.asyncio as redis
from typing import Optional, Dict, Any, List, Tuple
from dataclasses import dataclass
import logging

from roofguard.core.config import settings
from roofguard.services.service_base import BaseService, ServiceConfig

logger = logging.getLogger(__name__)


@dataclass
class RedisConfig(ServiceConfig):
    """Connection settings; url=None disables Redis"""
    url: Optional[str] = None
    decode_responses: bool = True
    socket_timeout: float = 5.0
    max_connections: int = 10
    retry_on_timeout: bool = True
    health_check_interval: int = 30


class RedisService(BaseService[RedisConfig]):
    """Async Redis client holder for the rate limit counters."""

    def __init__(self, config: Optional[RedisConfig] = None):
        super().__init__(config or RedisConfig(url=settings.REDIS_URL), logger)

    def _validate_config(self) -> None:
        super()._validate_config()
        if not self.config.url:
            self.logger.warning("⚠️ REDIS_URL not set - rate limits stay local to this instance")

    def _client_options(self) -> Dict[str, Any]:
        cfg = self.config
        return {
            "decode_responses": cfg.decode_responses,
            "socket_timeout": cfg.socket_timeout,
            "max_connections": cfg.max_connections,
            "retry_on_timeout": cfg.retry_on_timeout,
            "health_check_interval": cfg.health_check_interval,
        }

    async def _initialize_client(self) -> Optional[redis.Redis]:
        if not self.config.url:
            return None

        client = redis.from_url(self.config.url, **self._client_options())
        try:
            await client.ping()
        except Exception as e:
            self.logger.error(f"❌ Redis unreachable, counters fall back to memory: {e}")
            return None

        self.logger.info("✅ Redis connected")
        return client

    def is_connected(self) -> bool:
        return self._client is not None

    async def incr_with_expiry(self, key: str, window_ms: int) -> Optional[Tuple[int, int]]:
        """
        Count one hit on a windowed counter.

        INCR and PTTL run in one transaction. The window length is applied
        with PEXPIRE only when the key is new or has lost its TTL, so the
        window stays anchored at the first hit.

        Returns:
            (count, remaining_ttl_ms), or None if Redis is unavailable
        """
        if self._client is None:
            return None

        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.pttl(key)
                count, ttl_ms = await pipe.execute()

            count, ttl_ms = int(count), int(ttl_ms)
            if count == 1 or ttl_ms < 0:
                await self._client.pexpire(key, window_ms)
                ttl_ms = window_ms
        except Exception as e:
            self.logger.error(f"❌ Redis counter update failed for '{key}': {e}")
            return None

        return count, ttl_ms

    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed"""
        if self._client is None or not keys:
            return 0

        try:
            return await self._client.delete(*keys)
        except Exception as e:
            self.logger.error(f"❌ Redis delete failed: {e}")
            return 0

    async def keys(self, pattern: str = "*") -> List[str]:
        """List keys matching pattern (SCAN, not KEYS, to avoid blocking Redis)"""
        if self._client is None:
            return []

        try:
            found = [key async for key in self._client.scan_iter(match=pattern)]
        except Exception as e:
            self.logger.warning(f"⚠️ Redis scan failed: {e}")
            return []

        return [key.decode() if isinstance(key, bytes) else key for key in found]

    async def health_check(self) -> Dict[str, Any]:
        if not self.config.url:
            # Disabled on purpose, not a failure
            return {"healthy": True, "status": "disabled", "details": {"message": "Redis not configured"}}

        if self._client is None:
            return {"healthy": False, "status": "not_connected", "details": {"error": "Client not initialized"}}

        try:
            await self._client.ping()
            info = await self._client.info()
        except Exception as e:
            return {"healthy": False, "status": "error", "details": {"error": str(e)}}

        return {
            "healthy": True,
            "status": "connected",
            "details": {
                "redis_version": info.get("redis_version", "unknown"),
                "connected_clients": info.get("connected_clients", 0),
            },
        }

    async def _cleanup(self) -> None:
        if self._client is not None:
            await self._client.aclose()


async def create_redis_service(url: Optional[str] = None, **kwargs) -> RedisService:
    """
    Build and connect a Redis service.

    Args:
        url: Redis URL, defaults to settings.REDIS_URL
        **kwargs: Other RedisConfig fields
    """
    service = RedisService(RedisConfig(url=url or settings.REDIS_URL, **kwargs))
    await service.initialize()
    return service
