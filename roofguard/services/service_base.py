# roofguard/services/service_base.py
"""
Lifecycle shared by services that wrap an external client.

A service is created cheaply, connects on ``initialize()`` and releases its
client on ``shutdown()``. A backend that is not configured initializes to a
``None`` client instead of failing; callers check ``is_connected``-style
helpers and degrade.
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, TypeVar, Generic
import logging

from roofguard.core.exceptions import ServiceError, ConfigurationError

ConfigType = TypeVar('ConfigType')


class ServiceConfig:
    """Marker base for service configuration dataclasses"""


class BaseService(ABC, Generic[ConfigType]):
    """Connect / health / shutdown skeleton for client-backed services."""

    def __init__(self, config: Optional[ConfigType] = None, logger: Optional[logging.Logger] = None):
        self.config = config
        self.service_name = type(self).__name__
        self.logger = logger or logging.getLogger(self.service_name)
        self._client = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @abstractmethod
    async def _initialize_client(self) -> Any:
        """Build and connect the client; None when the backend is disabled."""

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Report ``{"healthy": bool, "status": str, "details": dict}``."""

    def _validate_config(self) -> None:
        """Reject unusable configuration before connecting. Extend per service."""
        if self.config is None:
            raise ConfigurationError(
                f"{self.service_name} has no configuration",
                component=self.service_name
            )

    async def initialize(self) -> None:
        """Connect once; later calls are no-ops."""
        if self._initialized:
            return

        self.logger.info(f"🔌 Initializing {self.service_name}...")
        self._validate_config()

        try:
            self._client = await self._initialize_client()
        except Exception as e:
            self.logger.error(f"❌ {self.service_name} failed to initialize", exc_info=True)
            raise ServiceError(
                f"Failed to initialize {self.service_name}",
                service_name=self.service_name,
                operation="initialize",
                details={'original_error': str(e), 'error_type': type(e).__name__}
            ) from e

        self._initialized = True
        self.logger.info(f"✅ {self.service_name} ready")

    async def _cleanup(self) -> None:
        """Release the client. Override when there is something to close."""

    async def shutdown(self) -> None:
        """Release the client; errors are logged so app teardown can continue."""
        if not self._initialized:
            return

        try:
            await self._cleanup()
        except Exception:
            self.logger.error(f"Error during {self.service_name} shutdown", exc_info=True)
        finally:
            self._client = None
            self._initialized = False
            self.logger.info(f"🛑 {self.service_name} shut down")
