# roofguard/core/exceptions.py
"""
Core exceptions for the RoofGuard security layer.

Validators return result objects and the rate limiter never raises, so these
exceptions mostly travel between services and the API wrapper, which turns
them into sanitized HTTP responses. The context an error carries (field,
service, key, ...) is kept both as attributes and in ``details`` for logging.
"""

from typing import Optional, Dict, Any


class RoofGuardError(Exception):
    """Base exception for all RoofGuard errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details) if details else {}

    def _add_context(self, **context: Any) -> None:
        """Attach context values that are set, as attributes and details"""
        for name, value in context.items():
            setattr(self, name, value)
            if value is not None:
                self.details[name] = value

    def __str__(self) -> str:
        if not self.details:
            return self.message
        return f"{self.message} | Details: {self.details}"


class ServiceError(RoofGuardError):
    """A backing service (Redis, auth backend) failed"""

    def __init__(self, message: str, service_name: Optional[str] = None,
                 operation: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.service_name = service_name
        self._add_context(operation=operation)
        if service_name:
            self.details["service"] = service_name


class RateLimitStoreError(ServiceError):
    """The rate limit counter store could not be reached or updated"""

    def __init__(self, message: str, key: Optional[str] = None,
                 operation: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, service_name="RateLimitStore", operation=operation, details=details)
        self._add_context(key=key)


class ConfigurationError(RoofGuardError):
    """Missing or inconsistent configuration"""

    def __init__(self, message: str, component: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self._add_context(component=component)


# Shorthand constructors

def store_error(message: str, key: Optional[str] = None, operation: Optional[str] = None) -> RateLimitStoreError:
    return RateLimitStoreError(message, key=key, operation=operation)


def config_error(message: str, component: str) -> ConfigurationError:
    return ConfigurationError(message, component=component)
