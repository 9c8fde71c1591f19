"""
Security module for the RoofGuard API.

Centralizes request security:
- CSRF double-submit tokens
- Fixed-window rate limiting with pluggable storage
- The API security wrapper combining both with error sanitization

This module is designed to be a clean layer on top of the route handlers,
not intertwined with them.
"""

from .csrf import (
    CsrfGuard,
    check_csrf,
    generate_csrf_token,
    set_csrf_cookie,
    verify_csrf_token,
)
from .rate_limiter import (
    RateLimiter,
    RateLimitResult,
    create_rate_limiter,
)
from .api_security import with_api_security

__all__ = [
    'CsrfGuard',
    'check_csrf',
    'generate_csrf_token',
    'set_csrf_cookie',
    'verify_csrf_token',
    'RateLimiter',
    'RateLimitResult',
    'create_rate_limiter',
    'with_api_security'
]
