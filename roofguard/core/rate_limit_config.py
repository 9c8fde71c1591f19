"""
Rate limiting configuration for the RoofGuard API
"""

from dataclasses import dataclass
from typing import Dict, Optional
from starlette.requests import Request
from slowapi.util import get_remote_address


@dataclass(frozen=True)
class RateLimitConfig:
    """Named fixed-window policy: at most max_requests per window_seconds."""
    max_requests: int
    window_seconds: int
    prefix: str

    @property
    def window_ms(self) -> int:
        return self.window_seconds * 1000


# Policies per endpoint class. The values are part of the API contract.
RATE_LIMITS: Dict[str, RateLimitConfig] = {
    "LOGIN": RateLimitConfig(max_requests=5, window_seconds=15 * 60, prefix="login"),
    "PASSWORD_RESET": RateLimitConfig(max_requests=3, window_seconds=60 * 60, prefix="password-reset"),
    "API_GENERAL": RateLimitConfig(max_requests=100, window_seconds=60, prefix="api"),
    "USER_CREATION": RateLimitConfig(max_requests=10, window_seconds=60 * 60, prefix="user-create"),
    "FILE_UPLOAD": RateLimitConfig(max_requests=20, window_seconds=60 * 60, prefix="file-upload"),
}

LOGIN = RATE_LIMITS["LOGIN"]
PASSWORD_RESET = RATE_LIMITS["PASSWORD_RESET"]
API_GENERAL = RATE_LIMITS["API_GENERAL"]
USER_CREATION = RATE_LIMITS["USER_CREATION"]
FILE_UPLOAD = RATE_LIMITS["FILE_UPLOAD"]

# Fallback when the limiter gives no retry hint
DEFAULT_RETRY_AFTER = 60


def get_real_ip(request: Request) -> str:
    """
    Get the real IP address, considering proxy headers.
    Important for deployments behind load balancers.
    """
    # X-Forwarded-For can contain multiple IPs, take the first
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    # Fallback to direct connection IP
    if request.client is None:
        return "unknown"
    return get_remote_address(request) or "unknown"


def get_request_identifier(request: Request, user_id: Optional[str] = None) -> str:
    """
    Build the identity a request is counted under.

    An authenticated user id is preferred over the network address since it
    cannot be spoofed through proxy headers.
    """
    if user_id:
        return f"user:{user_id}"

    forwarded = request.headers.get("x-forwarded-for")
    real_ip = request.headers.get("x-real-ip")

    ip = (forwarded.split(",")[0].strip() if forwarded else "") or real_ip or "unknown"

    return f"ip:{ip}"
