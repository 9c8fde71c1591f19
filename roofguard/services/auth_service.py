# roofguard/services/auth_service.py
"""
Request authentication helpers.

Credential checks and user profiles live in the managed auth backend. This
module extracts what the request carries, defines the seam
(``Authenticator``) the API calls into and turns its answers into 401/403
errors for protected routes.
"""

from typing import List, Literal, Optional, Protocol, runtime_checkable
import logging
import re

from fastapi import HTTPException
from pydantic import BaseModel
from starlette.requests import Request

from roofguard.core.config import get_site_url
from roofguard.core.exceptions import config_error

logger = logging.getLogger(__name__)

_BEARER_PATTERN = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)

LOCAL_ORIGINS = ("http://localhost:3000", "http://localhost:3001")

MISSING_TOKEN_MESSAGE = "Authorization Bearer token manquant."
INVALID_TOKEN_MESSAGE = "Token invalide ou session expirée."
ROLE_REQUIRED_MESSAGES = {
    "admin": "Accès refusé (admin requis).",
    "client": "Accès refusé (client requis).",
}
SUSPENDED_MESSAGE = "Compte suspendu. Veuillez contacter l'administrateur."


class AuthenticatedUser(BaseModel):
    """User profile as returned by the auth backend"""
    id: str
    email: Optional[str] = None
    role: Literal["admin", "client"]
    full_name: Optional[str] = None
    is_active: bool = True


@runtime_checkable
class Authenticator(Protocol):
    async def authenticate(self, email: str, password: str) -> Optional[AuthenticatedUser]:
        """Return the user for valid credentials, else None."""
        ...

    async def get_user(self, token: str) -> Optional[AuthenticatedUser]:
        """Return the user owning a session token, else None."""
        ...


def get_bearer_token(request: Request) -> Optional[str]:
    """Token from an ``Authorization: Bearer <token>`` header"""
    header = request.headers.get("authorization")
    if not header:
        return None
    match = _BEARER_PATTERN.match(header)
    return match.group(1) if match else None


async def require_auth(request: Request, role: Optional[str] = None) -> AuthenticatedUser:
    """
    Resolve the caller from its bearer token.

    Args:
        request: Incoming request
        role: "admin" or "client" to restrict access, None for any role

    Returns:
        The authenticated user

    Raises:
        HTTPException: 401 without a usable token, 403 on a role mismatch or
            a suspended client account
        ConfigurationError: No authenticator is attached to the app
    """
    authenticator: Optional[Authenticator] = getattr(request.app.state, "authenticator", None)
    if authenticator is None:
        raise config_error("No authenticator configured", component="auth")

    token = get_bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail=MISSING_TOKEN_MESSAGE)

    user = await authenticator.get_user(token)
    if user is None:
        logger.warning("❌ Rejected unknown or expired session token")
        raise HTTPException(status_code=401, detail=INVALID_TOKEN_MESSAGE)

    if role is not None and user.role != role:
        logger.warning(f"🚫 User {user.id[:8]}... ({user.role}) denied {role} access")
        raise HTTPException(status_code=403, detail=ROLE_REQUIRED_MESSAGES[role])

    # Suspension is enforced for the client area only
    if role == "client" and not user.is_active:
        logger.warning(f"🚫 Suspended account {user.id[:8]}... denied access")
        raise HTTPException(status_code=403, detail=SUSPENDED_MESSAGE)

    return user


async def require_admin(request: Request) -> AuthenticatedUser:
    return await require_auth(request, role="admin")


async def require_client(request: Request) -> AuthenticatedUser:
    return await require_auth(request, role="client")


def get_allowed_origins() -> List[str]:
    return [get_site_url(), *LOCAL_ORIGINS]


def get_validated_origin(request: Request) -> str:
    """
    Origin to build absolute links with, checked against the allow-list.

    Forwarded headers are only trusted when they produce an allowed origin;
    otherwise the configured site URL is used.
    """
    allowed_origins = get_allowed_origins()

    origin = request.headers.get("origin")
    if origin and origin in allowed_origins:
        return origin

    proto = request.headers.get("x-forwarded-proto")
    host = request.headers.get("x-forwarded-host")
    if proto and host:
        constructed = f"{proto}://{host}"
        if constructed in allowed_origins:
            return constructed
        logger.warning(f"⚠️ Ignoring untrusted forwarded origin: {constructed}")

    return get_site_url()


def default_redirect_for(user: AuthenticatedUser) -> str:
    """Landing area for a user's role"""
    return "/admin" if user.role == "admin" else "/client"
