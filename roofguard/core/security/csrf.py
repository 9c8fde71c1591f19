"""
CSRF protection using the double-submit cookie pattern.

The token lives in a cookie the browser script can read and must be echoed
back in the ``x-csrf-token`` header on every state-changing request. Nothing
is stored server side: a request passes when cookie and header carry the
same token. A third-party site cannot read the cookie, so it cannot forge the
header. This does not protect against script injection on our own origin.
"""

import hashlib
import logging
import secrets
from typing import Optional

from fastapi.responses import JSONResponse
from starlette.requests import Request
from starlette.responses import Response

from roofguard.core.config import is_production

logger = logging.getLogger(__name__)

CSRF_TOKEN_LENGTH = 32  # bytes, 64 hex characters
CSRF_COOKIE_NAME = "csrf-token"
CSRF_HEADER_NAME = "x-csrf-token"
CSRF_COOKIE_MAX_AGE = 60 * 60 * 24  # 24 hours
CSRF_ERROR_MESSAGE = "Token CSRF invalide ou manquant"

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def generate_csrf_token() -> str:
    """Generate a random token (32 bytes, hex encoded)"""
    return secrets.token_hex(CSRF_TOKEN_LENGTH)


def hash_token(token: str) -> str:
    """SHA-256 digest of a token, so both sides compare at equal length"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def is_safe_method(method: str) -> bool:
    return (method or "").upper() in SAFE_METHODS


class CsrfGuard:
    """Validates and issues double-submit CSRF tokens."""

    def __init__(
        self,
        cookie_name: str = CSRF_COOKIE_NAME,
        header_name: str = CSRF_HEADER_NAME,
        max_age: int = CSRF_COOKIE_MAX_AGE
    ):
        self.cookie_name = cookie_name
        self.header_name = header_name
        self.max_age = max_age

    def verify(self, request: Request) -> bool:
        """
        Check that the cookie token and the header token match.

        Returns:
            False if either token is missing, else whether they are equal
        """
        cookie_token = request.cookies.get(self.cookie_name)
        if not cookie_token:
            return False

        header_token = request.headers.get(self.header_name)
        if not header_token:
            return False

        return secrets.compare_digest(hash_token(cookie_token), hash_token(header_token))

    def check(self, request: Request) -> Optional[JSONResponse]:
        """
        Guard a request.

        Returns:
            None if the request may proceed, else a 403 response
        """
        if is_safe_method(request.method):
            return None

        if self.verify(request):
            return None

        logger.warning(f"🚫 CSRF check failed: {request.method} {request.url.path}")
        return JSONResponse(
            status_code=403,
            content={"error": CSRF_ERROR_MESSAGE}
        )

    def issue(self, response: Response, token: Optional[str] = None) -> str:
        """
        Set token (a new one by default) as a cookie on response.

        The cookie is readable by scripts on purpose (double-submit); the raw
        token is returned so it can also be mirrored client side.
        """
        token = token or generate_csrf_token()
        response.set_cookie(
            key=self.cookie_name,
            value=token,
            max_age=self.max_age,
            path="/",
            secure=is_production(),
            httponly=False,
            samesite="lax",
        )
        return token


default_csrf_guard = CsrfGuard()


def verify_csrf_token(request: Request) -> bool:
    return default_csrf_guard.verify(request)


def check_csrf(request: Request) -> Optional[JSONResponse]:
    return default_csrf_guard.check(request)


def set_csrf_cookie(response: Response, token: Optional[str] = None) -> str:
    return default_csrf_guard.issue(response, token)
