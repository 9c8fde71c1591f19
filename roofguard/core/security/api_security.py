"""
Security wrapper for API route handlers.

Applies, in order:
1. CSRF protection (state-changing methods only)
2. Authentication (when an authenticate hook is given)
3. Rate limiting (when a policy is given), per user once authenticated
4. The handler itself, with uniform error sanitization around everything
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request
from starlette.responses import Response

from roofguard.core.error_messages import GENERIC_ERROR_MESSAGES, log_error, sanitize_error
from roofguard.core.rate_limit_config import DEFAULT_RETRY_AFTER, RateLimitConfig
from roofguard.core.security.csrf import CsrfGuard, default_csrf_guard, is_safe_method
from roofguard.core.security.rate_limiter import RateLimiter, RateLimitResult

logger = logging.getLogger(__name__)

Handler = Callable[[Request, Optional[str]], Awaitable[Response]]
Authenticate = Callable[[Request], Awaitable[Any]]


def get_rate_limiter(request: Request) -> RateLimiter:
    """Limiter attached to the application (FastAPI dependency)"""
    return request.app.state.rate_limiter


def rate_limit_response(config: RateLimitConfig, result: RateLimitResult) -> JSONResponse:
    """429 response carrying the limiter's retry metadata"""
    return JSONResponse(
        status_code=429,
        content={"error": GENERIC_ERROR_MESSAGES["RATE_LIMIT"]},
        headers={
            "X-RateLimit-Limit": str(config.max_requests),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(result.reset_at),
            "Retry-After": str(result.retry_after or DEFAULT_RETRY_AFTER),
        }
    )


async def with_api_security(
    request: Request,
    rate_limit_config: Optional[RateLimitConfig],
    handler: Handler,
    *,
    skip_csrf: bool = False,
    user_id: Optional[str] = None,
    log_context: str = "API",
    rate_limiter: Optional[RateLimiter] = None,
    csrf_guard: Optional[CsrfGuard] = None,
    authenticate: Optional[Authenticate] = None
) -> Response:
    """
    Run handler behind the request checks and error sanitization.

    Args:
        request: Incoming request
        rate_limit_config: Policy to enforce, or None for no rate limiting
        handler: ``async (request, user_id) -> Response``
        skip_csrf: Disable the CSRF check (e.g. pre-session endpoints)
        user_id: Authenticated user, preferred over the IP for rate limiting
        log_context: Label for server-side error logs
        rate_limiter: Defaults to ``request.app.state.rate_limiter``
        csrf_guard: Defaults to the module-level guard
        authenticate: ``async (request) -> user`` raising HTTPException to
            reject the caller; the user's id replaces user_id

    Returns:
        The handler's response, or a 401/403/429/500 JSON error
    """
    try:
        if not skip_csrf and not is_safe_method(request.method):
            csrf_error = (csrf_guard or default_csrf_guard).check(request)
            if csrf_error is not None:
                return csrf_error

        if authenticate is not None:
            user = await authenticate(request)
            user_id = user.id

        if rate_limit_config is not None:
            limiter = rate_limiter or get_rate_limiter(request)
            result = await limiter.rate_limit(request, rate_limit_config, user_id)

            if not result.allowed:
                return rate_limit_response(rate_limit_config, result)

        return await handler(request, user_id)

    except HTTPException as e:
        # Deliberate HTTP errors keep their status, in our error envelope
        return JSONResponse(
            status_code=e.status_code,
            content={"error": e.detail},
            headers=getattr(e, "headers", None)
        )
    except Exception as e:
        log_error(log_context, e, {"user_id": user_id})
        return JSONResponse(
            status_code=500,
            content={"error": sanitize_error(e, GENERIC_ERROR_MESSAGES["SERVER_ERROR"])}
        )
