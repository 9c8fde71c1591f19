# roofguard/main.py
"""
RoofGuard FastAPI application.

Exposes the request-security layer of the roofing asset management platform:
CSRF token issuance, the rate-limited login endpoint and the password policy
check used by the account forms. All state-changing routes go through
``with_api_security``.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from typing import Optional
from contextlib import asynccontextmanager
from datetime import datetime
import json
import os

from roofguard import __version__
from roofguard.core.config import settings, validate_required_settings, get_site_url, is_production
from roofguard.core.error_messages import GENERIC_ERROR_MESSAGES
from roofguard.core.exceptions import config_error
from roofguard.core.logging_config import setup_logging
from roofguard.core.rate_limit_config import LOGIN, API_GENERAL, get_real_ip
from roofguard.core.security import (
    RateLimiter,
    create_rate_limiter,
    generate_csrf_token,
    set_csrf_cookie,
    with_api_security,
)
from roofguard.core.security.csrf import CSRF_HEADER_NAME
from roofguard.services.auth_service import (
    SUSPENDED_MESSAGE,
    Authenticator,
    default_redirect_for,
    get_validated_origin,
    require_auth,
)
from roofguard.services.form_validation import validate_email
from roofguard.services.redis_service import RedisService, create_redis_service
from roofguard.services.validation_service import validate_password, validate_redirect_url

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan event handler for startup/shutdown"""
    logger.info("=" * 60)
    logger.info(f"🚀 {settings.APP_NAME} API Starting...")
    logger.info("=" * 60)

    if not validate_required_settings():
        logger.warning("⚠️ Configuration incomplete - falling back to defaults where possible")

    redis_service: Optional[RedisService] = None
    if settings.RATE_LIMIT_BACKEND.strip().lower() == "redis" and settings.REDIS_URL:
        redis_service = await create_redis_service(settings.REDIS_URL)
        app.state.rate_limiter = create_rate_limiter("redis", redis_service)

    limiter: RateLimiter = app.state.rate_limiter
    limiter.start_cleanup(settings.RATE_LIMIT_CLEANUP_INTERVAL)

    logger.info("📋 Configuration:")
    logger.info(f"  - Rate limit store: {type(limiter.store).__name__}")
    logger.info(f"  - Site URL: {get_site_url()}")
    logger.info("✅ API Ready!")

    yield

    logger.info(f"🛑 {settings.APP_NAME} API Shutting down...")
    await limiter.stop_cleanup()
    if redis_service is not None:
        await redis_service.shutdown()


app = FastAPI(
    title="RoofGuard API",
    description="Request security layer for the roofing asset management platform",
    version=__version__,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None
)

# Memory store until the lifespan swaps in Redis
app.state.rate_limiter = RateLimiter()
# Set by the deployment to the managed auth backend adapter
app.state.authenticator = None


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests for debugging"""
    path = request.url.path
    if path != "/health":
        logger.info(f"📥 Request: {request.method} {path} from {get_real_ip(request)}")

    return await call_next(request)


# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security headers to all responses"""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = "geolocation=(self), microphone=(), camera=()"

    if "Server" in response.headers:
        del response.headers["Server"]

    return response


development_origins = [
    "http://localhost:3000",
    "http://localhost:3001",
]

allowed_origins = [get_site_url()] + ([] if is_production() else development_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(dict.fromkeys(allowed_origins)),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", CSRF_HEADER_NAME],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
)


# API Models
class LoginRequest(BaseModel):
    email: str
    password: str = Field(min_length=1)
    redirect: Optional[str] = None


class PasswordPolicyRequest(BaseModel):
    password: str


def _invalid_input(message: str = GENERIC_ERROR_MESSAGES["INVALID_INPUT"]) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


async def _read_json(request: Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


@app.get("/", status_code=200)
def read_root():
    """Health check endpoint"""
    return {"status": "ok", "version": __version__, "service": "roofguard"}


@app.get("/health", status_code=200)
def health():
    """Alternative health check endpoint"""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


@app.get("/api/csrf-token")
async def csrf_token():
    """
    Issue a CSRF token.

    Called when the web app loads: sets the ``csrf-token`` cookie and returns
    the same token so the client can keep a fallback copy.
    """
    token = generate_csrf_token()
    response = JSONResponse(content={"token": token})
    set_csrf_cookie(response, token)
    return response


async def _login_handler(request: Request, user_id: Optional[str]) -> JSONResponse:
    body = await _read_json(request)
    try:
        payload = LoginRequest.model_validate(body)
    except PydanticValidationError:
        return _invalid_input()

    if not validate_email(payload.email):
        return _invalid_input("Email invalide")

    authenticator: Optional[Authenticator] = request.app.state.authenticator
    if authenticator is None:
        raise config_error("No authenticator configured", component="auth")

    user = await authenticator.authenticate(payload.email.strip(), payload.password)
    if user is None:
        logger.warning("❌ Failed login attempt")
        return JSONResponse(status_code=401, content={"error": "Identifiants incorrects"})

    if not user.is_active:
        logger.warning(f"🚫 Login attempt on suspended account {user.id[:8]}...")
        return JSONResponse(
            status_code=403,
            content={"error": SUSPENDED_MESSAGE}
        )

    redirect_to = validate_redirect_url(payload.redirect, [default_redirect_for(user)]) or default_redirect_for(user)

    logger.info(f"🔐 User {user.id[:8]}... logged in ({user.role})")
    return JSONResponse(content={
        "user": user.model_dump(),
        "redirect_to": redirect_to,
        "redirect_url": f"{get_validated_origin(request)}{redirect_to}"
    })


@app.post("/api/auth/login")
async def login(request: Request):
    """
    Sign in with email and password.

    Rate limited per client IP (5 attempts / 15 min). There is no session
    yet, so no CSRF token is required.
    """
    return await with_api_security(
        request,
        LOGIN,
        _login_handler,
        skip_csrf=True,
        log_context="API /auth/login"
    )


async def _password_policy_handler(request: Request, user_id: Optional[str]) -> JSONResponse:
    body = await _read_json(request)
    try:
        payload = PasswordPolicyRequest.model_validate(body)
    except PydanticValidationError:
        return _invalid_input()

    result = validate_password(payload.password)
    if result.success:
        return JSONResponse(content={"valid": True, "errors": []})
    return JSONResponse(content={"valid": False, "errors": result.errors})


@app.post("/api/auth/password-policy")
async def password_policy(request: Request):
    """
    List every password rule the submitted password does not meet.

    Requires a CSRF token and a bearer session; rate limited per user.
    """
    return await with_api_security(
        request,
        API_GENERAL,
        _password_policy_handler,
        authenticate=require_auth,
        log_context="API /auth/password-policy"
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    logger.info(f"🚀 Starting server on port {port}...")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info"
    )
