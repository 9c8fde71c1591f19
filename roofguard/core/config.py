# roofguard/core/config.py
import os
import logging
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_SITE_URL = "http://localhost:3000"


class Settings(BaseSettings):
    """Application settings, read from the environment and .env"""
    APP_NAME: str = "RoofGuard"
    DEBUG: bool = False

    # Rate limiting
    RATE_LIMIT_BACKEND: str = "memory"
    RATE_LIMIT_CLEANUP_INTERVAL: int = 5 * 60
    REDIS_URL: Optional[str] = Field(default=None)

    LOG_LEVEL: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }


settings = Settings()


def get_environment() -> str:
    """Current runtime environment, read on every call (defaults to production)."""
    return (os.getenv("ENV") or "production").strip().lower()


def is_development() -> bool:
    return get_environment() == "development"


def is_production() -> bool:
    return get_environment() == "production"


def get_site_url() -> str:
    """Public origin of the web application."""
    return os.getenv("SITE_URL") or DEFAULT_SITE_URL


def validate_required_settings(config: Optional[Settings] = None) -> bool:
    """Check the rate limit backend settings; logs a warning and returns False when incomplete"""
    config = config or settings
    logger = logging.getLogger(__name__)
    backend = config.RATE_LIMIT_BACKEND.strip().lower()

    if backend not in ("memory", "redis"):
        logger.warning(f"Unknown RATE_LIMIT_BACKEND '{backend}', falling back to memory")
        return False

    if backend == "redis" and not config.REDIS_URL:
        logger.warning("RATE_LIMIT_BACKEND=redis but REDIS_URL is not set")
        logger.warning("Rate limiting will fall back to the in-memory store.")
        return False

    return True
