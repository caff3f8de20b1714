# plastik/core/config.py

import os
from functools import lru_cache
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Security
    SECRET_KEY: str = ""
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = ""

    # Discogs API
    DISCOGS_API_TOKEN: str = ""
    DISCOGS_USERNAME: str = ""
    DISCOGS_USER_AGENT: str = "PlastikRecordStore/1.0"
    DISCOGS_TIMEOUT_SECONDS: float = 30.0
    DISCOGS_MAX_ATTEMPTS: int = 4
    DISCOGS_BACKOFF_SECONDS: float = 1.0
    DISCOGS_MAX_SCAN_PAGES: int = 10   # Upper bound on pages walked for a filtered search

    # Cache
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_ENABLED: bool = True
    INVENTORY_CACHE_TTL: int = 300
    LISTING_CACHE_TTL: int = 300
    RELEASE_CACHE_TTL: int = 86400

    # Release enrichment batching
    BATCH_MAX_SIZE: int = 10
    BATCH_MAX_WAIT_SECONDS: float = 1.0

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE: int = 300
    STRIPE_CURRENCY: str = "eur"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists(os.environ.get('ENV_FILE', '.env')) else None,
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()

def get_database_url(settings: Optional[Settings] = None) -> str:
    """Resolve the async database URL, falling back to the raw environment variable."""
    settings = settings or get_settings()
    database_url = settings.DATABASE_URL or os.environ.get('DATABASE_URL', '')
    if not database_url:
        raise ValueError("DATABASE_URL is not set in environment variables")

    # Convert postgresql:// to postgresql+asyncpg:// for async support
    if database_url.startswith('postgresql://'):
        database_url = database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return database_url
