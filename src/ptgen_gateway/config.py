import logging
import os
from dataclasses import dataclass
from functools import lru_cache

import redis.asyncio as redis
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

load_dotenv()

# Value shipped in the sample .env; treated as "no key configured".
API_KEY_PLACEHOLDER = "your-secret-api-key-here"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    # Access control
    api_key: str | None = _optional("API_KEY")
    author: str = os.getenv("AUTHOR", "Hares")

    # Upstream credentials
    tmdb_api_key: str | None = _optional("TMDB_API_KEY")
    douban_cookie: str | None = _optional("DOUBAN_COOKIE")

    # Cache
    enabled_cache: bool = os.getenv("ENABLED_CACHE", "true").lower() != "false"
    redis_url: str | None = _optional("REDIS_URL")
    redis_password: str | None = _optional("REDIS_PASSWORD")
    cache_key_prefix: str = os.getenv("CACHE_KEY_PREFIX", "ptgen")
    cache_database_url: str | None = _optional("CACHE_DATABASE_URL")

    # Rate limiting
    rate_limit_window_ms: int = int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000"))
    rate_limit_max_requests: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "30"))
    rate_limit_cleanup_interval_ms: int = int(os.getenv("RATE_LIMIT_CLEANUP_INTERVAL_MS", "10000"))

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_reload: bool = os.getenv("API_RELOAD", "false").lower() == "true"
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def requires_api_key(self) -> bool:
        """Check if callers must present an API key.

        Returns:
            True if a real (non-placeholder) key is configured
        """
        return bool(self.api_key) and self.api_key != API_KEY_PLACEHOLDER

    @property
    def copyright(self) -> str:
        return f"Powered by @{self.author}"

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if self.rate_limit_window_ms <= 0:
            raise ValueError("RATE_LIMIT_WINDOW_MS must be positive")

        if self.rate_limit_max_requests <= 0:
            raise ValueError("RATE_LIMIT_MAX_REQUESTS must be positive")

        if self.rate_limit_cleanup_interval_ms < 0:
            raise ValueError("RATE_LIMIT_CLEANUP_INTERVAL_MS must not be negative")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


def configure_logging(level: str | None = None) -> None:
    """Install the process-wide log handler."""
    logging.basicConfig(level=level or settings.log_level, format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_redis_client(config: Settings | None = None) -> redis.Redis | None:
    """Create a Redis client for the object tier, or None if not configured."""
    config = config or settings
    if not config.redis_url:
        return None
    return redis.from_url(
        config.redis_url,
        password=config.redis_password,
        decode_responses=False,
    )


def get_cache_engine(config: Settings | None = None) -> AsyncEngine | None:
    """Create the SQLAlchemy engine for the row tier, or None if not configured."""
    config = config or settings
    if not config.cache_database_url:
        return None
    return create_async_engine(config.cache_database_url, pool_pre_ping=True)
