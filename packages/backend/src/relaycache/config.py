"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with RELAYCACHE_ prefix,
plus an optional .env file in the working directory.

Learn: pydantic-settings auto-loads from environment, validates types,
provides defaults. The cache and bus backends are selectable so the
service (and its tests) can run without a Redis server.
"""

from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via RELAYCACHE_* env vars."""

    # Record store
    database_url: str = "sqlite+aiosqlite:///./database.db"

    # Redis (cache + pub/sub)
    redis_url: str = "redis://localhost:6379/0"
    cache_backend: Literal["redis", "memory"] = "redis"
    bus_backend: Literal["redis", "memory"] = "redis"

    # Cache-aside read path
    cache_key: str = "all_products"
    cache_ttl_seconds: int = 3600
    single_flight_reads: bool = False

    # Notification topics
    updates_topic: str = "product_updates"
    relay_topics: list[str] = ["custom_channel"]

    # Upper bound for every store/cache/bus call
    io_timeout_seconds: float = 5.0

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 5000

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # CORS
    cors_origins: list[str] = ["*"]

    model_config = {"env_prefix": "RELAYCACHE_", "env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def validate_topics(self):
        """The reserved updates topic can't double as a custom relay topic."""
        if self.updates_topic in self.relay_topics:
            raise ValueError(
                f"RELAYCACHE_RELAY_TOPICS must not contain the reserved "
                f"updates topic {self.updates_topic!r}"
            )
        if self.cache_ttl_seconds <= 0:
            raise ValueError("RELAYCACHE_CACHE_TTL_SECONDS must be positive")
        return self


# Singleton — import this everywhere
settings = Settings()
