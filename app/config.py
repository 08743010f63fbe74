"""Configuration management for the pastebin services.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance. Both the main
service and the hash generator read the same settings class.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from app.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    threshold = settings.POPULARITY_THRESHOLD

**Step 3 — Override in tests**::
    settings = Settings(POPULARITY_THRESHOLD=2, DEFAULT_TTL=1)

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- TTL values are counted in units of PASTE_TTL_UNIT_SECONDS (one day by default).

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

import datetime
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "pastebin"
    APP_ENV: str = "development"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://pastebin:pastebin@db:5432/pastebin"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Redis (hot cache + popularity sorted set)
    REDIS_URL: str = "redis://redis:6379/1"
    POPULARITY_KEY: str = "popular_pastes"
    POPULARITY_THRESHOLD: int = Field(500, ge=1)

    # MinIO blob storage
    MINIO_ENDPOINT: str = "minio:9000"
    MINIO_ACCESS_KEY: str = "minioadmin"
    MINIO_SECRET_KEY: str = "minioadmin"
    MINIO_BUCKET: str = "pastes"
    MINIO_USE_SSL: bool = False

    # Kafka allocation queue
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:9092"
    KAFKA_HASH_TOPIC: str = "hashes"
    KAFKA_CONSUMER_GROUP: str = "pastebin-main"
    KAFKA_AUTO_OFFSET_RESET: str = "latest"
    ALLOCATION_TIMEOUT_SECONDS: float = 10.0

    # Paste lifecycle
    DEFAULT_TTL: int = Field(1, ge=1)
    PASTE_TTL_UNIT_SECONDS: int = Field(86400, ge=1)
    MAX_CONTENT_BYTES: int = 900_000

    # Backend retries (per adapter call, total attempts)
    BACKEND_RETRY_ATTEMPTS: int = Field(3, ge=1)
    BACKEND_RETRY_INITIAL_DELAY_SECONDS: float = 0.05
    BACKEND_RETRY_MAX_DELAY_SECONDS: float = 1.0

    # Expiry sweeper
    SWEEPER_ENABLED: bool = True
    SWEEPER_HOUR: int = Field(3, ge=0, le=23)
    SWEEPER_MINUTE: int = Field(0, ge=0, le=59)
    SWEEPER_TIMEZONE: str = "UTC"
    SWEEPER_RECONCILE_ORPHANS: bool = False
    SWEEPER_ORPHAN_GRACE_SECONDS: int = 3600

    # Hash generator
    HASH_LENGTH: int = Field(8, ge=1)
    HASH_RATE: int = Field(10, ge=1)
    HASH_WORKERS: int = Field(1, ge=1)
    HASH_BATCH_SIZE: int = Field(1, ge=1)
    HASH_METRICS_PORT: int = 9300
    HASH_SHUTDOWN_GRACE_SECONDS: float = 2.0

    # Documentation / admin Basic-Auth
    SWAGGER_ENABLED: bool = False
    SWAGGER_USERNAME: str = ""
    SWAGGER_PASSWORD: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    def ttl_to_timedelta(self, ttl: int) -> datetime.timedelta:
        return datetime.timedelta(seconds=ttl * self.PASTE_TTL_UNIT_SECONDS)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
