"""Application configuration via pydantic-settings."""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Local Services Booking Core"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1  # the store is per process

    # Redis (rate limiting)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # JWT Authentication (tokens are minted by the identity layer)
    jwt_secret_key: str = Field(default="your-super-secret-key-change-in-production")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Completion challenge
    completion_code_length: int = Field(default=6, ge=4, le=10)
    completion_code_ttl_minutes: int = Field(default=30, ge=1)
    completion_max_attempts: int = Field(default=5, ge=1)

    # Pending bookings expire this long after their scheduled time
    pending_grace_minutes: int = Field(default=60, ge=0)
    expiry_sweep_enabled: bool = True
    expiry_sweep_minutes: int = Field(default=5, ge=1)

    # Billing (current rates, applied at projection time)
    tax_rate: Decimal = Decimal("0.08")
    platform_fee_rate: Decimal = Decimal("0.07")

    # Rate limiting
    rate_limit_per_minute: int = 100
    verify_rate_limit_per_minute: int = 10

    # Slow request threshold for request logging
    slow_request_seconds: float = 1.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
