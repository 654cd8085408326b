"""
Application configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "sparks-payments"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Public base URL used for PayHere return/cancel/notify URLs
    app_base_url: str = "http://localhost:8000"

    # API Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = []

    # Postgres
    database_url: str = ""
    database_ssl: bool = False

    # Redis (notification pub/sub)
    redis_url: str = "redis://localhost:6379/0"

    # PayHere
    payhere_merchant_id: str = ""
    payhere_merchant_secret: str = ""
    payhere_mode: Literal["sandbox", "live"] = "sandbox"
    payhere_currency: str = "LKR"

    # Refund policy
    refund_full_window_hours: int = 24
    refund_early_percentage: int = 90
    refund_late_percentage: int = 60

    # Admin
    admin_api_key: str = ""

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
