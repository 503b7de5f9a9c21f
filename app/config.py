"""Application configuration via pydantic-settings."""

from __future__ import annotations

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
    app_name: str = "PCO Hire"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "pcohire"
    postgres_password: str = Field(default="pcohire_secret")
    postgres_db: str = "pco_hire"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    database_url_override: Optional[str] = None

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Payment Gateways
    payment_gateway: Literal["manual", "stripe"] = "manual"
    stripe_secret_key: Optional[str] = None
    currency: str = "gbp"

    # Admin notification routing
    admin_roles_return_requested: List[str] = [
        "admin",
        "super_admin",
        "bookings",
        "operations",
        "support",
    ]
    admin_roles_return_approved: List[str] = ["admin", "super_admin", "bookings", "operations"]
    admin_roles_return_rejected: List[str] = ["admin", "super_admin", "bookings", "support"]
    admin_roles_vehicle_changed: List[str] = ["admin", "super_admin", "bookings", "operations"]

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
