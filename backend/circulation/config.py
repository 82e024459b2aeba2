"""Application configuration and environment variables."""
from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage
    store_backend: str = "sql"  # Options: sql, memory
    database_url: str = "sqlite+aiosqlite:///./circulation.db"
    store_timeout_seconds: float = 5.0

    # JWT verification (tokens are issued by the identity provider)
    jwt_secret: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_hours: int = 24

    # Circulation policy
    fine_rate_per_day: Decimal = Decimal("0.50")
    default_loan_days: int = 14
    ledger_max_retries: int = 5

    # Application
    app_name: str = "Library Circulation Service"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
