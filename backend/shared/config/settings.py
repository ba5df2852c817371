"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with defaults for development."""

    # Database
    database_url: str = "sqlite:///./records.db"

    # Redis (revalidation signals)
    redis_url: str = "redis://localhost:6380"
    revalidation_channel: str = "records:revalidate"

    # Environment
    # In "development" an unauthenticated caller is served as dev_user_id
    environment: str = "development"
    debug: bool = True
    dev_user_id: str = "00000000-0000-0000-0000-000000000000"

    # Idempotency cache TTL for retried create/update calls (5 minutes)
    idempotency_ttl_seconds: float = 300.0

    # Profile indirection: auth identity -> profiles.id
    profile_table: str = "profiles"
    profile_auth_column: str = "auth_user_id"

    # Per-collection owner column, e.g. {"messages": "sender_id"}
    owner_column_overrides: dict[str, str] = {}

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def validate_production_settings(self) -> list[str]:
        """
        Validate that the configuration is safe for production.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")

            if self.database_url.startswith("sqlite"):
                errors.append("DATABASE_URL must point to a server database in production")

            if self.idempotency_ttl_seconds <= 0:
                errors.append("IDEMPOTENCY_TTL_SECONDS must be positive")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()

DATABASE_URL = settings.database_url
REDIS_URL = settings.redis_url
