"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 10
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Freshers Ticketing API"
    api_version: str = "0.1.0"
    api_description: str = "Access-key redemption and door scanning for student events"

    # Authentication - tokens are minted by the identity provider with this secret
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_audience: str | None = None
    admin_role: str = "admin"

    # Tickets
    public_origin: str = "http://localhost:5173"  # Origin serving /verify-ticket/{id}
    default_scan_location: str = "Event Entrance"
    recent_scans_limit: int = 10

    # Access keys
    access_key_length: int = 32
    access_key_min_length: int = 8

    # Analytics
    analytics_recent_limit: int = 10
    analytics_days: int = 7

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "freshers-ticketing-api"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if not self.jwt_secret:
            errors.append("JWT_SECRET is required but empty or missing")
        elif len(self.jwt_secret) < 32:
            errors.append("JWT_SECRET must be at least 32 characters")

        if self.access_key_min_length < 1 or self.access_key_length < self.access_key_min_length:
            errors.append("ACCESS_KEY_LENGTH must be >= ACCESS_KEY_MIN_LENGTH >= 1")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url

    def verification_url(self, ticket_id: str) -> str:
        """Public verification URL for a ticket; this is also the QR payload."""
        return f"{self.public_origin.rstrip('/')}/verify-ticket/{ticket_id}"


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
