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
    run_migrations: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Entitlement Service API"
    api_version: str = "0.1.0"
    api_description: str = "Purchase verification and entitlement ledger"

    # Session authentication (tokens issued by the external auth provider)
    session_jwt_secret: str = ""
    session_jwt_audience: str = ""  # e.g. "authenticated"; empty disables audience check

    # Platform A - App Store signed transactions
    app_store_bundle_id: str = ""
    app_store_root_certificates: str = ""  # Comma-separated paths to Apple root CA PEM files
    app_store_accept_sandbox: bool = False

    # Platform B - Google Play Developer API
    google_play_package_name: str = ""
    google_play_service_account: str = ""  # Path, raw JSON, or base64-encoded JSON
    verifier_timeout_seconds: float = 10.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "entitlement-service"
    deployment_environment: str = "production"

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

        if not self.session_jwt_secret:
            errors.append("SESSION_JWT_SECRET is required but empty or missing")

        if self.verifier_timeout_seconds <= 0:
            errors.append("VERIFIER_TIMEOUT_SECONDS must be positive")

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

    @property
    def app_store_root_certificate_paths(self) -> list[str]:
        """Trusted Apple root certificate paths, in configured order."""
        return [p.strip() for p in self.app_store_root_certificates.split(",") if p.strip()]

    @property
    def app_store_configured(self) -> bool:
        return bool(self.app_store_bundle_id and self.app_store_root_certificate_paths)

    @property
    def google_play_configured(self) -> bool:
        return bool(self.google_play_package_name and self.google_play_service_account)


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
