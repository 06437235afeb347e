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
    """Purchase manager settings loaded from IAP_* environment variables."""

    # Entitlement storage
    storage_url: str = "sqlite:///iap_entitlements.db"
    entitlement_key_prefix: str = "Purchased-"  # Namespace for entitlement keys

    # Product cache
    coalesce_product_requests: bool = True  # Share in-flight lookups for identical sets

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability
    metrics_enabled: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "iap-manager"
    service_version: str = "0.1.0"

    model_config = SettingsConfigDict(
        env_prefix="IAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        A misconfigured store prefix would silently orphan every
        previously recorded entitlement.
        """
        errors: list[str] = []

        if not self.storage_url:
            errors.append("IAP_STORAGE_URL is required but empty")
        if not self.entitlement_key_prefix:
            errors.append("IAP_ENTITLEMENT_KEY_PREFIX must not be empty")
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"IAP_LOG_LEVEL is not a valid level: {self.log_level}")
        if self.log_format not in ("json", "console"):
            errors.append(f"IAP_LOG_FORMAT must be 'json' or 'console', got: {self.log_format}")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - PURCHASE MANAGER CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
