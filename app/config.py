"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = Field(default=3000, validation_alias="PORT")
    api_title: str = "Recipe Pack Billing API"
    api_version: str = "0.1.0"
    api_description: str = "One-time recipe pack purchases via Mercado Pago"

    # Payment Provider - Mercado Pago
    mp_access_token: str = ""  # APP_USR-... or TEST-...
    mp_api_base_url: str = "https://api.mercadopago.com"
    mp_use_sandbox: bool = False  # Return sandbox_init_point instead of init_point
    mp_timeout_seconds: float = 10.0
    mp_currency_id: str = "BRL"
    mp_statement_descriptor: str | None = None

    # Checkout redirects
    checkout_success_url: str = "https://google.com"
    checkout_failure_url: str = "https://google.com"
    checkout_pending_url: str | None = None  # Falls back to failure URL
    webhook_notification_url: str | None = None

    # Purchase store
    purchase_store_backend: str = "file"  # file or memory
    purchase_store_path: str = "./db.json"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "recipe-pack-billing"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start without credentials for the payment provider.
        """
        errors: list[str] = []

        if not self.mp_access_token:
            errors.append("MP_ACCESS_TOKEN is required but empty or missing")

        if self.mp_timeout_seconds <= 0:
            errors.append(f"MP_TIMEOUT_SECONDS must be positive, got: {self.mp_timeout_seconds}")

        if self.purchase_store_backend not in ("file", "memory"):
            errors.append(
                "PURCHASE_STORE_BACKEND must be 'file' or 'memory', "
                f"got: {self.purchase_store_backend}"
            )

        if self.purchase_store_backend == "file" and not self.purchase_store_path:
            errors.append("PURCHASE_STORE_PATH is required for the file store backend")

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
    def pending_url(self) -> str:
        """Redirect for pending payments (fallback to failure URL)."""
        return self.checkout_pending_url or self.checkout_failure_url


@lru_cache
def get_settings() -> Settings:
    """Get application settings instance (loaded once per process)."""
    return Settings()
