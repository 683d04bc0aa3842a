"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Values shipped in .env.example that must never reach the payment gateway
_PLACEHOLDER_PREFIX = "your-"


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Conflux API"
    api_version: str = "0.1.0"
    api_description: str = "Metered multi-provider AI chat with credit and model purchases"
    run_migrations_on_startup: bool = False

    # Session authentication (HS256 bearer tokens issued by the web frontend)
    session_jwt_secret: str = ""
    session_jwt_expire_hours: int = 24 * 30

    # LLM Providers
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-sonnet-20241022"
    deepseek_api_key: str = ""
    deepseek_base_url: str = "https://api.deepseek.com"
    deepseek_model: str = "deepseek-chat"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    perplexity_api_key: str = ""
    perplexity_base_url: str = "https://api.perplexity.ai"
    perplexity_model: str = "sonar"
    xai_api_key: str = ""
    xai_base_url: str = "https://api.x.ai/v1"
    xai_model: str = "grok-2-latest"

    provider_timeout_seconds: float = 60.0
    provider_max_tokens: int = 500

    # Payment Provider - Razorpay
    razorpay_key_id: str = ""  # Public key id (rzp_test_... or rzp_live_...)
    razorpay_key_secret: str = ""  # Secret used for order API and payment signatures
    razorpay_webhook_secret: str = ""  # Webhook signing secret (dashboard)
    payment_currency: str = "INR"

    # Metering
    initial_credits: int = 10  # Credits granted on lazy account creation
    history_page_size: int = 50
    sessions_page_size: int = 20
    payment_history_page_size: int = 50
    history_context_turns: int = 10  # Prior exchanges sent to each provider

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "conflux-api"

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
        Payment credentials are deliberately not checked here: a missing
        gateway only disables purchases (reported per request).
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

        if self.provider_timeout_seconds <= 0:
            errors.append("PROVIDER_TIMEOUT_SECONDS must be positive")

        if self.initial_credits < 0:
            errors.append("INITIAL_CREDITS cannot be negative")

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
    def razorpay_configured(self) -> bool:
        """Whether Razorpay order and signature credentials are usable."""
        for value in (self.razorpay_key_id, self.razorpay_key_secret):
            if not value or value.startswith(_PLACEHOLDER_PREFIX):
                return False
        return True


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
