"""Application configuration management using Pydantic Settings."""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="marketplace-settlement", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")

    # Stripe (seller payouts through Connect transfers)
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")

    # Payment webhook
    payment_webhook_secret: str = Field(
        default="",
        description="Shared secret for X-Webhook-Signature HMAC checks. Empty disables the check.",
    )

    # Settlement
    platform_fee_rate: Decimal = Field(
        default=Decimal("0.10"),
        description="Fraction of gross retained by the marketplace when no fee was recorded at checkout",
    )
    payout_currency: str = Field(default="thb", description="Currency used for seller transfers")
    payout_timeout_seconds: float = Field(default=15.0, gt=0, description="Upper bound for a single payout call")
    payout_parallel: bool = Field(default=False, description="Dispatch payouts for different sellers concurrently")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Marketplace <noreply@example.com>",
        description="From address for transactional emails",
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Frontend application URL for notification and email links",
    )

    @field_validator("platform_fee_rate")
    @classmethod
    def check_fee_rate(cls, value: Decimal) -> Decimal:
        """Reject fee rates outside [0, 1)."""
        if value < 0 or value >= 1:
            raise ValueError("platform_fee_rate must be >= 0 and < 1")
        return value

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
