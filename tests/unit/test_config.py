"""Unit tests for configuration module."""

import os
from decimal import Decimal
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from src.core.config import Settings, get_settings

REQUIRED_ENV = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SECRET_KEY": "test-secret",
}


class TestSettings:
    """Tests for Settings class."""

    def test_settings_loads_from_environment(self) -> None:
        """Test that Settings loads values from environment variables."""
        env_vars = {
            **REQUIRED_ENV,
            "APP_NAME": "test-app",
            "APP_ENV": "testing",
            "DEBUG": "true",
            "HOST": "127.0.0.1",
            "PORT": "9000",
            "PLATFORM_FEE_RATE": "0.15",
            "PAYOUT_CURRENCY": "usd",
            "PAYOUT_TIMEOUT_SECONDS": "5",
            "PAYOUT_PARALLEL": "true",
            "PAYMENT_WEBHOOK_SECRET": "whsec",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings()

            assert settings.app_name == "test-app"
            assert settings.app_env == "testing"
            assert settings.debug is True
            assert settings.host == "127.0.0.1"
            assert settings.port == 9000
            assert settings.supabase_url == "https://test.supabase.co"
            assert settings.platform_fee_rate == Decimal("0.15")
            assert settings.payout_currency == "usd"
            assert settings.payout_timeout_seconds == 5.0
            assert settings.payout_parallel is True
            assert settings.payment_webhook_secret == "whsec"

    def test_settings_cors_origins_list(self) -> None:
        """Test that CORS origins are correctly parsed into a list."""
        env_vars = {
            **REQUIRED_ENV,
            "CORS_ORIGINS": "http://localhost:3000, http://example.com , http://test.com",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            origins = Settings().cors_origins_list

            assert origins == ["http://localhost:3000", "http://example.com", "http://test.com"]

    def test_settings_is_production_property(self) -> None:
        """Test the is_production property."""
        env_vars = {**REQUIRED_ENV, "APP_ENV": "production"}

        with patch.dict(os.environ, env_vars, clear=False):
            assert Settings().is_production is True

        env_vars["APP_ENV"] = "development"
        with patch.dict(os.environ, env_vars, clear=False):
            assert Settings().is_production is False

    def test_settings_default_values(self) -> None:
        """Test that default values are applied correctly."""
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = Settings()

            assert settings.app_name == "marketplace-settlement"
            assert settings.app_env == "development"
            assert settings.debug is False
            assert settings.port == 8080
            assert settings.platform_fee_rate == Decimal("0.10")
            assert settings.payout_currency == "thb"
            assert settings.payout_timeout_seconds == 15.0
            assert settings.payout_parallel is False
            assert settings.payment_webhook_secret == ""

    @pytest.mark.parametrize("rate", ["-0.01", "1", "1.5"])
    def test_settings_rejects_fee_rate_out_of_range(self, rate: str) -> None:
        """Test that the platform fee rate must be in [0, 1)."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "PLATFORM_FEE_RATE": rate}, clear=True):
            with pytest.raises(ValidationError):
                Settings()

    def test_settings_rejects_non_positive_timeout(self) -> None:
        """Test that payouts always have an upper time bound."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "PAYOUT_TIMEOUT_SECONDS": "0"}, clear=True):
            with pytest.raises(ValidationError):
                Settings()

    def test_settings_validation_error_missing_required(self) -> None:
        """Test that validation errors are raised for missing required fields."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings()

            error_fields = [e["loc"][0] for e in exc_info.value.errors()]
            assert "supabase_url" in error_fields
            assert "supabase_secret_key" in error_fields

    def test_stripe_test_mode(self) -> None:
        """Test detection of Stripe test keys."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "STRIPE_SECRET_KEY": "sk_test_abc"}, clear=True):
            assert Settings().is_stripe_test_mode is True


class TestGetSettings:
    """Tests for get_settings function."""

    def test_get_settings_returns_cached_singleton(self) -> None:
        """Test that get_settings returns the same cached instance."""
        get_settings.cache_clear()

        settings1 = get_settings()
        settings2 = get_settings()

        assert isinstance(settings1, Settings)
        assert settings1 is settings2

        get_settings.cache_clear()

    def test_get_settings_cache_can_be_cleared(self) -> None:
        """Test that cache can be cleared to reload settings."""
        get_settings.cache_clear()

        settings1 = get_settings()
        get_settings.cache_clear()
        settings2 = get_settings()

        assert settings1 is not settings2

        get_settings.cache_clear()
