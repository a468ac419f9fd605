"""Stripe client configuration for seller payouts."""

import logging

import stripe

from src.core.config import get_settings

logger = logging.getLogger(__name__)


def configure_stripe() -> None:
    """Configure Stripe SDK with API key from settings.

    This should be called once at application startup. Without a key,
    payout dispatch fails per seller and is recorded as a transfer error.
    """
    settings = get_settings()
    if settings.stripe_secret_key:
        stripe.api_key = settings.stripe_secret_key
    else:
        logger.warning("Stripe secret key not configured. Seller payouts will fail.")


def get_stripe() -> stripe:
    """Get the configured Stripe module.

    Returns:
        stripe: The Stripe module with API key configured.

    Note:
        Stripe SDK uses module-level configuration, so this returns
        the stripe module itself.
    """
    return stripe
