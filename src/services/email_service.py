"""Email service using Resend for transactional emails."""

import logging
from decimal import Decimal
from typing import Any

import resend

from src.core.config import get_settings

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.enabled = bool(settings.resend_api_key)
        self.from_email = settings.email_from_address
        self.frontend_url = settings.frontend_url

    async def send_payment_receipt(
        self,
        to_email: str,
        order_id: str,
        total_amount: Decimal,
        currency: str,
    ) -> dict[str, Any]:
        """Send a payment receipt to the buyer.

        Args:
            to_email: Buyer email address.
            order_id: The paid order's ID.
            total_amount: Amount charged, in major units.
            currency: Currency code shown next to the amount.

        Returns:
            dict: ``success`` flag plus the Resend email ID or an error.
        """
        if not self.enabled:
            return {"success": False, "error": "Email is not configured"}

        orders_url = f"{self.frontend_url}/profile?tab=orders"
        short_id = order_id[-8:]
        amount = f"{total_amount:,.2f} {currency.upper()}"

        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Payment received</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1 style="font-size: 22px;">Payment received</h1>
    <p>We received your payment of <strong>{amount}</strong> for order <strong>#{short_id}</strong>.</p>
    <p>The seller has been notified and will start preparing your order.</p>
    <p><a href="{orders_url}" style="color: #667eea;">View your orders</a></p>
</body>
</html>
"""

        text_content = f"""
Payment received

We received your payment of {amount} for order #{short_id}.
The seller has been notified and will start preparing your order.

View your orders: {orders_url}
"""

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": f"Payment received for order #{short_id}",
                "html": html_content,
                "text": text_content,
            })

            logger.info("Payment receipt sent to %s, id: %s", to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send payment receipt to %s: %s", to_email, str(e))
            return {"success": False, "error": str(e)}
