"""Webhook API routes for the payment provider."""

import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Request, status

from src.api.middleware.error_handler import WebhookSignatureError
from src.core.config import get_settings
from src.schemas.webhook import WebhookAck
from src.services.settlement_service import SettlementService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "x-webhook-signature"


def verify_signature(payload: bytes, signature: str | None, secret: str) -> None:
    """Check the hex HMAC-SHA256 of the raw body against the header.

    Raises:
        WebhookSignatureError: If the header is missing or does not match.
    """
    if not signature:
        raise WebhookSignatureError("Missing X-Webhook-Signature header")
    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature.strip()):
        raise WebhookSignatureError("Invalid signature")


@router.post(
    "/payments",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Handle payment provider webhooks",
    description="Receives charge events and runs the settlement pipeline.",
)
async def payment_webhook(request: Request) -> WebhookAck:
    """Handle payment provider charge events.

    Handles:
    - charge.complete (paid, successful): marks orders paid, adjusts stock,
      pays sellers, clears carts, updates sub-orders, notifies users
    - charge.failed / charge.complete (failed): marks pending orders failed
    - charge.expired / charge.complete (expired): marks pending orders expired

    Every handled or permanently unprocessable event is acknowledged with
    200 so the provider stops retrying. Unexpected errors surface as 500
    through the error handler middleware and the provider redelivers.

    Args:
        request: FastAPI request object for reading raw body and headers.

    Returns:
        WebhookAck: Acknowledgment message.

    Raises:
        WebhookSignatureError: 400 if a webhook secret is configured and the
            signature is missing or invalid.
    """
    payload = await request.body()

    secret = get_settings().payment_webhook_secret
    if secret:
        verify_signature(payload, request.headers.get(SIGNATURE_HEADER), secret)

    try:
        body = json.loads(payload)
    except ValueError:
        logger.warning("Webhook body is not valid JSON (%d bytes), ignoring", len(payload))
        return WebhookAck()

    logger.debug("Payload size: %d bytes", len(payload))

    service = SettlementService()
    report = await service.handle_event(body)

    for order in report.orders:
        logger.info("Order %s: %s", order.order_id, order.action)

    # Always return 200 OK to acknowledge receipt (idempotent)
    return WebhookAck()
