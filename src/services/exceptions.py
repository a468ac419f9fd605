"""Domain exceptions raised by the settlement pipeline."""


class SettlementError(Exception):
    """Base exception for settlement failures."""


class MalformedEventError(SettlementError):
    """Webhook payload cannot be interpreted. Never retryable."""


class OrderNotFoundError(SettlementError):
    """Order id from charge metadata does not resolve. Never retryable."""

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")
