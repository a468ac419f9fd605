"""Per-order markers for downstream settlement steps."""

import logging

from src.core.supabase import get_supabase_client
from src.services.settlement_state import utc_now

logger = logging.getLogger(__name__)

INVENTORY_STEP = "inventory_adjusted"
CART_STEP = "cart_cleared"
SUB_ORDERS_STEP = "sub_orders_propagated"
RECEIPT_EMAIL_STEP = "receipt_email"


def notification_step(notification_type: str, user_id: str) -> str:
    return f"notify:{notification_type}:{user_id}"


class StepLedger:
    """Records which settlement steps have been claimed for an order.

    A step is claimed by inserting a row into ``settlement_steps``, which
    has a unique key on ``(order_id, step)``. Only the caller whose insert
    creates the row gets ``True`` back, so a step runs at most once per
    order no matter how many deliveries reach it.
    """

    def __init__(self) -> None:
        """Initialize step ledger with database client."""
        self.client = get_supabase_client()

    async def claim(self, order_id: str, step: str) -> bool:
        """Claim a step for an order.

        Args:
            order_id: The order's ID.
            step: Step name, e.g. ``inventory_adjusted`` or ``cart_cleared``.

        Returns:
            bool: True if the caller should run the step.
        """
        response = (
            self.client.table("settlement_steps")
            .upsert(
                {"order_id": order_id, "step": step, "created_at": utc_now()},
                on_conflict="order_id,step",
                ignore_duplicates=True,
            )
            .execute()
        )
        claimed = bool(response.data)
        if not claimed:
            logger.info("Step %s already claimed for order %s, skipping", step, order_id)
        return claimed

    async def completed_steps(self, order_id: str) -> set[str]:
        """List the steps already claimed for an order."""
        response = (
            self.client.table("settlement_steps")
            .select("step")
            .eq("order_id", order_id)
            .execute()
        )
        return {row["step"] for row in response.data or []}
