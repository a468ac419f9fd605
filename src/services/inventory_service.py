"""Stock and sold-count adjustments for paid orders."""

import logging
from dataclasses import dataclass

from src.core.supabase import get_supabase_client
from src.services.order_service import OrderAggregate

logger = logging.getLogger(__name__)


@dataclass
class InventoryDelta:
    """Quantity of one product purchased in an order."""

    product_id: str
    quantity: int


class InventoryService:
    """Service for applying purchase deltas to product counters."""

    def __init__(self) -> None:
        """Initialize inventory service with database client."""
        self.client = get_supabase_client()

    @staticmethod
    def build_deltas(aggregate: OrderAggregate) -> list[InventoryDelta]:
        """Collect one delta per product across every seller group.

        Quantities for a product appearing more than once are summed.
        """
        totals: dict[str, int] = {}
        for item in aggregate.line_items:
            if item.quantity <= 0:
                continue
            totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
        return [InventoryDelta(product_id=pid, quantity=qty) for pid, qty in totals.items()]

    async def apply(self, aggregate: OrderAggregate) -> bool:
        """Decrement stock and increment sold count for an order's items.

        All products are adjusted by a single call to the
        ``apply_inventory_deltas`` database function, which uses additive
        updates (``stock = stock - qty``) so concurrent orders touching the
        same product never lose updates. Products with unlimited stock
        (``stock = -1``) only gain sold count.

        A failure is logged and swallowed: inventory drift is preferred
        over blocking payment confirmation.

        Returns:
            bool: True if the adjustment was written.
        """
        deltas = self.build_deltas(aggregate)
        if not deltas:
            logger.warning("Order %s has no line items to adjust", aggregate.order_id)
            return False

        try:
            self.client.rpc(
                "apply_inventory_deltas",
                {
                    "deltas": [
                        {"product_id": d.product_id, "quantity": d.quantity} for d in deltas
                    ]
                },
            ).execute()
        except Exception as e:
            logger.error(
                "Failed to update stock for order %s: %s", aggregate.order_id, str(e)
            )
            return False

        logger.info(
            "Stock updated for %d products in order %s", len(deltas), aggregate.order_id
        )
        return True
