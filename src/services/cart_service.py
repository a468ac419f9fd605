"""Cart store access used after a successful payment."""

import logging

from src.core.supabase import get_supabase_client

logger = logging.getLogger(__name__)


class CartService:
    """Service for removing purchased entries from a buyer's cart."""

    def __init__(self) -> None:
        """Initialize cart service with database client."""
        self.client = get_supabase_client()

    async def remove_items(self, buyer_id: str, item_ids: list[str]) -> int:
        """Delete the buyer's cart entries in one statement.

        Args:
            buyer_id: Owner of the cart.
            item_ids: Cart item identifiers that originated the order.

        Returns:
            int: Number of cart rows deleted.
        """
        if not item_ids:
            return 0

        response = (
            self.client.table("cart_items")
            .delete()
            .eq("user_id", buyer_id)
            .in_("item_id", item_ids)
            .execute()
        )
        deleted = len(response.data) if response.data else 0
        logger.info("Cleared %d items from cart of user %s", deleted, buyer_id)
        return deleted
