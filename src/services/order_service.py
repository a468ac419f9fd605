"""Order store access for the settlement pipeline."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from src.core.supabase import get_supabase_client
from src.services.exceptions import OrderNotFoundError
from src.services.settlement_state import (
    expired_update,
    failed_update,
    paid_update,
    utc_now,
)

logger = logging.getLogger(__name__)


def to_decimal(value: Any) -> Decimal | None:
    """Parse a stored amount (numeric, string or None) into a Decimal."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        logger.warning("Ignoring unparseable amount: %r", value)
        return None


@dataclass
class LineItem:
    """A purchased product within an order."""

    product_id: str
    quantity: int
    unit_price: Decimal = Decimal("0")


@dataclass
class SellerGroup:
    """The part of an order sold by one shop."""

    shop_id: str | None
    shop_name: str | None
    items: list[LineItem]
    gross_amount: Decimal
    platform_fee: Decimal | None = None


@dataclass
class OrderAggregate:
    """An order with its seller groups, line items and linked orders."""

    order_id: str
    buyer_id: str | None
    is_cart_checkout: bool
    groups: list[SellerGroup]
    total_amount: Decimal
    payment_status: str
    fulfillment_status: str
    cart_item_ids: list[str] = field(default_factory=list)
    sub_order_ids: list[str] = field(default_factory=list)
    settlement_started_at: str | None = None
    settlement_completed_at: str | None = None

    @property
    def line_items(self) -> list[LineItem]:
        return [item for group in self.groups for item in group.items]

    @property
    def is_settled(self) -> bool:
        """True once every downstream settlement step has run."""
        return self.payment_status == "completed" and bool(self.settlement_completed_at)

    @property
    def needs_resume(self) -> bool:
        """True when this service started settling the order but did not finish.

        A completed order without a start stamp was paid through another path
        and is never resumed.
        """
        return (
            self.payment_status == "completed"
            and bool(self.settlement_started_at)
            and not self.settlement_completed_at
        )


def _parse_items(raw_items: list[dict[str, Any]] | None) -> list[LineItem]:
    items: list[LineItem] = []
    for raw in raw_items or []:
        product_id = raw.get("product_id")
        if not product_id:
            logger.warning("Skipping line item without product_id: %s", raw)
            continue
        items.append(
            LineItem(
                product_id=str(product_id),
                quantity=int(raw.get("quantity") or 1),
                unit_price=to_decimal(raw.get("unit_price")) or Decimal("0"),
            )
        )
    return items


def _items_total(items: list[LineItem]) -> Decimal:
    return sum((item.unit_price * item.quantity for item in items), Decimal("0"))


def _recorded_fee(
    gross: Decimal, platform_fee: Any, seller_amount: Any
) -> Decimal | None:
    """Fee written at checkout, or implied by a recorded seller amount."""
    fee = to_decimal(platform_fee)
    if fee is not None:
        return fee
    net = to_decimal(seller_amount)
    if net is not None:
        return gross - net
    return None


def build_aggregate(row: dict[str, Any]) -> OrderAggregate:
    """Determine the shape of an order row.

    Cart checkouts carry a ``shops`` array of per-seller groups; direct
    purchases carry a flat ``items`` array and a single ``shop_id``.
    """
    shops = row.get("shops")
    is_cart_checkout = row.get("type") == "cart_checkout" or bool(shops)

    groups: list[SellerGroup] = []
    if is_cart_checkout:
        for shop in shops or []:
            items = _parse_items(shop.get("items"))
            gross = to_decimal(shop.get("subtotal"))
            if gross is None:
                gross = _items_total(items)
            groups.append(
                SellerGroup(
                    shop_id=shop.get("shop_id"),
                    shop_name=shop.get("shop_name"),
                    items=items,
                    gross_amount=gross,
                    platform_fee=_recorded_fee(
                        gross, shop.get("platform_fee"), shop.get("seller_amount")
                    ),
                )
            )
    else:
        items = _parse_items(row.get("items"))
        gross = to_decimal(row.get("total_amount"))
        if gross is None:
            gross = _items_total(items)
        groups.append(
            SellerGroup(
                shop_id=row.get("shop_id"),
                shop_name=row.get("shop_name"),
                items=items,
                gross_amount=gross,
                platform_fee=_recorded_fee(
                    gross, row.get("platform_fee"), row.get("seller_amount")
                ),
            )
        )

    total = to_decimal(row.get("total_amount"))
    if total is None:
        total = sum((group.gross_amount for group in groups), Decimal("0"))

    return OrderAggregate(
        order_id=str(row["id"]),
        buyer_id=row.get("buyer_id"),
        is_cart_checkout=is_cart_checkout,
        groups=groups,
        total_amount=total,
        payment_status=row.get("payment_status") or "pending",
        fulfillment_status=row.get("status") or "pending",
        cart_item_ids=[str(i) for i in row.get("cart_item_ids") or []],
        sub_order_ids=[str(i) for i in row.get("sub_orders") or []],
        settlement_started_at=row.get("settlement_started_at"),
        settlement_completed_at=row.get("settlement_completed_at"),
    )


class OrderService:
    """Service for reading and transitioning orders.

    Every status change is a conditional update keyed on the current
    payment status, so two concurrent deliveries of the same event cannot
    both apply it.
    """

    def __init__(self) -> None:
        """Initialize order service with database client."""
        self.client = get_supabase_client()

    async def get_order(self, order_id: str) -> dict[str, Any] | None:
        """Get an order row by ID.

        Args:
            order_id: The order's ID.

        Returns:
            dict | None: The order data or None if not found.
        """
        response = (
            self.client.table("orders")
            .select("*")
            .eq("id", order_id)
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def load_aggregate(self, order_id: str) -> OrderAggregate:
        """Load an order and its seller groups as one view.

        Raises:
            OrderNotFoundError: If the order does not exist.
        """
        row = await self.get_order(order_id)
        if not row:
            raise OrderNotFoundError(order_id)
        return build_aggregate(row)

    async def mark_paid(
        self, order_id: str, charge_id: str | None, advance_fulfillment: bool = True
    ) -> bool:
        """Move a pending order to completed, and fulfillment to processing.

        Returns:
            bool: True if this call performed the transition, False if the
            order was no longer pending.
        """
        response = (
            self.client.table("orders")
            .update(paid_update(charge_id, advance_fulfillment=advance_fulfillment))
            .eq("id", order_id)
            .eq("payment_status", "pending")
            .execute()
        )
        applied = bool(response.data)
        if applied:
            logger.info("Order %s marked as paid (charge %s)", order_id, charge_id)
        return applied

    async def mark_failed(
        self,
        order_id: str,
        charge_id: str | None,
        failure_code: str | None = None,
        failure_message: str | None = None,
    ) -> bool:
        """Move a pending order to failed. Completed orders are never touched."""
        response = (
            self.client.table("orders")
            .update(failed_update(charge_id, failure_code, failure_message))
            .eq("id", order_id)
            .eq("payment_status", "pending")
            .execute()
        )
        applied = bool(response.data)
        if applied:
            logger.info("Order %s marked as failed: %s", order_id, failure_code)
        return applied

    async def mark_expired(self, order_id: str, charge_id: str | None) -> bool:
        """Move a pending order to expired. Completed orders are never touched."""
        response = (
            self.client.table("orders")
            .update(expired_update(charge_id))
            .eq("id", order_id)
            .eq("payment_status", "pending")
            .execute()
        )
        applied = bool(response.data)
        if applied:
            logger.info("Order %s marked as expired", order_id)
        return applied

    async def propagate_to_sub_orders(
        self, sub_order_ids: list[str], charge_id: str | None
    ) -> int:
        """Apply the paid transition to all pending sub-orders in one write.

        Sub-orders are settled through their parent, so they are stamped
        settled in the same write and a charge naming one is a duplicate.

        Returns:
            int: Number of sub-orders updated.
        """
        if not sub_order_ids:
            return 0
        values = paid_update(charge_id)
        values["settlement_completed_at"] = values["paid_at"]
        response = (
            self.client.table("orders")
            .update(values)
            .in_("id", sub_order_ids)
            .eq("payment_status", "pending")
            .execute()
        )
        return len(response.data) if response.data else 0

    async def record_direct_transfer(
        self, order_id: str, transfer_id: str | None, transfer_status: str | None
    ) -> None:
        """Store the transfer reference on a single-seller order."""
        self.client.table("orders").update(
            {
                "transfer_id": transfer_id,
                "transfer_status": transfer_status,
                "updated_at": utc_now(),
            }
        ).eq("id", order_id).execute()

    async def mark_seller_paid(self, order_id: str) -> None:
        """Flag that payout was attempted for every seller of the order."""
        now = utc_now()
        self.client.table("orders").update(
            {"seller_paid": True, "seller_paid_at": now, "updated_at": now}
        ).eq("id", order_id).execute()

    async def mark_settled(self, order_id: str) -> None:
        """Stamp the order once all downstream steps have run."""
        now = utc_now()
        self.client.table("orders").update(
            {"settlement_completed_at": now, "updated_at": now}
        ).eq("id", order_id).execute()

    async def save_settlement_lines(self, lines: list[dict[str, Any]]) -> None:
        """Insert settlement lines, leaving lines that already exist untouched."""
        if not lines:
            return
        self.client.table("order_settlements").upsert(
            lines,
            on_conflict="order_id,shop_id",
            ignore_duplicates=True,
        ).execute()

    async def get_settlement_lines(self, order_id: str) -> list[dict[str, Any]]:
        """Get the stored settlement lines of an order."""
        response = (
            self.client.table("order_settlements")
            .select("*")
            .eq("order_id", order_id)
            .execute()
        )
        return response.data or []

    async def update_settlement_line(
        self, order_id: str, shop_id: str, values: dict[str, Any]
    ) -> None:
        """Update payout fields of one seller's settlement line."""
        (
            self.client.table("order_settlements")
            .update(values)
            .eq("order_id", order_id)
            .eq("shop_id", shop_id)
            .execute()
        )

    async def claim_settlement_line(self, order_id: str, shop_id: str) -> bool:
        """Move a line from not_attempted to dispatching.

        Returns:
            bool: True if this call took the line, False if another delivery
            already did.
        """
        response = (
            self.client.table("order_settlements")
            .update({"payout_status": "dispatching"})
            .eq("order_id", order_id)
            .eq("shop_id", shop_id)
            .eq("payout_status", "not_attempted")
            .execute()
        )
        return bool(response.data)
