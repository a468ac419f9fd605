"""Order and settlement type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict


# Status values matching database enums
PaymentStatus = Literal["pending", "completed", "failed", "expired"]
FulfillmentStatus = Literal["pending", "processing", "completed", "cancelled"]
OrderType = Literal["direct", "cart_checkout"]
PayoutStatus = Literal["not_attempted", "dispatching", "dispatched", "failed"]


class OrderLineItem(TypedDict, total=False):
    """Structure for a single purchased item.

    Stored as part of the items JSONB array (on the order for direct
    purchases, on each shop group for cart checkouts).
    """

    product_id: str
    product_name: str
    quantity: int
    unit_price: str


class ShopGroup(TypedDict, total=False):
    """One seller's share of a cart checkout order.

    Stored as part of the shops JSONB array.
    """

    shop_id: str
    shop_name: str
    items: list[OrderLineItem]
    subtotal: str
    platform_fee: str | None


class Order(TypedDict, total=False):
    """Orders table row representation."""

    id: str
    buyer_id: str
    type: OrderType
    shop_id: str | None
    shop_name: str | None
    items: list[OrderLineItem]
    shops: list[ShopGroup]
    total_amount: str
    platform_fee: str | None
    seller_amount: str | None
    payment_status: PaymentStatus
    status: FulfillmentStatus
    charge_id: str | None
    failure_code: str | None
    failure_reason: str | None
    transfer_id: str | None
    transfer_status: str | None
    seller_paid: bool
    seller_paid_at: datetime | None
    cart_item_ids: list[str]
    sub_orders: list[str]
    paid_at: datetime | None
    settlement_started_at: datetime | None
    settlement_completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class OrderSettlement(TypedDict, total=False):
    """Order_settlements table row, one per seller per order.

    Amounts are written once and never recomputed.
    """

    id: str
    order_id: str
    shop_id: str
    shop_name: str | None
    gross_amount: str
    platform_fee: str
    net_amount: str
    payout_status: PayoutStatus
    transfer_id: str | None
    dispatched_at: datetime | None
    created_at: datetime


class TransferError(TypedDict):
    """Transfer_errors table row. Append-only."""

    order_id: str
    shop_id: str
    amount: str
    error: str
    timestamp: str


class SettlementStep(TypedDict):
    """Settlement_steps table row marking a downstream step as claimed."""

    order_id: str
    step: str
    created_at: str
