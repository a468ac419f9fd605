"""Database model type definitions."""

from src.models.notification import Notification, NotificationType
from src.models.order import (
    FulfillmentStatus,
    Order,
    OrderLineItem,
    OrderSettlement,
    PaymentStatus,
    PayoutStatus,
    SettlementStep,
    ShopGroup,
    TransferError,
)

__all__ = [
    "FulfillmentStatus",
    "Notification",
    "NotificationType",
    "Order",
    "OrderLineItem",
    "OrderSettlement",
    "PaymentStatus",
    "PayoutStatus",
    "SettlementStep",
    "ShopGroup",
    "TransferError",
]
