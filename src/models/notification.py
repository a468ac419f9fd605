"""Notification model type definitions."""

from datetime import datetime
from typing import Any, Literal, TypedDict


NotificationType = Literal["payment_received", "new_order"]


class Notification(TypedDict, total=False):
    """Notifications table row representation."""

    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    link: str | None
    data: dict[str, Any] | None
    read: bool
    created_at: datetime
