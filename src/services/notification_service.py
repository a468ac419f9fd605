"""In-app notifications for buyers and sellers."""

import logging
from typing import Any

from src.core.supabase import get_supabase_client
from src.models.notification import NotificationType
from src.services.settlement_state import utc_now

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for creating user notifications and resolving shop owners."""

    def __init__(self) -> None:
        """Initialize notification service with database client."""
        self.client = get_supabase_client()
        self._owner_cache: dict[str, str | None] = {}

    async def notify(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        body: str,
        link: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> str | None:
        """Create a notification.

        Args:
            user_id: Recipient user ID.
            notification_type: Notification category.
            title: Short headline.
            body: Notification text.
            link: Optional in-app link.
            data: Optional structured payload.

        Returns:
            str | None: ID of the created notification.
        """
        response = (
            self.client.table("notifications")
            .insert(
                {
                    "user_id": user_id,
                    "type": notification_type,
                    "title": title,
                    "message": body,
                    "link": link,
                    "data": data,
                    "read": False,
                    "created_at": utc_now(),
                }
            )
            .execute()
        )
        notification_id = response.data[0].get("id") if response.data else None
        logger.info("Notification %s (%s) created for user %s", notification_id, notification_type, user_id)
        return notification_id

    async def get_shop_owner(self, shop_id: str) -> str | None:
        """Resolve a shop's owner user ID, once per shop per service instance."""
        if shop_id in self._owner_cache:
            return self._owner_cache[shop_id]

        response = (
            self.client.table("shops")
            .select("id, owner_id")
            .eq("id", shop_id)
            .maybe_single()
            .execute()
        )
        shop = response.data if response and response.data else None
        owner_id = shop.get("owner_id") if shop else None
        self._owner_cache[shop_id] = owner_id
        return owner_id

    async def get_user_email(self, user_id: str) -> str | None:
        """Get the email address on a user's profile."""
        response = (
            self.client.table("profiles")
            .select("id, email")
            .eq("id", user_id)
            .maybe_single()
            .execute()
        )
        profile = response.data if response and response.data else None
        return profile.get("email") if profile else None
