"""
Notification inbox - what a user reads back after delivery.
"""

from app.core.errors import NotFoundError
from app.models.notification import Notification, NotificationList
from app.repositories.base import NotificationRepository
import logging

logger = logging.getLogger(__name__)


class NotificationInbox:

    def __init__(self, notifications: NotificationRepository):
        self.notifications = notifications

    async def list_for_user(self, user_id: str, limit: int = 50) -> NotificationList:
        entries = await self.notifications.list_for_user(user_id, limit=limit)
        unread = await self.notifications.count_unread(user_id)
        return NotificationList(notifications=entries, unread_count=unread)

    async def mark_read(self, user_id: str, notification_id: str) -> Notification:
        notification = await self.notifications.mark_read(user_id, notification_id)
        if notification is None:
            raise NotFoundError("Notification", notification_id)
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        changed = await self.notifications.mark_all_read(user_id)
        logger.info(f"Marked {changed} notifications read for {user_id}")
        return changed
