"""
Follow Notifier - fans out page updates to followers.

Never blocks or rolls back the triggering action: every delivery failure
is logged and skipped. Each event is also stored in the recipient's
notification inbox, independently of push delivery.
"""

from app.models.base import new_id
from app.models.municipal import MunicipalPage
from app.models.notification import Notification, NotificationEvent
from app.repositories.base import MunicipalRepository, NotificationRepository
from app.services.notification_transport import NotificationTransport
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class FollowNotifier:

    def __init__(
        self,
        municipal: MunicipalRepository,
        transport: NotificationTransport,
        inbox: Optional[NotificationRepository] = None,
    ):
        self.municipal = municipal
        self.transport = transport
        self.inbox = inbox

    async def notify_followers(self, page: MunicipalPage, event: NotificationEvent) -> int:
        """
        Dispatch `event` to every follower of `page` with notifications on.

        Returns:
            Number of followers successfully notified
        """
        try:
            follows = await self.municipal.list_follows(page.id, notifications_only=True)
        except Exception as e:
            logger.error(f"Failed to load followers of @{page.handle}: {e}", exc_info=True)
            return 0

        event = event.model_copy(update={"data": {**event.data, "page_id": page.id, "page_handle": page.handle}})
        notified = 0
        for follow in follows:
            if await self.notify_user(follow.follower_id, event):
                notified += 1

        logger.info(f"Notified {notified}/{len(follows)} followers of @{page.handle}: {event.title}")
        return notified

    async def notify_user(self, user_id: str, event: NotificationEvent) -> bool:
        """Direct notification to one user. Returns False on delivery failure."""
        await self._store(user_id, event)
        try:
            await self.transport.send(user_id, event)
            return True
        except Exception as e:
            logger.warning(f"⚠️ Notification to {user_id} failed: {e}")
            return False

    async def _store(self, user_id: str, event: NotificationEvent) -> None:
        if self.inbox is None:
            return
        try:
            await self.inbox.add(Notification(
                id=new_id(),
                user_id=user_id,
                event_type=event.event_type,
                title=event.title,
                body=event.body,
                data=event.data,
                created_at=event.created_at,
            ))
        except Exception as e:
            logger.warning(f"⚠️ Could not store inbox entry for {user_id}: {e}")
