"""
Municipal Service - official pages, follows and page updates.
"""

from app.core.errors import NotFoundError, StorageConflict, ValidationError
from app.models.base import new_id
from app.models.municipal import Follow, MunicipalPage, MunicipalPageCreate, PagePost
from app.models.notification import EventType, NotificationEvent
from app.repositories.base import MunicipalRepository
from app.services.follow_notifier import FollowNotifier
from typing import List
import logging

logger = logging.getLogger(__name__)


class MunicipalService:

    def __init__(self, municipal: MunicipalRepository, notifier: FollowNotifier):
        self.municipal = municipal
        self.notifier = notifier

    async def _require_page(self, page_id: str) -> MunicipalPage:
        page = await self.municipal.get_page(page_id)
        if page is None:
            raise NotFoundError("MunicipalPage", page_id)
        return page

    async def create_page(self, data: MunicipalPageCreate) -> MunicipalPage:
        page = MunicipalPage(id=new_id(), **data.model_dump())
        try:
            created = await self.municipal.create_page(page)
        except StorageConflict as e:
            raise ValidationError("handle", "Handle already taken") from e
        logger.info(f"Municipal page @{created.handle} created by {created.created_by_admin_id}")
        return created

    async def follow(self, page_id: str, user_id: str) -> bool:
        """Returns False when the user already follows the page."""
        await self._require_page(page_id)
        created = await self.municipal.add_follow(Follow(follower_id=user_id, page_id=page_id))
        if created:
            logger.info(f"{user_id} now follows page {page_id}")
        return created

    async def unfollow(self, page_id: str, user_id: str) -> bool:
        await self._require_page(page_id)
        return await self.municipal.remove_follow(user_id, page_id)

    async def set_notifications(self, page_id: str, user_id: str, enabled: bool) -> bool:
        await self._require_page(page_id)
        return await self.municipal.set_notifications(user_id, page_id, enabled)

    async def list_followers(self, page_id: str) -> List[str]:
        await self._require_page(page_id)
        return [follow.follower_id for follow in await self.municipal.list_follows(page_id)]

    async def post_update(self, page_id: str, post: PagePost) -> int:
        """Publish an official update; returns how many followers were notified."""
        page = await self._require_page(page_id)
        if not page.is_active:
            raise ValidationError("page_id", f"Page @{page.handle} is inactive")
        event = NotificationEvent(
            event_type=EventType.OFFICIAL_UPDATE,
            title=f"{page.name}: {post.title}",
            body=post.body,
            data={"update_type": post.update_type},
        )
        return await self.notifier.notify_followers(page, event)
