"""
Notification inbox endpoints.
"""

from fastapi import APIRouter, Depends, Query

from app.dependencies import ServiceContainer, get_container
from app.models.base import BaseResponse
from app.models.notification import Notification, NotificationList

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/{user_id}", response_model=NotificationList)
async def list_notifications(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    container: ServiceContainer = Depends(get_container),
):
    """Newest first, with the total unread count."""
    return await container.inbox.list_for_user(user_id, limit=limit)


@router.put("/{user_id}/read-all", response_model=BaseResponse)
async def mark_all_read(user_id: str, container: ServiceContainer = Depends(get_container)):
    changed = await container.inbox.mark_all_read(user_id)
    return BaseResponse(message=f"{changed} notifications marked as read")


@router.put("/{user_id}/{notification_id}/read", response_model=Notification)
async def mark_read(user_id: str, notification_id: str, container: ServiceContainer = Depends(get_container)):
    return await container.inbox.mark_read(user_id, notification_id)
