"""
Municipal page endpoints - official pages, follows and updates.
"""

from typing import List
from fastapi import APIRouter, Depends, status

from app.dependencies import ServiceContainer, get_container
from app.models.base import BaseResponse
from app.models.municipal import FollowRequest, MunicipalPage, MunicipalPageCreate, PagePost

router = APIRouter(prefix="/municipal", tags=["Municipal"])


@router.post("", response_model=MunicipalPage, status_code=status.HTTP_201_CREATED)
async def create_page(page: MunicipalPageCreate, container: ServiceContainer = Depends(get_container)):
    return await container.municipal.create_page(page)


@router.post("/{page_id}/follow", response_model=BaseResponse)
async def follow_page(
    page_id: str,
    request: FollowRequest,
    container: ServiceContainer = Depends(get_container),
):
    created = await container.municipal.follow(page_id, request.user_id)
    if request.notifications_enabled is not None:
        await container.municipal.set_notifications(page_id, request.user_id, request.notifications_enabled)
    return BaseResponse(message="Following" if created else "Already following")


@router.post("/{page_id}/unfollow", response_model=BaseResponse)
async def unfollow_page(
    page_id: str,
    request: FollowRequest,
    container: ServiceContainer = Depends(get_container),
):
    removed = await container.municipal.unfollow(page_id, request.user_id)
    return BaseResponse(message="Unfollowed" if removed else "Not following")


@router.get("/{page_id}/followers", response_model=List[str])
async def list_followers(page_id: str, container: ServiceContainer = Depends(get_container)):
    return await container.municipal.list_followers(page_id)


@router.post("/{page_id}/post")
async def post_update(
    page_id: str,
    post: PagePost,
    container: ServiceContainer = Depends(get_container),
):
    """Publish an official update to every follower with notifications on."""
    notified = await container.municipal.post_update(page_id, post)
    return {"success": True, "page_id": page_id, "notified": notified}
