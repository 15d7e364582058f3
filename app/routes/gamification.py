"""
Gamification and user endpoints - leaderboard, badges, profiles and ledger.
"""

from typing import List
from fastapi import APIRouter, Depends, Query, status

from app.dependencies import ServiceContainer, get_container
from app.models.user import Badge, Reward, User, UserCreate

router = APIRouter(tags=["Gamification"])


@router.get("/gamification/leaderboard", response_model=List[User])
async def leaderboard(
    limit: int = Query(20, ge=1, le=100),
    container: ServiceContainer = Depends(get_container),
):
    return await container.users.leaderboard(limit)


@router.get("/gamification/badges", response_model=List[Badge])
async def badges(container: ServiceContainer = Depends(get_container)):
    return container.users.badge_catalog()


@router.post("/users", response_model=User, status_code=status.HTTP_201_CREATED)
async def create_user(user: UserCreate, container: ServiceContainer = Depends(get_container)):
    return await container.users.create_user(user)


@router.get("/users/{user_id}", response_model=User)
async def get_user(user_id: str, container: ServiceContainer = Depends(get_container)):
    return await container.users.get_user(user_id)


@router.get("/users/{user_id}/rewards", response_model=List[Reward])
async def get_rewards(user_id: str, container: ServiceContainer = Depends(get_container)):
    """Append-only reward ledger of a user, oldest first."""
    return await container.users.get_rewards(user_id)
