"""
User Service - profiles, reward history and the leaderboard.
"""

from app.core.errors import NotFoundError
from app.models.base import new_id
from app.models.user import BADGE_CATALOG, Badge, Reward, User, UserCreate
from app.repositories.base import UserRepository
from typing import List
import logging

logger = logging.getLogger(__name__)


class UserService:
    """
    Service for user management.
    """

    def __init__(self, users: UserRepository):
        self.users = users

    async def create_user(self, data: UserCreate) -> User:
        user = await self.users.create(User(id=new_id(), **data.model_dump()))
        logger.info(f"✅ User created: {user.id} ({user.role.value})")
        return user

    async def get_user(self, user_id: str) -> User:
        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def get_rewards(self, user_id: str) -> List[Reward]:
        await self.get_user(user_id)
        return await self.users.list_rewards(user_id)

    async def leaderboard(self, limit: int = 20) -> List[User]:
        return await self.users.top_users(limit)

    @staticmethod
    def badge_catalog() -> List[Badge]:
        return list(BADGE_CATALOG.values())
