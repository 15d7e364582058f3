"""
Reward Engine - points, badges and the reward ledger.

DESIGN PRINCIPLES:
- The ledger is append-only; user points are a cache of its sum
- Ledger append and points increment are one atomic storage operation
- Grants are idempotent per (user, issue, reason)
"""

from app.core.errors import RewardAlreadyGranted, StorageConflict
from app.models.base import new_id
from app.models.notification import EventType, NotificationEvent
from app.models.user import BADGE_CATALOG, Reward, RewardReason, User
from app.repositories.base import UserRepository
from app.services.follow_notifier import FollowNotifier
from typing import Callable, Dict, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


class RewardEngine:

    REWARD_POINTS: Dict[RewardReason, int] = {
        RewardReason.REPORT_SUBMITTED: 10,
        RewardReason.UPVOTE_CAST: 2,
        RewardReason.REPORT_RESOLVED: 50,
    }

    # User counters incremented together with the points
    REWARD_COUNTERS: Dict[RewardReason, Dict[str, int]] = {
        RewardReason.REPORT_SUBMITTED: {"reports_count": 1},
        RewardReason.UPVOTE_CAST: {"upvotes_cast": 1},
        RewardReason.REPORT_RESOLVED: {"reports_resolved": 1},
    }

    BADGE_RULES: List[Tuple[str, Callable[[User], bool]]] = [
        ("first_report", lambda user: user.reports_count >= 1),
        ("civic_hero", lambda user: user.reports_count >= 10),
        ("top_voter", lambda user: user.upvotes_cast >= 25),
        ("problem_solver", lambda user: user.reports_resolved >= 5),
    ]

    def __init__(self, users: UserRepository, notifier: Optional[FollowNotifier] = None):
        self.users = users
        self.notifier = notifier

    async def grant(
        self,
        user_id: str,
        reason: RewardReason,
        points: Optional[int] = None,
        issue_id: Optional[str] = None,
    ) -> Reward:
        """
        Grant a reward, or return the existing ledger entry if this
        (user, issue, reason) was already paid.
        """
        existing = await self.users.find_reward(user_id, reason, issue_id)
        if existing is not None:
            logger.info(f"Reward {reason.value} already granted to {user_id} for issue {issue_id}, skipping")
            return existing

        await self._ensure_user(user_id)
        reward = Reward(
            id=new_id(),
            user_id=user_id,
            points=self.REWARD_POINTS[reason] if points is None else points,
            reason=reason,
            issue_id=issue_id,
        )
        try:
            user = await self.users.apply_reward(reward, self.REWARD_COUNTERS.get(reason, {}))
        except RewardAlreadyGranted:
            # A concurrent request won the race; its entry stands.
            logger.info(f"Concurrent {reason.value} grant for {user_id} detected, treating as no-op")
            return await self.users.find_reward(user_id, reason, issue_id) or reward

        logger.info(f"🏆 Granted {reward.points} points to {user_id} ({reason.value}, issue {issue_id})")
        await self._after_grant(user)
        return reward

    async def _ensure_user(self, user_id: str) -> None:
        """Citizens get a profile on their first rewarded action."""
        if await self.users.get(user_id) is not None:
            return
        try:
            await self.users.create(User(id=user_id, name=user_id))
            logger.info(f"Created profile for new user {user_id}")
        except StorageConflict:
            pass  # created concurrently

    async def _after_grant(self, user: User) -> None:
        await self.users.set_impact_score(user.id, self.impact_score(user))

        earned = {badge_id for badge_id, rule in self.BADGE_RULES if rule(user) and badge_id not in user.badges}
        if not earned:
            return
        new_badges = await self.users.add_badges(user.id, earned)
        for badge_id in sorted(new_badges):
            badge = BADGE_CATALOG[badge_id]
            logger.info(f"🏅 {user.id} earned badge {badge.name}")
            if self.notifier:
                await self.notifier.notify_user(user.id, NotificationEvent(
                    event_type=EventType.BADGE,
                    title=f"Badge Earned: {badge.name} {badge.icon}",
                    body=badge.description,
                    data={"badge_id": badge_id},
                ))

    @staticmethod
    def impact_score(user: User) -> int:
        return user.reports_resolved * 10 + user.reports_count
