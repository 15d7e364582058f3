"""
Vote Service - upvotes on issues.

Casting is an idempotent set-membership operation enforced by the store;
the upvote reward is paid only for a newly cast vote.
"""

from app.core.errors import NotFoundError
from app.models.issue import VoteResult
from app.models.notification import EventType, NotificationEvent
from app.models.user import RewardReason
from app.repositories.base import IssueRepository
from app.services.follow_notifier import FollowNotifier
from app.services.priority_scoring import PriorityService
from app.services.reward_engine import RewardEngine
import logging

logger = logging.getLogger(__name__)


class VoteService:
    """Service for managing upvotes on issues."""

    def __init__(
        self,
        issues: IssueRepository,
        priority: PriorityService,
        rewards: RewardEngine,
        notifier: FollowNotifier,
    ):
        self.issues = issues
        self.priority = priority
        self.rewards = rewards
        self.notifier = notifier

    async def cast_upvote(self, issue_id: str, user_id: str) -> VoteResult:
        """
        Add `user_id` to the issue's upvotes. Casting twice is a no-op.
        """
        if await self.issues.get(issue_id) is None:
            raise NotFoundError("Issue", issue_id)

        issue, newly_cast = await self.issues.add_upvote(issue_id, user_id)
        if not newly_cast:
            logger.info(f"User {user_id} already upvoted issue {issue_id}, no-op")
            return VoteResult(
                issue_id=issue_id, upvote_count=len(issue.upvotes),
                priority_score=issue.priority_score, newly_cast=False,
            )

        issue = await self.priority.rescore_issue(issue) or issue

        try:
            await self.rewards.grant(user_id, RewardReason.UPVOTE_CAST, issue_id=issue_id)
        except Exception as e:
            logger.warning(f"⚠️ Upvote reward for {user_id} on {issue_id} failed: {e}")

        if issue.reporter_id != user_id:
            await self.notifier.notify_user(issue.reporter_id, NotificationEvent(
                event_type=EventType.UPVOTE,
                title="Someone upvoted your report",
                body=f'"{issue.title}" now has {len(issue.upvotes)} upvotes.',
                data={"issue_id": issue_id},
            ))

        return VoteResult(
            issue_id=issue_id, upvote_count=len(issue.upvotes),
            priority_score=issue.priority_score, newly_cast=True,
        )

    async def remove_upvote(self, issue_id: str, user_id: str) -> VoteResult:
        """
        Withdraw an upvote. Rewards already paid stay in the ledger.
        """
        if await self.issues.get(issue_id) is None:
            raise NotFoundError("Issue", issue_id)

        issue, removed = await self.issues.remove_upvote(issue_id, user_id)
        if removed:
            issue = await self.priority.rescore_issue(issue) or issue
        return VoteResult(
            issue_id=issue_id, upvote_count=len(issue.upvotes),
            priority_score=issue.priority_score, newly_cast=False,
        )
