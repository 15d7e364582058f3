"""
Repository interfaces - the persistence contract consumed by the engine.

Every component receives these explicitly; no service reaches into a
global database client. Implementations MUST enforce the uniqueness and
atomicity guarantees documented on each method at the storage layer,
not only in application code, so concurrent requests cannot violate them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from app.models.comment import Comment
from app.models.issue import Issue, IssueStatus
from app.models.municipal import Follow, MunicipalPage
from app.models.notification import Notification
from app.models.user import Reward, RewardReason, User


class IssueRepository(ABC):

    @abstractmethod
    async def get(self, issue_id: str) -> Optional[Issue]:
        pass

    @abstractmethod
    async def create(self, issue: Issue, dedup_cells: Set[str], dedup_radius_meters: float) -> Issue:
        """
        Persist a new issue.

        Uniqueness safeguard: if an open issue with the same category lies
        within `dedup_radius_meters` (searching `dedup_cells`), raise
        StorageConflict with `existing_id` set instead of inserting.
        """
        pass

    @abstractmethod
    async def list_open_in_cells(self, cells: Set[str], category: str) -> List[Issue]:
        """Open issues of `category` whose geohash is in `cells`."""
        pass

    @abstractmethod
    async def compare_and_swap(self, issue: Issue, expected_version: int) -> Issue:
        """
        Replace the stored issue only if its version still equals
        `expected_version`; the stored copy gets version + 1.
        Raises StorageConflict on mismatch.
        """
        pass

    @abstractmethod
    async def add_upvote(self, issue_id: str, user_id: str, proof_image: Optional[str] = None) -> Tuple[Issue, bool]:
        """
        Idempotent set-membership add. Returns (issue, newly_added).
        `proof_image` (duplicate merge) is appended to media_proof on a new add.
        """
        pass

    @abstractmethod
    async def remove_upvote(self, issue_id: str, user_id: str) -> Tuple[Issue, bool]:
        pass

    @abstractmethod
    async def set_priority(self, issue_id: str, priority_score: float) -> Optional[Issue]:
        """
        Store a recomputed score and bump the version, so a transition
        holding an older copy conflicts instead of overwriting the score.
        Returns None (no write) for terminal issues.
        """
        pass

    @abstractmethod
    async def list_issues(self, status: Optional[IssueStatus] = None, limit: int = 100) -> List[Issue]:
        """Issues ordered by priority score, highest first."""
        pass

    @abstractmethod
    async def list_open(self) -> List[Issue]:
        pass

    @abstractmethod
    async def list_assigned(self, worker_id: str) -> List[Issue]:
        """Issues assigned to a field worker, newest first."""
        pass


class UserRepository(ABC):

    @abstractmethod
    async def get(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def create(self, user: User) -> User:
        pass

    @abstractmethod
    async def apply_reward(self, reward: Reward, counters: Dict[str, int]) -> User:
        """
        Atomically append `reward` to the ledger and increment the user's
        `points` by `reward.points` plus each counter field by its delta.
        Raises RewardAlreadyGranted if the (user, issue, reason) key exists.
        Partial application must never be observable.
        """
        pass

    @abstractmethod
    async def find_reward(self, user_id: str, reason: RewardReason, issue_id: Optional[str]) -> Optional[Reward]:
        pass

    @abstractmethod
    async def list_rewards(self, user_id: str) -> List[Reward]:
        pass

    @abstractmethod
    async def add_badges(self, user_id: str, badge_ids: Set[str]) -> Set[str]:
        """Add badges; returns the subset that was newly earned."""
        pass

    @abstractmethod
    async def set_impact_score(self, user_id: str, impact_score: int) -> None:
        pass

    @abstractmethod
    async def top_users(self, limit: int = 20) -> List[User]:
        pass


class MunicipalRepository(ABC):

    @abstractmethod
    async def create_page(self, page: MunicipalPage) -> MunicipalPage:
        """Raises StorageConflict if the handle is taken."""
        pass

    @abstractmethod
    async def get_page(self, page_id: str) -> Optional[MunicipalPage]:
        pass

    @abstractmethod
    async def get_page_by_handle(self, handle: str) -> Optional[MunicipalPage]:
        pass

    @abstractmethod
    async def find_page_for_department(self, department: str) -> Optional[MunicipalPage]:
        """Active page owning issues tagged with `department`."""
        pass

    @abstractmethod
    async def add_follow(self, follow: Follow) -> bool:
        """
        Unique per (follower, page). Returns False if already following.
        A new follow increments the page's followers_count in the same unit.
        """
        pass

    @abstractmethod
    async def remove_follow(self, follower_id: str, page_id: str) -> bool:
        pass

    @abstractmethod
    async def set_notifications(self, follower_id: str, page_id: str, enabled: bool) -> bool:
        pass

    @abstractmethod
    async def list_follows(self, page_id: str, notifications_only: bool = False) -> List[Follow]:
        pass


class CommentRepository(ABC):

    @abstractmethod
    async def add(self, comment: Comment) -> Comment:
        pass

    @abstractmethod
    async def get(self, comment_id: str) -> Optional[Comment]:
        pass

    @abstractmethod
    async def list_for_issue(self, issue_id: str) -> List[Comment]:
        """Comments in creation order."""
        pass


class NotificationRepository(ABC):

    @abstractmethod
    async def add(self, notification: Notification) -> Notification:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Notification]:
        """Newest first."""
        pass

    @abstractmethod
    async def count_unread(self, user_id: str) -> int:
        pass

    @abstractmethod
    async def mark_read(self, user_id: str, notification_id: str) -> Optional[Notification]:
        """Returns None when the notification does not exist or belongs to someone else."""
        pass

    @abstractmethod
    async def mark_all_read(self, user_id: str) -> int:
        """Returns the number of entries that changed."""
        pass


@dataclass
class Repositories:
    """Bundle handed to the service container."""
    issues: IssueRepository
    users: UserRepository
    municipal: MunicipalRepository
    comments: CommentRepository
    notifications: NotificationRepository
    backend: str = "memory"
