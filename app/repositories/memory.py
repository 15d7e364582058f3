"""
In-memory repositories for local development (USE_MOCK_DB) and tests.

Each repository guards its compound operations with an asyncio.Lock so
that the uniqueness and compare-and-swap guarantees hold across
interleaved coroutines. Stored models are copied on the way in and out,
the way a real database returns fresh documents.
"""

import asyncio
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

from app.core.errors import NotFoundError, RewardAlreadyGranted, StorageConflict
from app.models.base import utc_now
from app.models.comment import Comment
from app.models.issue import Issue, IssueStatus
from app.models.municipal import Follow, MunicipalPage, department_key
from app.models.notification import Notification
from app.models.user import Reward, RewardReason, User, reward_key
from app.repositories.base import (
    CommentRepository,
    IssueRepository,
    MunicipalRepository,
    NotificationRepository,
    Repositories,
    UserRepository,
)
from app.utils.geo import haversine_meters


def _copy(model):
    return model.model_copy(deep=True)


class InMemoryIssueRepository(IssueRepository):

    def __init__(self):
        self._issues: Dict[str, Issue] = {}
        self._cells: Dict[str, Set[str]] = defaultdict(set)  # geohash -> issue ids
        self._lock = asyncio.Lock()

    def _require(self, issue_id: str) -> Issue:
        issue = self._issues.get(issue_id)
        if issue is None:
            raise NotFoundError("Issue", issue_id)
        return issue

    def _open_in_cells(self, cells: Set[str], category: str) -> List[Issue]:
        found = []
        for cell in cells:
            for issue_id in self._cells.get(cell, ()):
                issue = self._issues[issue_id]
                if issue.category == category and issue.is_open:
                    found.append(issue)
        return found

    async def get(self, issue_id: str) -> Optional[Issue]:
        issue = self._issues.get(issue_id)
        return _copy(issue) if issue else None

    async def create(self, issue: Issue, dedup_cells: Set[str], dedup_radius_meters: float) -> Issue:
        async with self._lock:
            for existing in self._open_in_cells(dedup_cells, issue.category):
                distance = haversine_meters(
                    issue.location.latitude, issue.location.longitude,
                    existing.location.latitude, existing.location.longitude,
                )
                if distance <= dedup_radius_meters:
                    raise StorageConflict(
                        f"Open {issue.category} issue already exists within {dedup_radius_meters}m",
                        existing_id=existing.id,
                    )
            if issue.id in self._issues:
                raise StorageConflict(f"Issue {issue.id} already exists", existing_id=issue.id)
            self._issues[issue.id] = _copy(issue)
            self._cells[issue.geohash].add(issue.id)
            return _copy(issue)

    async def list_open_in_cells(self, cells: Set[str], category: str) -> List[Issue]:
        return [_copy(issue) for issue in self._open_in_cells(cells, category)]

    async def compare_and_swap(self, issue: Issue, expected_version: int) -> Issue:
        async with self._lock:
            stored = self._require(issue.id)
            if stored.version != expected_version:
                raise StorageConflict(
                    f"Issue {issue.id} changed concurrently "
                    f"(expected version {expected_version}, found {stored.version})"
                )
            updated = issue.model_copy(deep=True, update={"version": expected_version + 1, "updated_at": utc_now()})
            self._issues[issue.id] = updated
            return _copy(updated)

    async def add_upvote(self, issue_id: str, user_id: str, proof_image: Optional[str] = None) -> Tuple[Issue, bool]:
        async with self._lock:
            stored = self._require(issue_id)
            if user_id in stored.upvotes:
                return _copy(stored), False
            stored.upvotes.add(user_id)
            if proof_image:
                stored.media_proof.append(proof_image)
            stored.version += 1
            stored.updated_at = utc_now()
            return _copy(stored), True

    async def remove_upvote(self, issue_id: str, user_id: str) -> Tuple[Issue, bool]:
        async with self._lock:
            stored = self._require(issue_id)
            if user_id not in stored.upvotes:
                return _copy(stored), False
            stored.upvotes.discard(user_id)
            stored.version += 1
            stored.updated_at = utc_now()
            return _copy(stored), True

    async def set_priority(self, issue_id: str, priority_score: float) -> Optional[Issue]:
        async with self._lock:
            stored = self._require(issue_id)
            if not stored.is_open:
                return None
            stored.priority_score = priority_score
            stored.version += 1
            return _copy(stored)

    async def list_issues(self, status: Optional[IssueStatus] = None, limit: int = 100) -> List[Issue]:
        issues = [i for i in self._issues.values() if status is None or i.status == status]
        issues.sort(key=lambda i: (i.priority_score, i.created_at), reverse=True)
        return [_copy(i) for i in issues[:limit]]

    async def list_open(self) -> List[Issue]:
        return [_copy(i) for i in self._issues.values() if i.is_open]

    async def list_assigned(self, worker_id: str) -> List[Issue]:
        issues = [i for i in self._issues.values() if i.assigned_to == worker_id]
        issues.sort(key=lambda i: i.created_at, reverse=True)
        return [_copy(i) for i in issues]


class InMemoryUserRepository(UserRepository):

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._ledger: List[Reward] = []
        self._ledger_keys: Dict[str, Reward] = {}
        self._lock = asyncio.Lock()

    def _require(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def get(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return _copy(user) if user else None

    async def create(self, user: User) -> User:
        async with self._lock:
            if user.id in self._users:
                raise StorageConflict(f"User {user.id} already exists", existing_id=user.id)
            self._users[user.id] = _copy(user)
            return _copy(user)

    async def apply_reward(self, reward: Reward, counters: Dict[str, int]) -> User:
        async with self._lock:
            user = self._require(reward.user_id)
            key = reward.idempotency_key
            if key in self._ledger_keys:
                raise RewardAlreadyGranted(reward.user_id, reward.reason.value, reward.issue_id)
            updates = {"points": user.points + reward.points}
            for field_name, delta in counters.items():
                updates[field_name] = getattr(user, field_name) + delta
            # Both writes happen with no await in between.
            self._users[user.id] = user.model_copy(update=updates)
            self._ledger.append(_copy(reward))
            self._ledger_keys[key] = self._ledger[-1]
            return _copy(self._users[user.id])

    async def find_reward(self, user_id: str, reason: RewardReason, issue_id: Optional[str]) -> Optional[Reward]:
        reward = self._ledger_keys.get(reward_key(user_id, reason, issue_id))
        return _copy(reward) if reward else None

    async def list_rewards(self, user_id: str) -> List[Reward]:
        return [_copy(r) for r in self._ledger if r.user_id == user_id]

    async def add_badges(self, user_id: str, badge_ids: Set[str]) -> Set[str]:
        async with self._lock:
            user = self._require(user_id)
            new = set(badge_ids) - user.badges
            user.badges |= new
            return new

    async def set_impact_score(self, user_id: str, impact_score: int) -> None:
        async with self._lock:
            self._require(user_id).impact_score = impact_score

    async def top_users(self, limit: int = 20) -> List[User]:
        users = sorted(self._users.values(), key=lambda u: u.points, reverse=True)
        return [_copy(u) for u in users[:limit]]


class InMemoryMunicipalRepository(MunicipalRepository):

    def __init__(self):
        self._pages: Dict[str, MunicipalPage] = {}
        self._handles: Dict[str, str] = {}
        self._follows: Dict[Tuple[str, str], Follow] = {}
        self._lock = asyncio.Lock()

    async def create_page(self, page: MunicipalPage) -> MunicipalPage:
        async with self._lock:
            handle = page.handle.lower()
            if handle in self._handles:
                raise StorageConflict(f"Handle @{page.handle} already taken", existing_id=self._handles[handle])
            self._pages[page.id] = _copy(page)
            self._handles[handle] = page.id
            return _copy(page)

    async def get_page(self, page_id: str) -> Optional[MunicipalPage]:
        page = self._pages.get(page_id)
        return _copy(page) if page else None

    async def get_page_by_handle(self, handle: str) -> Optional[MunicipalPage]:
        page_id = self._handles.get(handle.lower())
        return await self.get_page(page_id) if page_id else None

    async def find_page_for_department(self, department: str) -> Optional[MunicipalPage]:
        wanted = department_key(department)
        for page in self._pages.values():
            if page.is_active and department_key(page.department) == wanted:
                return _copy(page)
        return None

    async def add_follow(self, follow: Follow) -> bool:
        async with self._lock:
            page = self._pages.get(follow.page_id)
            if page is None:
                raise NotFoundError("MunicipalPage", follow.page_id)
            key = (follow.follower_id, follow.page_id)
            if key in self._follows:
                return False
            self._follows[key] = _copy(follow)
            page.followers_count += 1
            return True

    async def remove_follow(self, follower_id: str, page_id: str) -> bool:
        async with self._lock:
            if self._follows.pop((follower_id, page_id), None) is None:
                return False
            page = self._pages.get(page_id)
            if page is not None:
                page.followers_count = max(0, page.followers_count - 1)
            return True

    async def set_notifications(self, follower_id: str, page_id: str, enabled: bool) -> bool:
        async with self._lock:
            follow = self._follows.get((follower_id, page_id))
            if follow is None:
                return False
            follow.notifications_enabled = enabled
            return True

    async def list_follows(self, page_id: str, notifications_only: bool = False) -> List[Follow]:
        return [
            _copy(f) for (_, followed), f in self._follows.items()
            if followed == page_id and (f.notifications_enabled or not notifications_only)
        ]


class InMemoryCommentRepository(CommentRepository):

    def __init__(self):
        self._comments: Dict[str, Comment] = {}

    async def add(self, comment: Comment) -> Comment:
        self._comments[comment.id] = _copy(comment)
        return _copy(comment)

    async def get(self, comment_id: str) -> Optional[Comment]:
        comment = self._comments.get(comment_id)
        return _copy(comment) if comment else None

    async def list_for_issue(self, issue_id: str) -> List[Comment]:
        comments = [c for c in self._comments.values() if c.issue_id == issue_id]
        comments.sort(key=lambda c: c.created_at)
        return [_copy(c) for c in comments]


class InMemoryNotificationRepository(NotificationRepository):

    def __init__(self):
        self._notifications: Dict[str, Notification] = {}

    async def add(self, notification: Notification) -> Notification:
        self._notifications[notification.id] = _copy(notification)
        return _copy(notification)

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Notification]:
        mine = [n for n in self._notifications.values() if n.user_id == user_id]
        mine.sort(key=lambda n: n.created_at, reverse=True)
        return [_copy(n) for n in mine[:limit]]

    async def count_unread(self, user_id: str) -> int:
        return sum(1 for n in self._notifications.values() if n.user_id == user_id and not n.read)

    async def mark_read(self, user_id: str, notification_id: str) -> Optional[Notification]:
        notification = self._notifications.get(notification_id)
        if notification is None or notification.user_id != user_id:
            return None
        notification.read = True
        return _copy(notification)

    async def mark_all_read(self, user_id: str) -> int:
        changed = 0
        for notification in self._notifications.values():
            if notification.user_id == user_id and not notification.read:
                notification.read = True
                changed += 1
        return changed


def create_memory_repositories() -> Repositories:
    return Repositories(
        issues=InMemoryIssueRepository(),
        users=InMemoryUserRepository(),
        municipal=InMemoryMunicipalRepository(),
        comments=InMemoryCommentRepository(),
        notifications=InMemoryNotificationRepository(),
        backend="memory",
    )
