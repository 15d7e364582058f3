"""
Firestore-backed repositories.

Collections:
- issues                 one document per issue (geohash + category indexed)
- issue_cell_guards      "{geohash}:{category}" guard docs touched by every
                         issue insert, so two nearby submissions contend on
                         the same documents and Firestore serializes them
- users, rewards         rewards use the idempotency key as document ID
- municipal_pages        with a lowercased department_key for owner lookup
- municipal_handles, follows ("{follower}_{page}")
- comments
- notifications          per-user inbox entries

The firebase_admin client is synchronous; every call runs in a worker
thread via asyncio.to_thread so request coroutines never block the loop.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

from firebase_admin import firestore
from google.api_core.exceptions import AlreadyExists

from app.core.errors import NotFoundError, RewardAlreadyGranted, StorageConflict
from app.models.base import utc_now
from app.models.comment import Comment
from app.models.issue import OPEN_STATUSES, Issue, IssueStatus
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
from app.utils.firestore_helpers import chunked, from_snapshot, to_document, where_filter
from app.utils.geo import haversine_meters

logger = logging.getLogger(__name__)

_OPEN_VALUES = {status.value for status in OPEN_STATUSES}


class FirestoreIssueRepository(IssueRepository):

    def __init__(self, db):
        self.db = db
        self._col = db.collection("issues")
        self._guards = db.collection("issue_cell_guards")

    # -- sync implementations -------------------------------------------

    def _get_sync(self, issue_id: str) -> Optional[Issue]:
        snapshot = self._col.document(issue_id).get()
        return from_snapshot(Issue, snapshot) if snapshot.exists else None

    def _open_in_cells_sync(self, cells: Set[str], category: str, transaction=None) -> List[Issue]:
        found = []
        for batch in chunked(sorted(cells)):
            query = where_filter(self._col, "geohash", "in", batch)
            query = where_filter(query, "category", "==", category)
            for snapshot in query.stream(transaction=transaction):
                issue = from_snapshot(Issue, snapshot)
                if issue.status.value in _OPEN_VALUES:
                    found.append(issue)
        return found

    def _create_sync(self, issue: Issue, dedup_cells: Set[str], dedup_radius_meters: float) -> Issue:
        issue_ref = self._col.document(issue.id)
        guard_refs = [self._guards.document(f"{cell}:{issue.category}") for cell in sorted(dedup_cells)]

        @firestore.transactional
        def insert(transaction):
            # Firestore requires all reads before any write.
            for ref in guard_refs:
                ref.get(transaction=transaction)
            for existing in self._open_in_cells_sync(dedup_cells, issue.category, transaction):
                distance = haversine_meters(
                    issue.location.latitude, issue.location.longitude,
                    existing.location.latitude, existing.location.longitude,
                )
                if distance <= dedup_radius_meters:
                    raise StorageConflict(
                        f"Open {issue.category} issue already exists within {dedup_radius_meters}m",
                        existing_id=existing.id,
                    )
            for ref in guard_refs:
                transaction.set(ref, {"touched_at": firestore.SERVER_TIMESTAMP, "last_issue_id": issue.id})
            transaction.create(issue_ref, to_document(issue))

        try:
            insert(self.db.transaction())
        except AlreadyExists as e:
            raise StorageConflict(f"Issue {issue.id} already exists", existing_id=issue.id) from e
        logger.info(f"Issue saved to Firestore: {issue.id}")
        return issue

    def _cas_sync(self, issue: Issue, expected_version: int) -> Issue:
        ref = self._col.document(issue.id)
        updated = issue.model_copy(update={"version": expected_version + 1, "updated_at": utc_now()})

        @firestore.transactional
        def swap(transaction):
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError("Issue", issue.id)
            current = (snapshot.to_dict() or {}).get("version", 0)
            if current != expected_version:
                raise StorageConflict(
                    f"Issue {issue.id} changed concurrently "
                    f"(expected version {expected_version}, found {current})"
                )
            transaction.set(ref, to_document(updated))

        swap(self.db.transaction())
        return updated

    def _toggle_upvote_sync(self, issue_id: str, user_id: str, add: bool, proof_image: Optional[str]) -> Tuple[Issue, bool]:
        ref = self._col.document(issue_id)

        @firestore.transactional
        def toggle(transaction):
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError("Issue", issue_id)
            issue = from_snapshot(Issue, snapshot)
            present = user_id in issue.upvotes
            if present == add:
                return issue, False
            if add:
                issue.upvotes.add(user_id)
                if proof_image:
                    issue.media_proof.append(proof_image)
            else:
                issue.upvotes.discard(user_id)
            issue.version += 1
            issue.updated_at = utc_now()
            transaction.set(ref, to_document(issue))
            return issue, True

        return toggle(self.db.transaction())

    def _set_priority_sync(self, issue_id: str, priority_score: float) -> Optional[Issue]:
        ref = self._col.document(issue_id)

        @firestore.transactional
        def rescore(transaction):
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError("Issue", issue_id)
            issue = from_snapshot(Issue, snapshot)
            if not issue.is_open:
                return None
            issue.priority_score = priority_score
            issue.version += 1
            transaction.update(ref, {"priority_score": priority_score, "version": issue.version})
            return issue

        return rescore(self.db.transaction())

    def _list_sync(self, status: Optional[IssueStatus], limit: int) -> List[Issue]:
        query = self._col
        if status is not None:
            query = where_filter(query, "status", "==", status.value)
        query = query.order_by("priority_score", direction=firestore.Query.DESCENDING).limit(limit)
        return [from_snapshot(Issue, snapshot) for snapshot in query.stream()]

    def _list_open_sync(self) -> List[Issue]:
        query = where_filter(self._col, "status", "in", sorted(_OPEN_VALUES))
        return [from_snapshot(Issue, snapshot) for snapshot in query.stream()]

    def _list_assigned_sync(self, worker_id: str) -> List[Issue]:
        query = where_filter(self._col, "assigned_to", "==", worker_id)
        issues = [from_snapshot(Issue, snapshot) for snapshot in query.stream()]
        issues.sort(key=lambda i: i.created_at, reverse=True)
        return issues

    # -- async interface -------------------------------------------------

    async def get(self, issue_id: str) -> Optional[Issue]:
        return await asyncio.to_thread(self._get_sync, issue_id)

    async def create(self, issue: Issue, dedup_cells: Set[str], dedup_radius_meters: float) -> Issue:
        return await asyncio.to_thread(self._create_sync, issue, dedup_cells, dedup_radius_meters)

    async def list_open_in_cells(self, cells: Set[str], category: str) -> List[Issue]:
        return await asyncio.to_thread(self._open_in_cells_sync, cells, category)

    async def compare_and_swap(self, issue: Issue, expected_version: int) -> Issue:
        return await asyncio.to_thread(self._cas_sync, issue, expected_version)

    async def add_upvote(self, issue_id: str, user_id: str, proof_image: Optional[str] = None) -> Tuple[Issue, bool]:
        return await asyncio.to_thread(self._toggle_upvote_sync, issue_id, user_id, True, proof_image)

    async def remove_upvote(self, issue_id: str, user_id: str) -> Tuple[Issue, bool]:
        return await asyncio.to_thread(self._toggle_upvote_sync, issue_id, user_id, False, None)

    async def set_priority(self, issue_id: str, priority_score: float) -> Optional[Issue]:
        return await asyncio.to_thread(self._set_priority_sync, issue_id, priority_score)

    async def list_issues(self, status: Optional[IssueStatus] = None, limit: int = 100) -> List[Issue]:
        return await asyncio.to_thread(self._list_sync, status, limit)

    async def list_open(self) -> List[Issue]:
        return await asyncio.to_thread(self._list_open_sync)

    async def list_assigned(self, worker_id: str) -> List[Issue]:
        return await asyncio.to_thread(self._list_assigned_sync, worker_id)


class FirestoreUserRepository(UserRepository):

    def __init__(self, db):
        self.db = db
        self._users = db.collection("users")
        self._rewards = db.collection("rewards")

    def _get_sync(self, user_id: str) -> Optional[User]:
        snapshot = self._users.document(user_id).get()
        return from_snapshot(User, snapshot) if snapshot.exists else None

    def _create_sync(self, user: User) -> User:
        try:
            self._users.document(user.id).create(to_document(user))
        except AlreadyExists as e:
            raise StorageConflict(f"User {user.id} already exists", existing_id=user.id) from e
        return user

    def _apply_reward_sync(self, reward: Reward, counters: Dict[str, int]) -> User:
        user_ref = self._users.document(reward.user_id)
        reward_ref = self._rewards.document(reward.idempotency_key)

        @firestore.transactional
        def grant(transaction):
            user_snapshot = user_ref.get(transaction=transaction)
            if not user_snapshot.exists:
                raise NotFoundError("User", reward.user_id)
            if reward_ref.get(transaction=transaction).exists:
                raise RewardAlreadyGranted(reward.user_id, reward.reason.value, reward.issue_id)
            user = from_snapshot(User, user_snapshot)
            updates = {"points": user.points + reward.points}
            for field_name, delta in counters.items():
                updates[field_name] = getattr(user, field_name) + delta
            reward_doc = to_document(reward)
            reward_doc["reward_id"] = reward.id
            transaction.create(reward_ref, reward_doc)
            transaction.update(user_ref, updates)
            return user.model_copy(update=updates)

        return grant(self.db.transaction())

    def _find_reward_sync(self, key: str) -> Optional[Reward]:
        snapshot = self._rewards.document(key).get()
        if not snapshot.exists:
            return None
        data = snapshot.to_dict() or {}
        data["id"] = data.pop("reward_id", snapshot.id)
        return Reward.model_validate(data)

    def _list_rewards_sync(self, user_id: str) -> List[Reward]:
        rewards = []
        for snapshot in where_filter(self._rewards, "user_id", "==", user_id).stream():
            data = snapshot.to_dict() or {}
            data["id"] = data.pop("reward_id", snapshot.id)
            rewards.append(Reward.model_validate(data))
        rewards.sort(key=lambda r: r.created_at)
        return rewards

    def _add_badges_sync(self, user_id: str, badge_ids: Set[str]) -> Set[str]:
        ref = self._users.document(user_id)

        @firestore.transactional
        def award(transaction):
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError("User", user_id)
            owned = set((snapshot.to_dict() or {}).get("badges", []))
            new = set(badge_ids) - owned
            if new:
                transaction.update(ref, {"badges": sorted(owned | new)})
            return new

        return award(self.db.transaction())

    def _top_users_sync(self, limit: int) -> List[User]:
        query = self._users.order_by("points", direction=firestore.Query.DESCENDING).limit(limit)
        return [from_snapshot(User, snapshot) for snapshot in query.stream()]

    async def get(self, user_id: str) -> Optional[User]:
        return await asyncio.to_thread(self._get_sync, user_id)

    async def create(self, user: User) -> User:
        return await asyncio.to_thread(self._create_sync, user)

    async def apply_reward(self, reward: Reward, counters: Dict[str, int]) -> User:
        return await asyncio.to_thread(self._apply_reward_sync, reward, counters)

    async def find_reward(self, user_id: str, reason: RewardReason, issue_id: Optional[str]) -> Optional[Reward]:
        return await asyncio.to_thread(self._find_reward_sync, reward_key(user_id, reason, issue_id))

    async def list_rewards(self, user_id: str) -> List[Reward]:
        return await asyncio.to_thread(self._list_rewards_sync, user_id)

    async def add_badges(self, user_id: str, badge_ids: Set[str]) -> Set[str]:
        return await asyncio.to_thread(self._add_badges_sync, user_id, badge_ids)

    async def set_impact_score(self, user_id: str, impact_score: int) -> None:
        await asyncio.to_thread(self._users.document(user_id).update, {"impact_score": impact_score})

    async def top_users(self, limit: int = 20) -> List[User]:
        return await asyncio.to_thread(self._top_users_sync, limit)


class FirestoreMunicipalRepository(MunicipalRepository):

    def __init__(self, db):
        self.db = db
        self._pages = db.collection("municipal_pages")
        self._handles = db.collection("municipal_handles")
        self._follows = db.collection("follows")

    @staticmethod
    def _follow_id(follower_id: str, page_id: str) -> str:
        return f"{follower_id}_{page_id}"

    def _create_page_sync(self, page: MunicipalPage) -> MunicipalPage:
        handle_ref = self._handles.document(page.handle.lower())
        page_ref = self._pages.document(page.id)

        @firestore.transactional
        def create(transaction):
            handle_snapshot = handle_ref.get(transaction=transaction)
            if handle_snapshot.exists:
                raise StorageConflict(
                    f"Handle @{page.handle} already taken",
                    existing_id=(handle_snapshot.to_dict() or {}).get("page_id"),
                )
            document = to_document(page)
            document["department_key"] = department_key(page.department)
            transaction.create(handle_ref, {"page_id": page.id})
            transaction.create(page_ref, document)

        create(self.db.transaction())
        return page

    def _get_page_sync(self, page_id: str) -> Optional[MunicipalPage]:
        snapshot = self._pages.document(page_id).get()
        return from_snapshot(MunicipalPage, snapshot) if snapshot.exists else None

    def _get_by_handle_sync(self, handle: str) -> Optional[MunicipalPage]:
        snapshot = self._handles.document(handle.lower()).get()
        if not snapshot.exists:
            return None
        return self._get_page_sync((snapshot.to_dict() or {}).get("page_id", ""))

    def _find_for_department_sync(self, department: str) -> Optional[MunicipalPage]:
        query = where_filter(self._pages, "department_key", "==", department_key(department))
        query = where_filter(query, "is_active", "==", True).limit(1)
        for snapshot in query.stream():
            return from_snapshot(MunicipalPage, snapshot)
        return None

    def _add_follow_sync(self, follow: Follow) -> bool:
        page_ref = self._pages.document(follow.page_id)
        follow_ref = self._follows.document(self._follow_id(follow.follower_id, follow.page_id))

        @firestore.transactional
        def add(transaction):
            if not page_ref.get(transaction=transaction).exists:
                raise NotFoundError("MunicipalPage", follow.page_id)
            if follow_ref.get(transaction=transaction).exists:
                return False
            transaction.create(follow_ref, to_document(follow))
            transaction.update(page_ref, {"followers_count": firestore.Increment(1)})
            return True

        return add(self.db.transaction())

    def _remove_follow_sync(self, follower_id: str, page_id: str) -> bool:
        page_ref = self._pages.document(page_id)
        follow_ref = self._follows.document(self._follow_id(follower_id, page_id))

        @firestore.transactional
        def remove(transaction):
            page_snapshot = page_ref.get(transaction=transaction)
            if not follow_ref.get(transaction=transaction).exists:
                return False
            transaction.delete(follow_ref)
            if page_snapshot.exists:
                count = (page_snapshot.to_dict() or {}).get("followers_count", 0)
                transaction.update(page_ref, {"followers_count": max(0, count - 1)})
            return True

        return remove(self.db.transaction())

    def _set_notifications_sync(self, follower_id: str, page_id: str, enabled: bool) -> bool:
        ref = self._follows.document(self._follow_id(follower_id, page_id))
        if not ref.get().exists:
            return False
        ref.update({"notifications_enabled": enabled})
        return True

    def _list_follows_sync(self, page_id: str, notifications_only: bool) -> List[Follow]:
        query = where_filter(self._follows, "page_id", "==", page_id)
        if notifications_only:
            query = where_filter(query, "notifications_enabled", "==", True)
        return [from_snapshot(Follow, snapshot) for snapshot in query.stream()]

    async def create_page(self, page: MunicipalPage) -> MunicipalPage:
        return await asyncio.to_thread(self._create_page_sync, page)

    async def get_page(self, page_id: str) -> Optional[MunicipalPage]:
        return await asyncio.to_thread(self._get_page_sync, page_id)

    async def get_page_by_handle(self, handle: str) -> Optional[MunicipalPage]:
        return await asyncio.to_thread(self._get_by_handle_sync, handle)

    async def find_page_for_department(self, department: str) -> Optional[MunicipalPage]:
        return await asyncio.to_thread(self._find_for_department_sync, department)

    async def add_follow(self, follow: Follow) -> bool:
        return await asyncio.to_thread(self._add_follow_sync, follow)

    async def remove_follow(self, follower_id: str, page_id: str) -> bool:
        return await asyncio.to_thread(self._remove_follow_sync, follower_id, page_id)

    async def set_notifications(self, follower_id: str, page_id: str, enabled: bool) -> bool:
        return await asyncio.to_thread(self._set_notifications_sync, follower_id, page_id, enabled)

    async def list_follows(self, page_id: str, notifications_only: bool = False) -> List[Follow]:
        return await asyncio.to_thread(self._list_follows_sync, page_id, notifications_only)


class FirestoreCommentRepository(CommentRepository):

    def __init__(self, db):
        self._col = db.collection("comments")

    def _add_sync(self, comment: Comment) -> Comment:
        self._col.document(comment.id).set(to_document(comment))
        return comment

    def _get_sync(self, comment_id: str) -> Optional[Comment]:
        snapshot = self._col.document(comment_id).get()
        return from_snapshot(Comment, snapshot) if snapshot.exists else None

    def _list_sync(self, issue_id: str) -> List[Comment]:
        query = where_filter(self._col, "issue_id", "==", issue_id)
        comments = [from_snapshot(Comment, snapshot) for snapshot in query.stream()]
        comments.sort(key=lambda c: c.created_at)
        return comments

    async def add(self, comment: Comment) -> Comment:
        return await asyncio.to_thread(self._add_sync, comment)

    async def get(self, comment_id: str) -> Optional[Comment]:
        return await asyncio.to_thread(self._get_sync, comment_id)

    async def list_for_issue(self, issue_id: str) -> List[Comment]:
        return await asyncio.to_thread(self._list_sync, issue_id)


class FirestoreNotificationRepository(NotificationRepository):

    # Firestore caps a write batch at 500 operations
    BATCH_LIMIT = 500

    def __init__(self, db):
        self.db = db
        self._col = db.collection("notifications")

    def _add_sync(self, notification: Notification) -> Notification:
        self._col.document(notification.id).set(to_document(notification))
        return notification

    def _list_sync(self, user_id: str, limit: int) -> List[Notification]:
        query = where_filter(self._col, "user_id", "==", user_id)
        query = query.order_by("created_at", direction=firestore.Query.DESCENDING).limit(limit)
        return [from_snapshot(Notification, snapshot) for snapshot in query.stream()]

    def _unread_refs_sync(self, user_id: str) -> list:
        query = where_filter(self._col, "user_id", "==", user_id)
        query = where_filter(query, "read", "==", False)
        return [snapshot.reference for snapshot in query.stream()]

    def _mark_read_sync(self, user_id: str, notification_id: str) -> Optional[Notification]:
        ref = self._col.document(notification_id)
        snapshot = ref.get()
        if not snapshot.exists:
            return None
        notification = from_snapshot(Notification, snapshot)
        if notification.user_id != user_id:
            return None
        ref.update({"read": True})
        notification.read = True
        return notification

    def _mark_all_read_sync(self, user_id: str) -> int:
        refs = self._unread_refs_sync(user_id)
        for batch_refs in chunked(refs, self.BATCH_LIMIT):
            batch = self.db.batch()
            for ref in batch_refs:
                batch.update(ref, {"read": True})
            batch.commit()
        return len(refs)

    async def add(self, notification: Notification) -> Notification:
        return await asyncio.to_thread(self._add_sync, notification)

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Notification]:
        return await asyncio.to_thread(self._list_sync, user_id, limit)

    async def count_unread(self, user_id: str) -> int:
        refs = await asyncio.to_thread(self._unread_refs_sync, user_id)
        return len(refs)

    async def mark_read(self, user_id: str, notification_id: str) -> Optional[Notification]:
        return await asyncio.to_thread(self._mark_read_sync, user_id, notification_id)

    async def mark_all_read(self, user_id: str) -> int:
        return await asyncio.to_thread(self._mark_all_read_sync, user_id)


def create_firestore_repositories(db) -> Repositories:
    return Repositories(
        issues=FirestoreIssueRepository(db),
        users=FirestoreUserRepository(db),
        municipal=FirestoreMunicipalRepository(db),
        comments=FirestoreCommentRepository(db),
        notifications=FirestoreNotificationRepository(db),
        backend="firestore",
    )
