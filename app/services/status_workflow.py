"""
Status Workflow Engine - strict issue state machine.

DESIGN PRINCIPLES:
- ALLOWED_TRANSITIONS is the single source of truth for status changes
- No skipping states, nothing leaves a terminal state
- Every transition appends exactly one timeline entry
- Transitions are committed with compare-and-swap on the issue version
- Assignment acknowledges a Submitted issue through the same table
- Rewards and notifications run after the commit and never undo it
"""

from app.core.errors import InvalidTransition, NotFoundError, StorageConflict, TransientStorageError, ValidationError
from app.models.base import utc_now
from app.models.issue import Issue, IssueStatus, StatusUpdate, issue_summary
from app.models.notification import EventType, NotificationEvent
from app.models.user import RewardReason
from app.repositories.base import IssueRepository, MunicipalRepository
from app.services.follow_notifier import FollowNotifier
from app.services.reward_engine import RewardEngine
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


class IssueStateMachine:
    """
    Rules:
    - Submitted → Acknowledged | Rejected
    - Acknowledged → InProgress | Rejected
    - InProgress → Resolved | Rejected
    - Resolved, Rejected are terminal
    """

    ALLOWED_TRANSITIONS: Dict[IssueStatus, List[IssueStatus]] = {
        IssueStatus.SUBMITTED: [IssueStatus.ACKNOWLEDGED, IssueStatus.REJECTED],
        IssueStatus.ACKNOWLEDGED: [IssueStatus.IN_PROGRESS, IssueStatus.REJECTED],
        IssueStatus.IN_PROGRESS: [IssueStatus.RESOLVED, IssueStatus.REJECTED],
        IssueStatus.RESOLVED: [],  # Terminal state
        IssueStatus.REJECTED: [],  # Terminal state
    }

    # Attempts at the compare-and-swap before giving up
    MAX_ATTEMPTS = 2

    def __init__(
        self,
        issues: IssueRepository,
        municipal: MunicipalRepository,
        rewards: RewardEngine,
        notifier: FollowNotifier,
    ):
        self.issues = issues
        self.municipal = municipal
        self.rewards = rewards
        self.notifier = notifier

    @classmethod
    def is_valid_transition(cls, from_status: IssueStatus, to_status: IssueStatus) -> bool:
        return to_status in cls.ALLOWED_TRANSITIONS.get(from_status, [])

    @classmethod
    def allowed_transitions(cls, current_status: IssueStatus) -> List[IssueStatus]:
        return list(cls.ALLOWED_TRANSITIONS.get(current_status, []))

    @classmethod
    def initial_timeline(cls, reporter_id: str, comment: str = "Issue reported by citizen") -> List[StatusUpdate]:
        return [StatusUpdate(status=IssueStatus.SUBMITTED, updated_by=reporter_id, comment=comment)]

    @classmethod
    def apply(
        cls,
        issue: Issue,
        to_status: IssueStatus,
        actor_id: str,
        comment: Optional[str] = None,
        resolution_proof: Optional[str] = None,
    ) -> Issue:
        """
        Validate a transition and return the updated copy of `issue`.
        The input issue is never modified.

        Raises:
            InvalidTransition: target not reachable from the current status
            ValidationError: resolving without a resolution proof
        """
        if not cls.is_valid_transition(issue.status, to_status):
            raise InvalidTransition(
                current_status=issue.status.value,
                requested_status=to_status.value,
                allowed=[status.value for status in cls.allowed_transitions(issue.status)],
            )
        if to_status == IssueStatus.RESOLVED and not resolution_proof:
            raise ValidationError("resolution_proof", "A resolution proof image is required to resolve an issue")

        updated = issue.model_copy(deep=True)
        updated.status_timeline.append(StatusUpdate(
            status=to_status,
            timestamp=utc_now(),
            updated_by=actor_id,
            comment=comment or f"Status changed to {to_status.value}",
        ))
        updated.status = to_status
        if to_status == IssueStatus.RESOLVED:
            updated.resolved_by = actor_id
            updated.resolution_proof = resolution_proof
        return updated

    async def transition(
        self,
        issue_id: str,
        to_status: IssueStatus,
        actor_id: str,
        comment: Optional[str] = None,
        resolution_proof: Optional[str] = None,
    ) -> Issue:
        """
        Apply a staff status change.

        The current status is re-read on every attempt, so of two concurrent
        requests from the same prior state only one can succeed; the other
        sees the new status and fails with InvalidTransition.
        """
        before, saved = await self._commit(
            issue_id,
            lambda issue: self.apply(issue, to_status, actor_id, comment, resolution_proof),
        )
        logger.info(f"✅ Issue {issue_id}: {before.status.value} → {to_status.value} by {actor_id}")
        await self._after_transition(saved)
        return saved

    async def assign(
        self,
        issue_id: str,
        actor_id: str,
        department_tag: Optional[str] = None,
        assigned_to: Optional[str] = None,
        deadline: Optional[datetime] = None,
    ) -> Issue:
        """
        Route an issue to a department and/or field worker.

        A Submitted issue moves to Acknowledged through the transition
        table in the same commit. The assigned worker is notified.

        Raises:
            ValidationError: nothing to assign, or the issue is closed
        """
        changes = {
            key: value
            for key, value in (("department_tag", department_tag), ("assigned_to", assigned_to), ("deadline", deadline))
            if value is not None
        }
        if not changes:
            raise ValidationError("assignment", "Provide a department, a worker or a deadline")

        def mutate(issue: Issue) -> Issue:
            if issue.status.is_terminal:
                raise ValidationError("status", f"Cannot assign a {issue.status.value} issue")
            updated = issue.model_copy(deep=True, update=changes)
            if issue.status == IssueStatus.SUBMITTED:
                updated = self.apply(
                    updated, IssueStatus.ACKNOWLEDGED, actor_id,
                    comment=f"Assigned to {department_tag or 'department'}",
                )
            return updated

        before, saved = await self._commit(issue_id, mutate)
        logger.info(f"📌 Issue {issue_id} assigned by {actor_id}: {', '.join(sorted(changes))}")

        if saved.status != before.status:
            await self._after_transition(saved)
        if assigned_to:
            await self.notifier.notify_user(assigned_to, NotificationEvent(
                event_type=EventType.ASSIGNMENT,
                title="New Task Assigned",
                body=f'"{saved.title}" at {saved.location.address or "unknown location"}',
                data={key: str(value) for key, value in issue_summary(saved).items()},
            ))
        return saved

    async def _commit(self, issue_id: str, mutate: Callable[[Issue], Issue]) -> Tuple[Issue, Issue]:
        """
        Read, mutate and compare-and-swap, retrying once on a concurrent write.
        Returns (issue as read, issue as saved).
        """
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            issue = await self.issues.get(issue_id)
            if issue is None:
                raise NotFoundError("Issue", issue_id)

            updated = mutate(issue)
            try:
                saved = await self.issues.compare_and_swap(updated, expected_version=issue.version)
                return issue, saved
            except StorageConflict as e:
                if attempt == self.MAX_ATTEMPTS:
                    raise TransientStorageError(f"Issue {issue_id} kept changing concurrently: {e}") from e
                logger.warning(f"Concurrent update on issue {issue_id}, retrying with fresh state")

    async def _after_transition(self, issue: Issue) -> None:
        entry = issue.status_timeline[-1]
        event = NotificationEvent(
            event_type=EventType.STATUS,
            title=f"Status Update: {issue.title[:30]}",
            body=f"Changed to {issue.status.value}" + (f": {entry.comment}" if entry.comment else ""),
            data={key: str(value) for key, value in issue_summary(issue).items()},
        )

        if issue.status == IssueStatus.RESOLVED:
            try:
                await self.rewards.grant(issue.reporter_id, RewardReason.REPORT_RESOLVED, issue_id=issue.id)
            except Exception as e:
                logger.error(f"⚠️ Resolution reward for issue {issue.id} failed: {e}", exc_info=True)

        await self.notifier.notify_user(issue.reporter_id, event)

        if issue.status.is_terminal:
            await self._notify_page_followers(issue, event)

    async def _notify_page_followers(self, issue: Issue, event: NotificationEvent) -> int:
        try:
            page = await self.municipal.find_page_for_department(issue.department_tag)
        except Exception as e:
            logger.warning(f"⚠️ Could not resolve owning page for issue {issue.id}: {e}")
            return 0
        if page is None:
            logger.info(f"No municipal page owns department {issue.department_tag}, skipping follower fan-out")
            return 0
        return await self.notifier.notify_followers(page, event)
