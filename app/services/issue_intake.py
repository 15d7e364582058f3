"""
Issue Intake Orchestrator - entry point for new citizen submissions.

Flow:
1. Validate the submission (nothing persisted on failure)
2. Duplicate lookup through the geohash index (reject or merge)
3. Image classification, bounded and best-effort
4. Severity + priority
5. Persist (the single commit point; the store re-checks duplicates)
6. Submission reward (best-effort, after commit)
"""

from app.core.errors import ClassifierUnavailable, DuplicateConflict, StorageConflict, TransientStorageError, ValidationError
from app.models.base import new_id
from app.models.issue import IntakeResult, Issue, IssueCreate
from app.models.user import RewardReason
from app.repositories.base import IssueRepository
from app.services.ai_plugin.base import ImageAnalysis
from app.services.ai_plugin.registry import ImageClassifierRegistry
from app.services.duplicate_detection import GeoDuplicateIndex
from app.services.priority_scoring import PriorityScorer, PriorityService
from app.services.reward_engine import RewardEngine
from app.services.severity_classifier import SeverityClassifier
from app.services.status_workflow import IssueStateMachine
from app.utils.geo import geohash_encode
from typing import Optional, Tuple
import logging

logger = logging.getLogger(__name__)


class IssueIntakeOrchestrator:

    MAX_PERSIST_ATTEMPTS = 2

    def __init__(
        self,
        issues: IssueRepository,
        duplicate_index: GeoDuplicateIndex,
        classifiers: ImageClassifierRegistry,
        severity: SeverityClassifier,
        scorer: PriorityScorer,
        priority: PriorityService,
        rewards: RewardEngine,
    ):
        self.issues = issues
        self.duplicate_index = duplicate_index
        self.classifiers = classifiers
        self.severity = severity
        self.scorer = scorer
        self.priority = priority
        self.rewards = rewards

    @staticmethod
    def validate(submission: IssueCreate) -> None:
        """
        Raises:
            ValidationError: naming the first missing or malformed field
        """
        if not submission.reporter_id or not submission.reporter_id.strip():
            raise ValidationError("reporter_id", "Reporter reference is required")
        if not submission.title or not submission.title.strip():
            raise ValidationError("title", "Title is required")
        if not submission.category or not submission.category.strip():
            raise ValidationError("category", "Category is required")
        if not submission.image or not submission.image.strip():
            raise ValidationError("image", "A primary image reference is required")
        if submission.location is None:
            raise ValidationError("location", "Location (longitude, latitude) is required")

    async def submit(self, submission: IssueCreate) -> IntakeResult:
        self.validate(submission)
        category = submission.category.strip()

        match = await self.duplicate_index.find_nearest(submission.location, category)
        if match is not None:
            existing, distance = match
            return await self._handle_duplicate(submission, existing.id, distance)

        analysis, classifier_failed = await self._analyze_image(submission.image)
        classification = self.severity.classify(category, analysis)

        issue = Issue(
            id=new_id(),
            reporter_id=submission.reporter_id,
            title=submission.title.strip(),
            description=submission.description,
            category=category,
            image=submission.image,
            media_proof=list(submission.media_proof),
            location=submission.location,
            geohash=geohash_encode(
                submission.location.latitude, submission.location.longitude, self.duplicate_index.precision
            ),
            department_tag=submission.department_tag or self.severity.department_for(category),
            status_timeline=IssueStateMachine.initial_timeline(submission.reporter_id),
            priority_score=self.scorer.score(classification.severity, 0, 0.0),
            ai_severity=classification.severity,
            ai_tags=classification.tags,
        )

        try:
            saved = await self._persist(issue)
        except StorageConflict as e:
            # Lost the race against a concurrent nearby submission
            logger.warning(f"Duplicate detected at commit for {category}: existing issue {e.existing_id}")
            return await self._handle_duplicate(submission, e.existing_id, None)

        logger.info(
            f"📝 Issue {saved.id} created: {category} severity={saved.ai_severity.value} "
            f"priority={saved.priority_score} ({classification.source} signal)"
        )

        try:
            await self.rewards.grant(saved.reporter_id, RewardReason.REPORT_SUBMITTED, issue_id=saved.id)
        except Exception as e:
            logger.warning(f"⚠️ Submission reward for issue {saved.id} failed: {e}")

        return IntakeResult(issue=saved, created=True, classifier_fallback=classifier_failed)

    async def _analyze_image(self, image_ref: str) -> Tuple[Optional[ImageAnalysis], bool]:
        """Returns (analysis or None, whether the classifier failed)."""
        try:
            return await self.classifiers.analyze(image_ref), False
        except ClassifierUnavailable as e:
            logger.warning(f"⚠️ Image classifier unavailable, using category baseline: {e}")
            return None, True

    async def _persist(self, issue: Issue) -> Issue:
        cells = self.duplicate_index.cells_for(issue.location)
        for attempt in range(1, self.MAX_PERSIST_ATTEMPTS + 1):
            try:
                return await self.issues.create(issue, cells, self.duplicate_index.radius_meters)
            except StorageConflict as e:
                if e.existing_id and e.existing_id != issue.id:
                    raise
                if attempt == self.MAX_PERSIST_ATTEMPTS:
                    raise TransientStorageError(f"Could not persist issue: {e}") from e
                logger.warning(f"Storage conflict persisting issue {issue.id}, retrying: {e}")
                issue = issue.model_copy(update={"id": new_id()})

    async def _handle_duplicate(
        self,
        submission: IssueCreate,
        existing_id: str,
        distance: Optional[float],
    ) -> IntakeResult:
        if not submission.merge_duplicates:
            raise DuplicateConflict(existing_id, distance)

        issue, newly_added = await self.issues.add_upvote(
            existing_id, submission.reporter_id, proof_image=submission.image
        )
        if newly_added:
            issue = await self.priority.rescore_issue(issue) or issue
        logger.info(f"Submission from {submission.reporter_id} merged into issue {existing_id}")
        return IntakeResult(issue=issue, created=False, merged_into=existing_id)
