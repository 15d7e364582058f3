"""
Priority Scoring Service - system-derived triage ranking.

DESIGN PRINCIPLES:
- Priority is SYSTEM-DERIVED, NOT user-editable
- Priority score: 0-100 (higher = more urgent)
- Monotonic in support and in severity tier
- Never recomputed for resolved/rejected issues
"""

from app.models.issue import Issue, Severity
from app.models.base import utc_now
from app.repositories.base import IssueRepository
from datetime import datetime
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)


class PriorityScorer:
    """
    Combines severity, citizen support and age into one score.

    Factors:
    1. Severity tier (dominant)
    2. Upvotes, capped so support cannot outrank a whole tier alone
    3. Age boost, so old unresolved issues do not silently sink
    """

    SEVERITY_WEIGHTS: Dict[Severity, float] = {
        Severity.HIGH: 50.0,
        Severity.MEDIUM: 30.0,
        Severity.LOW: 10.0,
    }

    UPVOTE_POINTS = 2.0
    UPVOTE_CAP = 30.0

    # Per-day age boost and cap. Higher tiers get a cap at least as large
    # as lower tiers so age never inverts the severity ordering.
    AGE_POINTS_PER_DAY: Dict[Severity, float] = {
        Severity.HIGH: 2.0,
        Severity.MEDIUM: 2.0,
        Severity.LOW: 1.0,
    }
    AGE_CAP: Dict[Severity, float] = {
        Severity.HIGH: 20.0,
        Severity.MEDIUM: 20.0,
        Severity.LOW: 10.0,
    }

    def score(self, severity: Severity, upvote_count: int, age_hours: float) -> float:
        base = self.SEVERITY_WEIGHTS[severity]
        support = min(max(upvote_count, 0) * self.UPVOTE_POINTS, self.UPVOTE_CAP)
        age_days = max(age_hours, 0.0) / 24
        age = min(age_days * self.AGE_POINTS_PER_DAY[severity], self.AGE_CAP[severity])
        return round(max(0.0, min(100.0, base + support + age)), 2)

    def score_issue(self, issue: Issue, now: Optional[datetime] = None) -> float:
        return self.score(issue.ai_severity, len(issue.upvotes), issue.age_hours(now))


class PriorityService:
    """Persists recomputed scores for open issues."""

    def __init__(self, issues: IssueRepository, scorer: PriorityScorer):
        self.issues = issues
        self.scorer = scorer

    async def rescore_issue(self, issue: Issue) -> Optional[Issue]:
        """
        Recalculate and store the score of one issue.

        Returns None for terminal issues (left untouched).
        """
        if not issue.is_open:
            return None
        score = self.scorer.score_issue(issue)
        return await self.issues.set_priority(issue.id, score)

    async def rescore_open_issues(self) -> int:
        """Periodic sweep; returns how many issues were rescored."""
        count = 0
        for issue in await self.issues.list_open():
            try:
                if await self.rescore_issue(issue) is not None:
                    count += 1
            except Exception as e:
                logger.warning(f"Failed to rescore issue {issue.id}: {e}")
        logger.info(f"Rescored {count} open issues at {utc_now().isoformat()}")
        return count
