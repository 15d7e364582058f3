"""
Pydantic models for citizen issues.

The Issue aggregate owns its location and status timeline by value;
both are embedded sub-documents, never separate entities.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Set, Dict
from enum import Enum

from app.models.base import utc_now


class IssueStatus(str, Enum):
    """
    Issue lifecycle status. Legal transitions live in
    app.services.status_workflow.IssueStateMachine.ALLOWED_TRANSITIONS.
    """
    SUBMITTED = "Submitted"
    ACKNOWLEDGED = "Acknowledged"
    IN_PROGRESS = "InProgress"
    RESOLVED = "Resolved"
    REJECTED = "Rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (IssueStatus.RESOLVED, IssueStatus.REJECTED)


OPEN_STATUSES = [IssueStatus.SUBMITTED, IssueStatus.ACKNOWLEDGED, IssueStatus.IN_PROGRESS]


class Severity(str, Enum):
    """AI severity tier, set once at intake."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class GeoPoint(BaseModel):
    """Geographic point with optional free-text address."""
    longitude: float = Field(..., ge=-180, le=180)
    latitude: float = Field(..., ge=-90, le=90)
    address: Optional[str] = Field(None, max_length=500)


class StatusUpdate(BaseModel):
    """One entry of the append-only status timeline."""
    status: IssueStatus
    timestamp: datetime = Field(default_factory=utc_now)
    updated_by: Optional[str] = None
    comment: Optional[str] = None


class IssueCreate(BaseModel):
    """
    Incoming citizen submission.

    Required fields are checked by the intake orchestrator so that a
    missing field produces an actionable ValidationError naming it.
    """
    reporter_id: str
    title: Optional[str] = Field(None, max_length=200)
    description: str = Field("", max_length=2000)
    category: Optional[str] = Field(None, max_length=100)
    image: Optional[str] = Field(None, description="Primary image reference")
    media_proof: List[str] = Field(default_factory=list, description="Additional proof images")
    location: Optional[GeoPoint] = None
    department_tag: Optional[str] = None
    merge_duplicates: bool = Field(
        default=False,
        description="Merge into a nearby open issue instead of failing with a duplicate conflict",
    )

    class Config:
        json_schema_extra = {
            "example": {
                "reporter_id": "u-citizen-1",
                "title": "Deep pothole near bus stop",
                "description": "Two-wheelers are swerving around it.",
                "category": "Pothole",
                "image": "https://cdn.example.com/issues/pothole.jpg",
                "location": {"longitude": 72.75, "latitude": 19.30, "address": "Station Road"},
            }
        }


class Issue(BaseModel):
    """A citizen report and its full lifecycle record."""
    id: str
    reporter_id: str
    title: str
    description: str = ""
    category: str
    image: str
    media_proof: List[str] = Field(default_factory=list)
    location: GeoPoint
    geohash: str = Field(..., description="Grid cell used by the duplicate index")

    department_tag: str = "General"
    assigned_to: Optional[str] = Field(None, description="Field worker handling the issue")
    deadline: Optional[datetime] = None
    status: IssueStatus = IssueStatus.SUBMITTED
    status_timeline: List[StatusUpdate] = Field(default_factory=list)
    priority_score: float = 0.0
    ai_severity: Severity = Severity.MEDIUM
    ai_tags: Set[str] = Field(default_factory=set)
    upvotes: Set[str] = Field(default_factory=set)
    resolved_by: Optional[str] = None
    resolution_proof: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=0, description="Optimistic concurrency counter")

    @property
    def is_open(self) -> bool:
        return not self.status.is_terminal

    def age_hours(self, now: Optional[datetime] = None) -> float:
        now = now or utc_now()
        return max(0.0, (now - self.created_at).total_seconds() / 3600)


class IntakeResult(BaseModel):
    """Outcome of a submission: a new issue, or a merge into an existing one."""
    issue: Issue
    created: bool = True
    merged_into: Optional[str] = None
    classifier_fallback: bool = False


class TransitionRequest(BaseModel):
    """Staff request to move an issue to a new status."""
    status: IssueStatus
    actor_id: str = Field(..., description="Staff user performing the change")
    comment: Optional[str] = Field(None, max_length=500)
    resolution_proof: Optional[str] = Field(None, description="Required when resolving")


class AssignmentRequest(BaseModel):
    """
    Admin request to route an issue to a department and/or field worker.
    A Submitted issue is acknowledged as part of the assignment.
    """
    actor_id: str
    department_tag: Optional[str] = Field(None, max_length=100)
    assigned_to: Optional[str] = None
    deadline: Optional[datetime] = None


class VoteResult(BaseModel):
    issue_id: str
    upvote_count: int
    priority_score: float
    newly_cast: bool


def issue_summary(issue: Issue) -> Dict:
    """Compact payload used in notification events."""
    return {
        "issue_id": issue.id,
        "title": issue.title,
        "status": issue.status.value,
        "department": issue.department_tag,
    }


class VoteRequest(BaseModel):
    user_id: str
