"""
User, badge and reward ledger models.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Set, Dict
from enum import Enum

from app.models.base import utc_now


class UserRole(str, Enum):
    CITIZEN = "citizen"
    ADMIN = "admin"
    DEPARTMENT_ADMIN = "department_admin"
    FIELD_WORKER = "field_worker"
    SUPER_ADMIN = "super_admin"


class User(BaseModel):
    """Citizen or staff account. `points` is a cache of the reward ledger."""
    id: str
    name: str
    role: UserRole = UserRole.CITIZEN
    points: int = 0
    badges: Set[str] = Field(default_factory=set)
    reports_count: int = 0
    reports_resolved: int = 0
    upvotes_cast: int = 0
    impact_score: int = 0
    region: str = "General"
    created_at: datetime = Field(default_factory=utc_now)


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.CITIZEN
    region: str = "General"


class RewardReason(str, Enum):
    REPORT_SUBMITTED = "report_submitted"
    UPVOTE_CAST = "upvote_cast"
    REPORT_RESOLVED = "report_resolved"


class Reward(BaseModel):
    """Append-only ledger entry backing a user's cached points."""
    id: str
    user_id: str
    points: int
    reason: RewardReason
    issue_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def idempotency_key(self) -> str:
        return reward_key(self.user_id, self.reason, self.issue_id)


def reward_key(user_id: str, reason: RewardReason, issue_id: Optional[str]) -> str:
    return f"{user_id}:{issue_id or '-'}:{reason.value}"


class Badge(BaseModel):
    """Static achievement definition."""
    id: str
    name: str
    icon: str
    description: str


BADGE_CATALOG: Dict[str, Badge] = {
    badge.id: badge
    for badge in [
        Badge(id="first_report", name="First Report", icon="🏅", description="Submit your first civic report"),
        Badge(id="civic_hero", name="Civic Hero", icon="🦸", description="Submit 10 civic reports"),
        Badge(id="top_voter", name="Top Voter", icon="👍", description="Support 25 reports with an upvote"),
        Badge(id="problem_solver", name="Problem Solver", icon="🛠️", description="Have 5 of your reports resolved"),
    ]
}
