"""
Municipal pages (official accounts) and follow relationships.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from enum import Enum

from app.models.base import utc_now


class PageType(str, Enum):
    DEPARTMENT = "Department"
    CITY = "City"
    EMERGENCY_AUTHORITY = "EmergencyAuthority"


class Region(BaseModel):
    city: str
    ward: Optional[str] = None


class MunicipalPage(BaseModel):
    """Official account representing a department, city, or emergency authority."""
    id: str
    name: str
    handle: str
    department: str
    region: Region
    page_type: PageType
    created_by_admin_id: str
    followers_count: int = 0
    verified: bool = True
    is_active: bool = True
    description: Optional[str] = None
    contact_email: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class MunicipalPageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    handle: str = Field(..., min_length=2, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    department: str = Field(..., min_length=1, max_length=100)
    region: Region
    page_type: PageType
    created_by_admin_id: str
    description: Optional[str] = Field(None, max_length=1000)
    contact_email: Optional[str] = None


class Follow(BaseModel):
    """Citizen → page relationship, unique per (follower_id, page_id)."""
    follower_id: str
    page_id: str
    notifications_enabled: bool = True
    created_at: datetime = Field(default_factory=utc_now)


class PagePost(BaseModel):
    """Official update published by a page."""
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field("", max_length=2000)
    update_type: str = Field("Announcement", max_length=50)


class FollowRequest(BaseModel):
    user_id: str
    notifications_enabled: Optional[bool] = None


def department_key(department: str) -> str:
    """Normalized department name used to match issues to their owning page."""
    return department.strip().lower()
