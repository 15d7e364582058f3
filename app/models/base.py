"""
Shared model helpers.

DESIGN PRINCIPLE:
- Models reflect data structure, not business logic
- All timestamps are timezone-aware UTC
"""

from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Optional
import uuid


def utc_now() -> datetime:
    """Timezone-aware current time (UTC)."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a document ID (same shape for memory and Firestore stores)."""
    return uuid.uuid4().hex


class BaseResponse(BaseModel):
    """
    Base response model for simple acknowledgement responses.
    """
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
