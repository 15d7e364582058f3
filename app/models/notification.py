"""
Notification event records handed to the delivery transport, and the
stored inbox entries users read back.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Dict, List, Optional
from enum import Enum

from app.models.base import utc_now


class EventType(str, Enum):
    STATUS = "status"
    ASSIGNMENT = "assignment"
    OFFICIAL_UPDATE = "official_update"
    UPVOTE = "upvote"
    BADGE = "badge"


class NotificationEvent(BaseModel):
    """
    Event payload. `recipient_id` is filled in per follower during fan-out.
    Data values are strings so they can travel as FCM data fields.
    """
    event_type: EventType
    title: str
    body: str = ""
    data: Dict[str, str] = Field(default_factory=dict)
    recipient_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    def for_recipient(self, recipient_id: str) -> "NotificationEvent":
        return self.model_copy(update={"recipient_id": recipient_id})


class Notification(BaseModel):
    """Inbox entry; one per delivered event and recipient."""
    id: str
    user_id: str
    event_type: EventType
    title: str
    body: str = ""
    data: Dict[str, str] = Field(default_factory=dict)
    read: bool = False
    created_at: datetime = Field(default_factory=utc_now)


class NotificationList(BaseModel):
    notifications: List[Notification]
    unread_count: int
