"""
Threaded comments on issues.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from app.models.base import utc_now


class CommentCreate(BaseModel):
    """Model for creating a comment."""
    user_id: str
    text: str = Field(..., min_length=1, max_length=1000)
    parent_comment_id: Optional[str] = None  # For nested comments


class Comment(BaseModel):
    id: str
    issue_id: str
    user_id: str
    text: str
    parent_comment_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class CommentNode(BaseModel):
    """Comment with its replies, for thread rendering."""
    comment: Comment
    replies: List["CommentNode"] = Field(default_factory=list)


CommentNode.model_rebuild()
