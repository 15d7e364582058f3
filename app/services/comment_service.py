"""
Comment Service - threaded discussion on issues.
"""

from app.core.errors import NotFoundError, ValidationError
from app.models.base import new_id
from app.models.comment import Comment, CommentCreate, CommentNode
from app.repositories.base import CommentRepository, IssueRepository
from typing import Dict, List
import logging

logger = logging.getLogger(__name__)


class CommentService:
    """Service for managing comments on issues."""

    def __init__(self, comments: CommentRepository, issues: IssueRepository):
        self.comments = comments
        self.issues = issues

    async def add_comment(self, issue_id: str, data: CommentCreate) -> Comment:
        """
        Add a comment, optionally as a reply. No nesting depth limit.

        Raises:
            NotFoundError: unknown issue or parent comment
            ValidationError: parent comment belongs to another issue
        """
        if await self.issues.get(issue_id) is None:
            raise NotFoundError("Issue", issue_id)

        if data.parent_comment_id:
            parent = await self.comments.get(data.parent_comment_id)
            if parent is None:
                raise NotFoundError("Comment", data.parent_comment_id)
            if parent.issue_id != issue_id:
                raise ValidationError("parent_comment_id", "Parent comment belongs to a different issue")

        comment = await self.comments.add(Comment(
            id=new_id(),
            issue_id=issue_id,
            user_id=data.user_id,
            text=data.text,
            parent_comment_id=data.parent_comment_id,
        ))
        logger.info(f"Comment {comment.id} added to issue {issue_id}")
        return comment

    async def get_thread(self, issue_id: str) -> List[CommentNode]:
        """Top-level comments with nested replies, oldest first."""
        comments = await self.comments.list_for_issue(issue_id)
        nodes: Dict[str, CommentNode] = {c.id: CommentNode(comment=c) for c in comments}

        roots = []
        for comment in comments:
            node = nodes[comment.id]
            parent = nodes.get(comment.parent_comment_id) if comment.parent_comment_id else None
            if parent is None:
                roots.append(node)
            else:
                parent.replies.append(node)
        return roots
