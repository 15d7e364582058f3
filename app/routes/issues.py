"""
Issue endpoints - citizen submissions, triage queue, upvotes and comments.

Domain errors raised by the services are translated to HTTP responses
by the exception handlers registered in app/main.py.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status

from app.core.errors import NotFoundError
from app.dependencies import ServiceContainer, get_container
from app.models.comment import Comment, CommentCreate, CommentNode
from app.models.issue import IntakeResult, Issue, IssueCreate, IssueStatus, VoteRequest, VoteResult

router = APIRouter(prefix="/issues", tags=["Issues"])


@router.post("", response_model=IntakeResult, status_code=status.HTTP_201_CREATED)
async def submit_issue(
    submission: IssueCreate,
    response: Response,
    container: ServiceContainer = Depends(get_container),
):
    """
    Submit a new civic issue.

    This endpoint:
    1. Validates the submission
    2. Rejects (409) or merges a duplicate within the radius
    3. Classifies severity and computes the initial priority
    4. Stores the issue and rewards the reporter

    A merged submission answers 200 with the existing issue.
    """
    result = await container.intake.submit(submission)
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return result


@router.get("", response_model=List[Issue])
async def list_issues(
    status_filter: Optional[IssueStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    container: ServiceContainer = Depends(get_container),
):
    """Triage queue, highest priority first."""
    return await container.repositories.issues.list_issues(status=status_filter, limit=limit)


@router.get("/{issue_id}", response_model=Issue)
async def get_issue(issue_id: str, container: ServiceContainer = Depends(get_container)):
    issue = await container.repositories.issues.get(issue_id)
    if issue is None:
        raise NotFoundError("Issue", issue_id)
    return issue


@router.put("/{issue_id}/upvote", response_model=VoteResult)
async def cast_upvote(
    issue_id: str,
    vote: VoteRequest,
    container: ServiceContainer = Depends(get_container),
):
    return await container.votes.cast_upvote(issue_id, vote.user_id)


@router.delete("/{issue_id}/upvote", response_model=VoteResult)
async def remove_upvote(
    issue_id: str,
    user_id: str = Query(...),
    container: ServiceContainer = Depends(get_container),
):
    return await container.votes.remove_upvote(issue_id, user_id)


@router.post("/{issue_id}/comments", response_model=Comment, status_code=status.HTTP_201_CREATED)
async def add_comment(
    issue_id: str,
    comment: CommentCreate,
    container: ServiceContainer = Depends(get_container),
):
    return await container.comments.add_comment(issue_id, comment)


@router.get("/{issue_id}/comments", response_model=List[CommentNode])
async def get_comments(issue_id: str, container: ServiceContainer = Depends(get_container)):
    return await container.comments.get_thread(issue_id)
