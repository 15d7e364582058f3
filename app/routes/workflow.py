"""
Workflow endpoints - staff status changes and assignment.
"""

from typing import List
from fastapi import APIRouter, Depends

from app.core.errors import NotFoundError
from app.dependencies import ServiceContainer, get_container
from app.models.issue import AssignmentRequest, Issue, TransitionRequest
from app.services.status_workflow import IssueStateMachine

router = APIRouter(prefix="/workflows", tags=["Workflow"])


@router.put("/{issue_id}/status", response_model=Issue)
async def update_status(
    issue_id: str,
    request: TransitionRequest,
    container: ServiceContainer = Depends(get_container),
):
    """
    Move an issue along the lifecycle.

    Invalid transitions answer 409 with the current status and the
    statuses reachable from it.
    """
    return await container.state_machine.transition(
        issue_id,
        request.status,
        actor_id=request.actor_id,
        comment=request.comment,
        resolution_proof=request.resolution_proof,
    )


@router.get("/{issue_id}/transitions")
async def get_allowed_transitions(issue_id: str, container: ServiceContainer = Depends(get_container)):
    issue = await container.repositories.issues.get(issue_id)
    if issue is None:
        raise NotFoundError("Issue", issue_id)
    return {
        "issue_id": issue_id,
        "current_status": issue.status.value,
        "allowed": [s.value for s in IssueStateMachine.allowed_transitions(issue.status)],
    }


@router.put("/{issue_id}/assign", response_model=Issue)
async def assign_issue(
    issue_id: str,
    request: AssignmentRequest,
    container: ServiceContainer = Depends(get_container),
):
    """Assign to a department and/or field worker; acknowledges a Submitted issue."""
    return await container.state_machine.assign(
        issue_id,
        actor_id=request.actor_id,
        department_tag=request.department_tag,
        assigned_to=request.assigned_to,
        deadline=request.deadline,
    )


@router.get("/assigned/{worker_id}", response_model=List[Issue])
async def list_assigned(worker_id: str, container: ServiceContainer = Depends(get_container)):
    return await container.repositories.issues.list_assigned(worker_id)
