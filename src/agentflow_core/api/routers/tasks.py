"""Task API endpoints: creation, lookup, transitions and workflow actions."""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ... import crud, models, schemas
from ...database import get_db
from ...errors import AgentFlowError, TaskNotFoundError
from ...events import EventBus
from ...state_machine import get_allowed_transitions
from ...task_actions import TASK_ACTIONS, run_task_action
from ...transitions import allowed_transitions_for, transition_task
from ..dependencies import get_events, to_http_exception

logger = logging.getLogger("agentflow-core.tasks")

router = APIRouter(tags=["tasks"])


def task_to_response(task: models.Task) -> schemas.TaskResponse:
    """Convert Task model to TaskResponse schema."""
    return schemas.TaskResponse(
        id=task.id,
        epic_id=task.epic_id,
        position=task.position,
        title=task.title,
        description=task.description or "",
        acceptance_criteria=task.acceptance_criteria or [],
        state=task.state,
        pr_url=task.pr_url,
        branch_name=task.branch_name,
        blocked_reason=task.blocked_reason,
        blocked_from_state=task.blocked_from_state,
        attempts=task.attempts,
        merge_approved=task.merge_approved,
        version=task.version,
        allowed_transitions=get_allowed_transitions(task.state),
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


@router.post("/", response_model=schemas.TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    task_data: schemas.TaskCreate,
    db: Session = Depends(get_db),
):
    """
    Create a task in an existing epic.

    - **epic_id**: Owning epic UUID (required)
    - **title**: Task title
    - **description**: Task description (optional)
    - **acceptance_criteria**: List of criteria (optional)
    - **position**: 1-based position (default: after the last task)
    """
    try:
        task = crud.create_task(db, task_data)
    except AgentFlowError as e:
        raise to_http_exception(e)
    crud.sync_epic_status(db, task.epic_id)
    db.refresh(task)
    return task_to_response(task)


@router.get("/{task_id}", response_model=schemas.TaskResponse)
def get_task(task_id: UUID, db: Session = Depends(get_db)):
    """Get a task by UUID."""
    task = crud.get_task(db, task_id)
    if not task:
        raise to_http_exception(TaskNotFoundError(task_id))
    return task_to_response(task)


@router.post("/{task_id}/transition", response_model=schemas.TaskResponse)
def transition_task_state(
    task_id: UUID,
    transition: schemas.TaskTransition,
    db: Session = Depends(get_db),
    events: EventBus = Depends(get_events),
):
    """
    Transition a task to a new state.

    Valid transitions are enforced by the state machine. Moving to BLOCKED
    requires **blocked_reason**. Pass **expected_version** to reject the
    change if the task was modified since it was read.

    Errors: 404 (task not found), 422 (invalid transition), 400 (missing
    blocked reason), 409 (concurrent modification)
    """
    try:
        task = transition_task(
            db,
            task_id,
            transition.target_state,
            pr_url=transition.pr_url,
            branch_name=transition.branch_name,
            blocked_reason=transition.blocked_reason,
            actor=transition.actor,
            expected_version=transition.expected_version,
            events=events,
        )
    except AgentFlowError as e:
        raise to_http_exception(e)
    return task_to_response(task)


@router.get("/{task_id}/transitions", response_model=list[models.TaskState])
def list_allowed_transitions(task_id: UUID, db: Session = Depends(get_db)):
    """States the task may move to next."""
    try:
        return allowed_transitions_for(db, task_id)
    except AgentFlowError as e:
        raise to_http_exception(e)


@router.post("/{task_id}/actions/{action}", response_model=schemas.TaskResponse)
def perform_task_action(
    task_id: UUID,
    action: str,
    action_request: Optional[schemas.TaskActionRequest] = None,
    db: Session = Depends(get_db),
    events: EventBus = Depends(get_events),
):
    """
    Run a workflow action on a task.

    Actions: start, submit_pr, start_validation, complete_validation,
    approve_merge, merge, block, retry.

    Errors: 404 (unknown action or task), 409 (preconditions not met)
    """
    if action not in TASK_ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown task action: {action}",
        )
    try:
        task = run_task_action(db, task_id, action, action_request, events=events)
    except AgentFlowError as e:
        raise to_http_exception(e)
    return task_to_response(task)
