"""Task transition service.

The only code path that changes a task's state. Checks run in a fixed order
(existence, version, legality, reason) and all of them happen before the
first write, so a rejected transition leaves the store untouched.
"""
import logging
from typing import Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from . import crud
from .errors import (
    ConcurrentModificationError,
    MissingReasonError,
    TaskNotFoundError,
)
from .events import EventBus, TaskStateChanged
from .models import Task, TaskState
from .state_machine import get_allowed_transitions, validate_transition

logger = logging.getLogger("agentflow-core.transitions")


def transition_task(
    db: Session,
    task_id: Union[UUID, str],
    target_state: Union[TaskState, str],
    pr_url: Optional[str] = None,
    branch_name: Optional[str] = None,
    blocked_reason: Optional[str] = None,
    actor: str = "user",
    expected_version: Optional[int] = None,
    events: Optional[EventBus] = None,
    note: Optional[str] = None,
) -> Task:
    """
    Validate and apply a task state transition.

    Args:
        db: Database session
        task_id: Task to move
        target_state: Requested state
        pr_url: Pull request URL to record (optional)
        branch_name: Branch name to record (optional)
        blocked_reason: Required when target_state is BLOCKED
        actor: Who requested the transition
        expected_version: Reject if the task's version differs
        events: Bus to publish TaskStateChanged on after commit
        note: Extra text appended to the audit entry

    Returns:
        The updated task

    Raises:
        TaskNotFoundError: Task does not exist
        ConcurrentModificationError: Version mismatch or lost update
        InvalidTransitionError: Transition not in the adjacency table
        MissingReasonError: BLOCKED requested without a reason
    """
    task = crud.get_task(db, task_id)
    if not task:
        raise TaskNotFoundError(task_id)

    if expected_version is not None and task.version != expected_version:
        raise ConcurrentModificationError(task.id, expected_version, task.version)

    target = TaskState(target_state)
    validate_transition(task.state, target)

    if target == TaskState.BLOCKED and not (blocked_reason and blocked_reason.strip()):
        raise MissingReasonError(task.state)

    from_state = task.state
    task = crud.update_task_state(
        db,
        task,
        target,
        pr_url=pr_url,
        branch_name=branch_name,
        blocked_reason=blocked_reason,
        actor=actor,
        note=note,
    )

    if events is not None:
        events.publish(
            TaskStateChanged(
                task_id=task.id,
                epic_id=task.epic_id,
                from_state=from_state,
                to_state=task.state,
                actor=actor,
                version=task.version,
            )
        )

    return task


def allowed_transitions_for(db: Session, task_id: Union[UUID, str]) -> list[TaskState]:
    """
    List the states a task may move to next.

    Raises:
        TaskNotFoundError: Task does not exist
    """
    task = crud.get_task(db, task_id)
    if not task:
        raise TaskNotFoundError(task_id)
    return get_allowed_transitions(task.state)
