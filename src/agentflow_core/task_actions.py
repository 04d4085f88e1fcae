"""Task actions: workflow commands built from validated transitions.

Each action checks its own preconditions (raising ActionNotAllowedError),
performs one or more transitions through the transition service, and then
re-derives the owning epic's status.
"""
import logging
from typing import Callable, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from . import crud
from .errors import (
    ActionNotAllowedError,
    AgentFlowError,
    TaskNotFoundError,
    ValidationRunNotFoundError,
)
from .events import EpicChanged, EventBus
from .models import MergePolicy, Task, TaskState, ValidationStatus
from .schemas import TaskActionRequest
from .transitions import transition_task

logger = logging.getLogger("agentflow-core.task_actions")

IdLike = Union[UUID, str]


def _load_task(db: Session, task_id: IdLike) -> Task:
    task = crud.get_task(db, task_id)
    if not task:
        raise TaskNotFoundError(task_id)
    return task


def _require_state(task: Task, action: str, *states: TaskState) -> None:
    if task.state not in states:
        expected = " or ".join(s.value for s in states)
        raise ActionNotAllowedError(
            f"Cannot {action} task {task.id} in state {task.state.value}; expected {expected}"
        )


def _finish(db: Session, task: Task, events: Optional[EventBus]) -> Task:
    """Re-derive the epic status after an action and return the fresh task."""
    before = task.epic.status
    epic = crud.sync_epic_status(db, task.epic_id)
    if events is not None and epic is not None and epic.status != before:
        events.publish(EpicChanged(epic_id=epic.id, change="updated", status=epic.status.value))
    db.refresh(task)
    return task


def branch_name_for(task: Task, attempt: int) -> str:
    """Branch naming convention for agent work: task-<short id>-attempt-<n>."""
    return f"task-{str(task.id)[:8]}-attempt-{attempt}"


def start_task(
    db: Session,
    task_id: IdLike,
    branch_name: Optional[str] = None,
    actor: str = "user",
    events: Optional[EventBus] = None,
) -> Task:
    """Start (or restart) work on a PLANNED or BLOCKED task."""
    task = _load_task(db, task_id)
    _require_state(task, "start", TaskState.PLANNED, TaskState.BLOCKED)

    note = "Retrying blocked task" if task.state == TaskState.BLOCKED else "Task started"
    branch = branch_name or branch_name_for(task, (task.attempts or 0) + 1)
    task = transition_task(
        db, task.id, TaskState.RUNNING,
        branch_name=branch, actor=actor, events=events, note=note,
    )
    logger.info(f"Started task {task.id} on branch {branch} (attempt {task.attempts})")
    return _finish(db, task, events)


def submit_pull_request(
    db: Session,
    task_id: IdLike,
    pr_url: Optional[str],
    branch_name: Optional[str] = None,
    actor: str = "user",
    events: Optional[EventBus] = None,
) -> Task:
    """Record the pull request produced by a RUNNING task."""
    task = _load_task(db, task_id)
    _require_state(task, "submit a pull request for", TaskState.RUNNING)
    if not pr_url or not pr_url.strip():
        raise ActionNotAllowedError("pr_url is required to submit a pull request")

    task = transition_task(
        db, task.id, TaskState.PR_READY,
        pr_url=pr_url.strip(), branch_name=branch_name,
        actor=actor, events=events, note="Pull request submitted",
    )
    return _finish(db, task, events)


def start_validation(
    db: Session,
    task_id: IdLike,
    actor: str = "user",
    events: Optional[EventBus] = None,
) -> Task:
    """Move a task into VALIDATING and open a PENDING validation run."""
    task = _load_task(db, task_id)
    _require_state(task, "validate", TaskState.PR_READY, TaskState.FIXING)

    # Run and state change land in one commit
    crud.create_validation_run(db, task.id, actor=actor, commit=False)
    try:
        task = transition_task(
            db, task.id, TaskState.VALIDATING,
            actor=actor, events=events, note="Validation run started",
        )
    except AgentFlowError:
        db.rollback()
        raise
    return _finish(db, task, events)


def complete_validation(
    db: Session,
    task_id: IdLike,
    passed: Optional[bool],
    run_id: Optional[IdLike] = None,
    checks: Optional[list[str]] = None,
    logs_url: Optional[str] = None,
    actor: str = "user",
    events: Optional[EventBus] = None,
) -> Task:
    """
    Record a validation outcome.

    The run (given, or the task's newest) is closed as PASSED or FAILED and
    the task moves to APPROVAL_PENDING or FIXING accordingly.
    """
    task = _load_task(db, task_id)
    _require_state(task, "complete validation of", TaskState.VALIDATING)
    if passed is None:
        raise ActionNotAllowedError("passed is required to complete validation")

    if run_id is not None:
        run = crud.get_validation_run(db, run_id)
        if not run or run.task_id != task.id:
            raise ValidationRunNotFoundError(run_id)
    else:
        run = crud.get_latest_validation_run(db, task.id)
        if not run:
            raise ActionNotAllowedError(f"Task {task.id} has no validation run to complete")

    if run.status != ValidationStatus.PENDING:
        raise ActionNotAllowedError(f"Validation run {run.id} is already {run.status.value}")

    status = ValidationStatus.PASSED if passed else ValidationStatus.FAILED
    crud.update_validation_run(
        db, run.id, status, checks=checks, logs_url=logs_url, actor=actor, commit=False,
    )

    if passed:
        target, note = TaskState.APPROVAL_PENDING, "Validation passed, awaiting approval"
    else:
        target, note = TaskState.FIXING, "Validation failed, fix attempt started"
    try:
        task = transition_task(db, task.id, target, actor=actor, events=events, note=note)
    except AgentFlowError:
        db.rollback()
        raise
    return _finish(db, task, events)


def approve_merge(
    db: Session,
    task_id: IdLike,
    actor: str = "user",
    events: Optional[EventBus] = None,
) -> Task:
    """Approve an APPROVAL_PENDING task for merging."""
    task = _load_task(db, task_id)
    _require_state(task, "approve", TaskState.APPROVAL_PENDING)
    if task.merge_approved:
        raise ActionNotAllowedError(f"Task {task.id} is already approved")

    task = crud.approve_task_merge(db, task, actor=actor)
    return _finish(db, task, events)


def merge_task(
    db: Session,
    task_id: IdLike,
    actor: str = "user",
    events: Optional[EventBus] = None,
) -> Task:
    """Merge an APPROVAL_PENDING task and mark it DONE.

    Epics with a manual merge policy require a prior approval.
    """
    task = _load_task(db, task_id)
    _require_state(task, "merge", TaskState.APPROVAL_PENDING)
    if task.epic.merge_policy == MergePolicy.MANUAL and not task.merge_approved:
        raise ActionNotAllowedError(
            f"Task {task.id} requires merge approval (epic merge policy is manual)"
        )

    task = transition_task(db, task.id, TaskState.MERGED, actor=actor, events=events, note="Pull request merged")
    task = transition_task(db, task.id, TaskState.DONE, actor=actor, events=events, note="Task completed")
    return _finish(db, task, events)


def block_task(
    db: Session,
    task_id: IdLike,
    reason: Optional[str],
    actor: str = "user",
    events: Optional[EventBus] = None,
) -> Task:
    """Block a task with a reason (MissingReasonError if blank)."""
    task = _load_task(db, task_id)
    if task.state in (TaskState.DONE, TaskState.BLOCKED):
        raise ActionNotAllowedError(f"Cannot block task {task.id} in state {task.state.value}")

    task = transition_task(db, task.id, TaskState.BLOCKED, blocked_reason=reason, actor=actor, events=events)
    return _finish(db, task, events)


def retry_task(
    db: Session,
    task_id: IdLike,
    actor: str = "user",
    events: Optional[EventBus] = None,
) -> Task:
    """Send a BLOCKED task back to PLANNED."""
    task = _load_task(db, task_id)
    _require_state(task, "retry", TaskState.BLOCKED)

    task = transition_task(db, task.id, TaskState.PLANNED, actor=actor, events=events, note="Task reset for retry")
    return _finish(db, task, events)


# Action name -> callable taking (db, task_id, request, events)
TASK_ACTIONS: dict[str, Callable[[Session, IdLike, TaskActionRequest, Optional[EventBus]], Task]] = {
    "start": lambda db, task_id, req, events: start_task(
        db, task_id, branch_name=req.branch_name, actor=req.actor, events=events
    ),
    "submit_pr": lambda db, task_id, req, events: submit_pull_request(
        db, task_id, req.pr_url, branch_name=req.branch_name, actor=req.actor, events=events
    ),
    "start_validation": lambda db, task_id, req, events: start_validation(
        db, task_id, actor=req.actor, events=events
    ),
    "complete_validation": lambda db, task_id, req, events: complete_validation(
        db, task_id, req.passed, run_id=req.run_id, checks=req.checks,
        logs_url=req.logs_url, actor=req.actor, events=events,
    ),
    "approve_merge": lambda db, task_id, req, events: approve_merge(
        db, task_id, actor=req.actor, events=events
    ),
    "merge": lambda db, task_id, req, events: merge_task(
        db, task_id, actor=req.actor, events=events
    ),
    "block": lambda db, task_id, req, events: block_task(
        db, task_id, req.reason, actor=req.actor, events=events
    ),
    "retry": lambda db, task_id, req, events: retry_task(
        db, task_id, actor=req.actor, events=events
    ),
}


def run_task_action(
    db: Session,
    task_id: IdLike,
    action: str,
    request: Optional[TaskActionRequest] = None,
    events: Optional[EventBus] = None,
) -> Task:
    """
    Dispatch a named action.

    Raises:
        ActionNotAllowedError: Unknown action or failed precondition
    """
    handler = TASK_ACTIONS.get(action)
    if handler is None:
        known = ", ".join(sorted(TASK_ACTIONS))
        raise ActionNotAllowedError(f"Unknown task action: {action}. Available actions: {known}")
    logger.info(f"Running action {action} on task {task_id}")
    return handler(db, task_id, request or TaskActionRequest(), events)
