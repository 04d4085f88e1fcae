"""CRUD operations for epics, tasks, validation runs and the audit log.

Every function takes the SQLAlchemy session explicitly. Mutations commit
before returning and write their audit entries in the same commit.
"""
import logging
from typing import Iterable, Optional, Union
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from . import models, schemas
from .errors import ConcurrentModificationError, EpicNotFoundError, MissingReasonError
from .planning import generate_default_plan
from .state_machine import EXECUTION_STATES, validate_transition

logger = logging.getLogger("agentflow-core.crud")

IdLike = Union[UUID, str]


def _as_uuid(value: IdLike) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, AttributeError):
        return None


# ============================================================================
# Audit Log
# ============================================================================


def add_audit_log(
    db: Session,
    action: Union[models.AuditAction, str],
    details: str,
    epic_id: Optional[UUID] = None,
    task_id: Optional[UUID] = None,
    actor: str = "user",
) -> models.AuditLogEntry:
    """
    Stage an audit entry in the current transaction (caller commits).

    Args:
        db: Database session
        action: Audit action (conventional values in models.AuditAction)
        details: Human-readable description
        epic_id: Owning epic, if any
        task_id: Affected task, if any
        actor: Who performed the action

    Returns:
        The pending AuditLogEntry
    """
    entry = models.AuditLogEntry(
        epic_id=epic_id,
        task_id=task_id,
        action=action.value if isinstance(action, models.AuditAction) else action,
        actor=actor or "user",
        details=details,
    )
    db.add(entry)
    return entry


def list_audit_logs(
    db: Session,
    epic_id: Optional[UUID] = None,
    task_id: Optional[UUID] = None,
    limit: int = 50,
) -> list[models.AuditLogEntry]:
    """
    List audit entries newest-first.

    Args:
        db: Database session
        epic_id: Only entries for this epic
        task_id: Only entries for this task
        limit: Maximum number of entries to return

    Returns:
        List of AuditLogEntry
    """
    query = db.query(models.AuditLogEntry)
    if epic_id:
        query = query.filter(models.AuditLogEntry.epic_id == epic_id)
    if task_id:
        query = query.filter(models.AuditLogEntry.task_id == task_id)
    return query.order_by(
        models.AuditLogEntry.created_at.desc(),
        models.AuditLogEntry.id.desc(),
    ).limit(limit).all()


# ============================================================================
# Epic CRUD Operations
# ============================================================================


def create_epic(
    db: Session,
    epic_data: schemas.EpicCreate,
    actor: str = "user",
) -> models.Epic:
    """
    Create a new epic in DRAFT status, with its initial tasks.

    Args:
        db: Database session
        epic_data: Epic creation data
        actor: Who created the epic

    Returns:
        Created Epic
    """
    owner, _, name = epic_data.repository.partition("/")
    epic = models.Epic(
        title=epic_data.title,
        intent=epic_data.intent,
        repository_owner=owner,
        repository_name=name,
        default_branch=epic_data.default_branch,
        constraints=epic_data.constraints,
        validation_profile=epic_data.validation_profile,
        merge_policy=epic_data.merge_policy,
        status=models.EpicStatus.DRAFT,
    )
    db.add(epic)
    db.flush()  # Get epic ID for tasks and audit

    task_items = list(epic_data.tasks)
    if not task_items and epic_data.generate_plan:
        task_items = generate_default_plan(epic_data.intent or epic_data.title)

    for position, item in enumerate(task_items, start=1):
        _add_task(db, epic, item, position, actor)

    add_audit_log(
        db,
        models.AuditAction.EPIC_CREATED,
        f"Created epic: {epic.title} with {len(task_items)} planned tasks",
        epic_id=epic.id,
        actor=actor,
    )

    db.commit()
    db.refresh(epic)
    logger.info(f"Created epic {epic.id}: {epic.title} ({len(task_items)} tasks)")
    return epic


def get_epic(db: Session, epic_id: IdLike) -> Optional[models.Epic]:
    """
    Get an epic by ID.

    Returns:
        Epic instance or None if not found
    """
    uuid_id = _as_uuid(epic_id)
    if uuid_id is None:
        return None
    return db.query(models.Epic).filter(models.Epic.id == uuid_id).first()


def list_epics(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    status: Optional[models.EpicStatus] = None,
) -> tuple[list[models.Epic], int]:
    """
    Get epics with pagination, most recently updated first.

    Returns:
        Tuple of (epics list, total count)
    """
    query = db.query(models.Epic)
    if status:
        query = query.filter(models.Epic.status == status)

    total = query.count()
    epics = (
        query.order_by(models.Epic.updated_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return epics, total


def update_epic(
    db: Session,
    epic_id: IdLike,
    epic_update: schemas.EpicUpdate,
    actor: str = "user",
) -> Optional[models.Epic]:
    """
    Update the supplied fields of an epic.

    ``updated_at`` is always bumped. Title or intent edits write one
    EPIC_UPDATED entry and a status change writes one EPIC_STATUS_CHANGED
    entry.

    Returns:
        Updated epic or None if not found
    """
    epic = get_epic(db, epic_id)
    if not epic:
        return None

    changed_fields = []
    if epic_update.title is not None and epic_update.title != epic.title:
        epic.title = epic_update.title
        changed_fields.append("title")
    if epic_update.intent is not None and epic_update.intent != epic.intent:
        epic.intent = epic_update.intent
        changed_fields.append("intent")

    if changed_fields:
        add_audit_log(
            db,
            models.AuditAction.EPIC_UPDATED,
            f"Updated epic: {', '.join(changed_fields)}",
            epic_id=epic.id,
            actor=actor,
        )

    if epic_update.status is not None and epic_update.status != epic.status:
        old_status = epic.status
        epic.status = epic_update.status
        add_audit_log(
            db,
            models.AuditAction.EPIC_STATUS_CHANGED,
            f"Epic status: {old_status.value} → {epic_update.status.value}",
            epic_id=epic.id,
            actor=actor,
        )

    epic.updated_at = models.utcnow()
    db.commit()
    db.refresh(epic)
    logger.debug(f"Updated epic {epic.id}")
    return epic


def delete_epic(db: Session, epic_id: IdLike, actor: str = "user") -> bool:
    """
    Delete an epic and all its data (cascading delete).

    The epic's own audit entries go with it; a single EPIC_DELETED entry
    without an epic reference records the deletion.

    Returns:
        True if deleted, False if not found
    """
    epic = get_epic(db, epic_id)
    if not epic:
        return False

    task_count = len(epic.tasks)
    details = f"Deleted epic {epic.id} ({epic.title}) with {task_count} tasks"
    db.delete(epic)
    add_audit_log(db, models.AuditAction.EPIC_DELETED, details, actor=actor)
    db.commit()
    logger.info(details)
    return True


def derive_epic_status(states: Iterable[models.TaskState]) -> models.EpicStatus:
    """
    Derive an epic's status from its task states.

    No tasks or all planned -> DRAFT; all done -> COMPLETED;
    any blocked -> BLOCKED; otherwise RUNNING.
    """
    values = list(states)
    if values and all(state == models.TaskState.DONE for state in values):
        return models.EpicStatus.COMPLETED
    if any(state == models.TaskState.BLOCKED for state in values):
        return models.EpicStatus.BLOCKED
    if any(state != models.TaskState.PLANNED for state in values):
        return models.EpicStatus.RUNNING
    return models.EpicStatus.DRAFT


def sync_epic_status(db: Session, epic_id: IdLike, actor: str = "system") -> Optional[models.Epic]:
    """Set the epic's status to the one derived from its tasks (audited only on change)."""
    epic = get_epic(db, epic_id)
    if not epic:
        return None

    derived = derive_epic_status(task.state for task in epic.tasks)
    if derived == epic.status:
        return epic
    return update_epic(db, epic.id, schemas.EpicUpdate(status=derived), actor=actor)


# ============================================================================
# Task CRUD Operations
# ============================================================================


def _add_task(
    db: Session,
    epic: models.Epic,
    item: schemas.TaskCreateItem,
    position: int,
    actor: str,
) -> models.Task:
    task = models.Task(
        epic_id=epic.id,
        position=position,
        title=item.title,
        description=item.description,
        acceptance_criteria=list(item.acceptance_criteria),
        state=models.TaskState.PLANNED,
        attempts=0,
        merge_approved=False,
    )
    db.add(task)
    db.flush()  # Get task ID for audit

    add_audit_log(
        db,
        models.AuditAction.TASK_CREATED,
        f"Created task: {task.title}",
        epic_id=epic.id,
        task_id=task.id,
        actor=actor,
    )
    return task


def create_task(
    db: Session,
    task_data: schemas.TaskCreate,
    actor: str = "user",
) -> models.Task:
    """
    Create a new task in PLANNED state with zero attempts.

    Args:
        db: Database session
        task_data: Task creation data
        actor: Who created the task

    Returns:
        Created Task object

    Raises:
        EpicNotFoundError: If the owning epic does not exist
    """
    epic = get_epic(db, task_data.epic_id)
    if not epic:
        raise EpicNotFoundError(task_data.epic_id)

    position = task_data.position
    if position is None:
        max_position = db.query(func.max(models.Task.position)).filter(
            models.Task.epic_id == epic.id
        ).scalar()
        position = (max_position or 0) + 1

    task = _add_task(db, epic, task_data, position, actor)
    db.commit()
    db.refresh(task)
    logger.info(f"Created task {task.id} in epic {epic.id}: {task.title}")
    return task


def get_task(db: Session, task_id: IdLike) -> Optional[models.Task]:
    """
    Get a task by ID.

    Returns:
        Task or None if not found
    """
    uuid_id = _as_uuid(task_id)
    if uuid_id is None:
        return None
    return db.query(models.Task).filter(models.Task.id == uuid_id).first()


def list_tasks(db: Session, epic_id: UUID) -> list[models.Task]:
    """List an epic's tasks by position."""
    return db.query(models.Task).filter(
        models.Task.epic_id == epic_id
    ).order_by(
        models.Task.position.asc(),
        models.Task.created_at.asc(),
    ).all()


def update_task_state(
    db: Session,
    task: models.Task,
    new_state: models.TaskState,
    pr_url: Optional[str] = None,
    branch_name: Optional[str] = None,
    blocked_reason: Optional[str] = None,
    actor: str = "user",
    note: Optional[str] = None,
) -> models.Task:
    """
    Move a task to a new state and record it.

    Validates against the state machine before touching the row. Entering
    RUNNING or FIXING increments ``attempts``. Writes exactly one
    TASK_STATE_CHANGED entry in the same commit as the state change.

    Raises:
        InvalidTransitionError: If the transition is not allowed
        MissingReasonError: If moving to BLOCKED without a reason
        ConcurrentModificationError: If another writer updated the task first
    """
    old_state = task.state
    validate_transition(old_state, new_state)

    reason = blocked_reason.strip() if blocked_reason else None
    if new_state == models.TaskState.BLOCKED and not reason:
        raise MissingReasonError(old_state)

    task.state = new_state
    if pr_url is not None:
        task.pr_url = pr_url
    if branch_name is not None:
        task.branch_name = branch_name

    if new_state == models.TaskState.BLOCKED:
        task.blocked_reason = reason
        task.blocked_from_state = old_state
    elif old_state == models.TaskState.BLOCKED:
        task.blocked_reason = None
        task.blocked_from_state = None

    if new_state in EXECUTION_STATES:
        task.attempts = (task.attempts or 0) + 1

    # Approval covers the reviewed change only
    if old_state == models.TaskState.APPROVAL_PENDING and new_state != models.TaskState.MERGED:
        task.merge_approved = False

    details = f"Task state: {old_state.value} → {new_state.value}"
    if new_state == models.TaskState.BLOCKED:
        details += f" (reason: {reason})"
    if note:
        details += f" - {note}"

    add_audit_log(
        db,
        models.AuditAction.TASK_STATE_CHANGED,
        details,
        epic_id=task.epic_id,
        task_id=task.id,
        actor=actor,
    )

    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.warning(f"Concurrent update detected on task {task.id}: {e}")
        raise ConcurrentModificationError(task.id) from e

    db.refresh(task)
    logger.info(f"Task {task.id} transitioned: {old_state.value} -> {new_state.value} (attempts={task.attempts})")
    return task


def approve_task_merge(db: Session, task: models.Task, actor: str = "user") -> models.Task:
    """Record merge approval on a task (not a state change)."""
    task.merge_approved = True
    add_audit_log(
        db,
        models.AuditAction.MERGE_APPROVED,
        "Merge approved",
        epic_id=task.epic_id,
        task_id=task.id,
        actor=actor,
    )
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConcurrentModificationError(task.id) from e
    db.refresh(task)
    logger.info(f"Merge approved for task {task.id} by {actor}")
    return task


# ============================================================================
# Validation Run CRUD Operations
# ============================================================================


def create_validation_run(
    db: Session,
    task_id: IdLike,
    actor: str = "user",
    commit: bool = True,
) -> Optional[models.ValidationRun]:
    """
    Start a new PENDING validation run for a task.

    With commit=False the run and its audit entry are only staged, so the
    caller's next commit writes them together with its own changes.

    Returns:
        Created ValidationRun or None if the task does not exist
    """
    task = get_task(db, task_id)
    if not task:
        return None

    run = models.ValidationRun(
        task_id=task.id,
        status=models.ValidationStatus.PENDING,
        checks=[],
    )
    db.add(run)
    db.flush()

    add_audit_log(
        db,
        models.AuditAction.VALIDATION_STARTED,
        f"Validation run {run.id} started",
        epic_id=task.epic_id,
        task_id=task.id,
        actor=actor,
    )
    if not commit:
        return run

    db.commit()
    db.refresh(run)
    logger.info(f"Started validation run {run.id} for task {task.id}")
    return run


def get_validation_run(db: Session, run_id: IdLike) -> Optional[models.ValidationRun]:
    """Get a validation run by ID."""
    uuid_id = _as_uuid(run_id)
    if uuid_id is None:
        return None
    return db.query(models.ValidationRun).filter(models.ValidationRun.id == uuid_id).first()


def update_validation_run(
    db: Session,
    run_id: IdLike,
    status: models.ValidationStatus,
    checks: Optional[list[str]] = None,
    logs_url: Optional[str] = None,
    actor: str = "user",
    commit: bool = True,
) -> Optional[models.ValidationRun]:
    """
    Update a validation run in place (``created_at`` is preserved).

    Moving a run to PASSED or FAILED writes a VALIDATION_COMPLETED entry.
    With commit=False the change is staged for the caller's commit.

    Returns:
        Updated ValidationRun or None if not found
    """
    run = get_validation_run(db, run_id)
    if not run:
        return None

    old_status = run.status
    run.status = status
    if checks is not None:
        run.checks = list(checks)
    if logs_url is not None:
        run.logs_url = logs_url

    if status != models.ValidationStatus.PENDING and status != old_status:
        add_audit_log(
            db,
            models.AuditAction.VALIDATION_COMPLETED,
            f"Validation run {run.id} completed with status {status.value}",
            epic_id=run.task.epic_id,
            task_id=run.task_id,
            actor=actor,
        )

    if not commit:
        return run

    db.commit()
    db.refresh(run)
    logger.info(f"Updated validation run {run.id}: {old_status.value} -> {status.value}")
    return run


def list_validation_runs(db: Session, task_id: UUID) -> list[models.ValidationRun]:
    """List a task's validation runs, newest first."""
    return db.query(models.ValidationRun).filter(
        models.ValidationRun.task_id == task_id
    ).order_by(
        models.ValidationRun.created_at.desc(),
    ).all()


def get_latest_validation_run(db: Session, task_id: UUID) -> Optional[models.ValidationRun]:
    """The newest validation run is the task's current validation state."""
    return db.query(models.ValidationRun).filter(
        models.ValidationRun.task_id == task_id
    ).order_by(
        models.ValidationRun.created_at.desc(),
    ).first()
