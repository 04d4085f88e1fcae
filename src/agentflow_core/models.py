"""SQLAlchemy database models."""
from datetime import datetime, timezone
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Enum,
    CheckConstraint,
    Boolean,
    JSON,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp (stored without tzinfo on every backend)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TaskState(str, enum.Enum):
    """Task lifecycle state.

    The single canonical state type: the stored state of a task and the
    state derived from GitHub signals are both expressed with it.

    - planned: initial state, no work started
    - running: an agent or developer is producing a change
    - pr_ready: a pull request exists and is ready for validation
    - validating: checks are running against the pull request
    - approval_pending: validation passed, waiting for merge approval
    - fixing: validation failed, a fix attempt is in progress
    - merged: pull request merged
    - done: terminal state
    - blocked: waiting on something outside the workflow (reason required)
    """

    PLANNED = "PLANNED"
    RUNNING = "RUNNING"
    PR_READY = "PR_READY"
    VALIDATING = "VALIDATING"
    APPROVAL_PENDING = "APPROVAL_PENDING"
    FIXING = "FIXING"
    MERGED = "MERGED"
    DONE = "DONE"
    BLOCKED = "BLOCKED"


class EpicStatus(str, enum.Enum):
    """Epic status enum (explicit or derived from task states)."""

    DRAFT = "DRAFT"
    RUNNING = "RUNNING"
    BLOCKED = "BLOCKED"
    COMPLETED = "COMPLETED"


class MergePolicy(str, enum.Enum):
    """Whether merging a task requires an explicit approval step."""

    MANUAL = "manual"
    AUTO = "auto"


class ValidationStatus(str, enum.Enum):
    """Validation run status enum."""

    PENDING = "PENDING"
    PASSED = "PASSED"
    FAILED = "FAILED"


class AuditAction(str, enum.Enum):
    """Conventional audit log actions.

    The audit column itself is free-form text; these are the values the
    store writes.
    """

    EPIC_CREATED = "EPIC_CREATED"
    EPIC_UPDATED = "EPIC_UPDATED"
    EPIC_STATUS_CHANGED = "EPIC_STATUS_CHANGED"
    EPIC_DELETED = "EPIC_DELETED"
    TASK_CREATED = "TASK_CREATED"
    TASK_STATE_CHANGED = "TASK_STATE_CHANGED"
    VALIDATION_STARTED = "VALIDATION_STARTED"
    VALIDATION_COMPLETED = "VALIDATION_COMPLETED"
    MERGE_APPROVED = "MERGE_APPROVED"


class Epic(Base):
    """
    Epic model: a named body of work targeting one GitHub repository.

    Deleting an epic removes its tasks, their validation runs and the
    epic's audit entries.
    """

    __tablename__ = "epics"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    title = Column(String(200), nullable=False)
    intent = Column(Text, nullable=False, default="")

    # Target repository
    repository_owner = Column(String(100), nullable=False)
    repository_name = Column(String(100), nullable=False)
    default_branch = Column(String(255), nullable=False, default="main")

    # Planning settings carried over from the epic wizard
    constraints = Column(Text, nullable=False, default="")
    validation_profile = Column(String(100), nullable=False, default="default")
    merge_policy = Column(
        Enum(MergePolicy, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=MergePolicy.MANUAL,
    )

    status = Column(
        Enum(EpicStatus, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=EpicStatus.DRAFT,
        index=True,
    )

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    tasks = relationship(
        "Task",
        back_populates="epic",
        cascade="all, delete-orphan",
        order_by="Task.position",
    )
    audit_logs = relationship("AuditLogEntry", back_populates="epic", cascade="all, delete-orphan")

    @property
    def full_repo_name(self) -> str:
        """Get full repository name (owner/name)."""
        return f"{self.repository_owner}/{self.repository_name}"

    def __repr__(self) -> str:
        return f"<Epic {self.id}: {self.title[:30]}>"


class Task(Base):
    """Task entity: one ordered unit of work inside an epic.

    ``state`` is only ever changed through the transition service, which
    validates against the state machine and writes one audit entry per
    change. ``version`` is an optimistic concurrency counter bumped by
    SQLAlchemy on every UPDATE.
    """

    __tablename__ = "tasks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    epic_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("epics.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)

    # Core task fields
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    acceptance_criteria = Column(JSON, nullable=False, default=list)

    # Lifecycle
    state = Column(
        Enum(TaskState, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=TaskState.PLANNED,
        index=True,
    )
    blocked_reason = Column(Text, nullable=True)
    blocked_from_state = Column(
        Enum(TaskState, values_callable=lambda obj: [e.value for e in obj]),
        nullable=True,
    )
    attempts = Column(Integer, nullable=False, default=0)
    merge_approved = Column(Boolean, nullable=False, default=False)

    # Implementation references
    pr_url = Column(String(500), nullable=True)
    branch_name = Column(String(255), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    epic = relationship("Epic", back_populates="tasks")
    validation_runs = relationship(
        "ValidationRun",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="ValidationRun.created_at.desc()",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("attempts >= 0", name="non_negative_attempts"),
        CheckConstraint("position >= 1", name="positive_position"),
    )

    def __repr__(self) -> str:
        return f"<Task {self.id}: {self.state.value} - {self.title[:30]}>"


class ValidationRun(Base):
    """One attempt to validate a task's output (tests, lint, ...).

    Runs are append-only; only ``status``, ``checks`` and ``logs_url`` are
    updated in place as the run progresses. The newest run is the task's
    current validation state.
    """

    __tablename__ = "validation_runs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    task_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(
        Enum(ValidationStatus, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=ValidationStatus.PENDING,
    )
    checks = Column(JSON, nullable=False, default=list)
    logs_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    task = relationship("Task", back_populates="validation_runs")

    def __repr__(self) -> str:
        return f"<ValidationRun {self.id}: {self.status.value}>"


class AuditLogEntry(Base):
    """Immutable record of one state-affecting action.

    Entries are never updated. They disappear only through the cascade
    when their epic is deleted.
    """

    __tablename__ = "audit_logs"

    # Integer key increases with insertion order and breaks created_at ties
    id = Column(Integer, primary_key=True, autoincrement=True)
    epic_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("epics.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    # No FK to tasks: entries outlive nothing but their epic
    task_id = Column(Uuid(as_uuid=True), nullable=True, index=True)

    action = Column(String(50), nullable=False, index=True)
    actor = Column(String(100), nullable=False, default="user")
    details = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    epic = relationship("Epic", back_populates="audit_logs")

    def __repr__(self) -> str:
        return f"<AuditLogEntry {self.action} at {self.created_at}>"
