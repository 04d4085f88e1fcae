"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator

from .models import (
    EpicStatus,
    MergePolicy,
    TaskState,
    ValidationStatus,
)


# ============================================================================
# Task Schemas
# ============================================================================


class TaskCreateItem(BaseModel):
    """A task inside an epic creation payload (position comes from list order)."""

    title: str = Field(..., min_length=1, max_length=200, description="Task title")
    description: str = Field("", description="Task description")
    acceptance_criteria: list[str] = Field(default_factory=list, description="Acceptance criteria")


class TaskCreate(TaskCreateItem):
    """Schema for creating a task in an existing epic."""

    epic_id: UUID = Field(..., description="Owning epic UUID")
    position: Optional[int] = Field(None, ge=1, description="1-based position (default: append)")


class TaskResponse(BaseModel):
    """Schema for full task response."""

    id: UUID
    epic_id: UUID
    position: int
    title: str
    description: str
    acceptance_criteria: list[str]
    state: TaskState
    pr_url: Optional[str] = None
    branch_name: Optional[str] = None
    blocked_reason: Optional[str] = None
    blocked_from_state: Optional[TaskState] = None
    attempts: int
    merge_approved: bool
    version: int
    allowed_transitions: list[TaskState] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class TaskTransition(BaseModel):
    """Schema for transitioning a task to a new state."""

    target_state: TaskState = Field(..., description="Target state")
    pr_url: Optional[str] = Field(None, max_length=500)
    branch_name: Optional[str] = Field(None, max_length=255)
    blocked_reason: Optional[str] = Field(None, description="Required when target_state is BLOCKED")
    expected_version: Optional[int] = Field(
        None, ge=1, description="Reject the transition if the task version differs"
    )
    actor: str = Field("user", min_length=1, max_length=100)


class TaskActionRequest(BaseModel):
    """Optional inputs for task actions."""

    actor: str = Field("user", min_length=1, max_length=100)
    reason: Optional[str] = Field(None, description="Blocking reason (block action)")
    pr_url: Optional[str] = Field(None, max_length=500, description="Pull request URL (submit_pr action)")
    branch_name: Optional[str] = Field(None, max_length=255)
    run_id: Optional[UUID] = Field(None, description="Validation run to complete")
    passed: Optional[bool] = Field(None, description="Validation outcome (complete_validation action)")
    checks: list[str] = Field(default_factory=list)
    logs_url: Optional[str] = Field(None, max_length=500)


# ============================================================================
# Epic Schemas
# ============================================================================


class EpicCreate(BaseModel):
    """Schema for creating a new epic.

    ``repository`` is ``owner/name``. When ``tasks`` is empty and
    ``generate_plan`` is true, a default plan is generated from the intent.
    """

    title: str = Field(..., min_length=1, max_length=200)
    intent: str = Field("", description="What the epic should achieve")
    repository: str = Field(..., description="Target repository as owner/name")
    default_branch: str = Field("main", min_length=1, max_length=255)
    constraints: str = ""
    validation_profile: str = Field("default", max_length=100)
    merge_policy: MergePolicy = MergePolicy.MANUAL
    tasks: list[TaskCreateItem] = Field(default_factory=list)
    generate_plan: bool = False

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, value: str) -> str:
        owner, sep, name = value.strip().partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError("repository must be in owner/name format")
        return f"{owner}/{name}"


class EpicUpdate(BaseModel):
    """Schema for updating an epic (only supplied fields change)."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    intent: Optional[str] = None
    status: Optional[EpicStatus] = None


class EpicResponse(BaseModel):
    """Schema for full epic response."""

    id: UUID
    title: str
    intent: str
    repository_owner: str
    repository_name: str
    full_repo_name: str
    default_branch: str
    constraints: str
    validation_profile: str
    merge_policy: MergePolicy
    status: EpicStatus
    task_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class EpicDetailResponse(EpicResponse):
    """Epic with its ordered tasks."""

    tasks: list[TaskResponse] = Field(default_factory=list)


class EpicListResponse(BaseModel):
    """Schema for paginated epic list."""

    items: list[EpicResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# ============================================================================
# Validation Run Schemas
# ============================================================================


class ValidationRunUpdate(BaseModel):
    """Schema for updating a validation run in place."""

    status: ValidationStatus
    checks: Optional[list[str]] = None
    logs_url: Optional[str] = Field(None, max_length=500)


class ValidationRunResponse(BaseModel):
    """Schema for validation run response."""

    id: UUID
    task_id: UUID
    status: ValidationStatus
    checks: list[str]
    logs_url: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# ============================================================================
# Audit Log Schemas
# ============================================================================


class AuditLogResponse(BaseModel):
    """Schema for audit log entries."""

    id: int
    epic_id: Optional[UUID] = None
    task_id: Optional[UUID] = None
    action: str
    actor: str
    details: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Signal Schemas (read path)
# ============================================================================


class TaskSignalResponse(BaseModel):
    """Perceived state of one task derived from GitHub artifacts."""

    task_id: UUID
    title: str
    stored_state: TaskState
    derived_state: TaskState
    category: str = Field(description="not-started | in-progress | blocked | done")
    reason: str
    link: Optional[str] = None
    issue_url: Optional[str] = None
    pull_request_url: Optional[str] = None
    in_sync: bool = Field(description="True if stored and derived states agree")

    model_config = ConfigDict(use_enum_values=True)


class EpicSignalsResponse(BaseModel):
    """Signal view of all tasks of an epic."""

    epic_id: UUID
    repository: str
    collaborator_available: bool
    tasks: list[TaskSignalResponse]
