"""Epic API endpoints."""
import logging
from math import ceil
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from ... import crud, models, schemas
from ...database import get_db
from ...events import EpicChanged, EventBus
from ...errors import EpicNotFoundError
from ...github_client import GitHubClient
from ...reconciliation import derive_epic_signals
from ..dependencies import get_events, get_github_client, to_http_exception
from .tasks import task_to_response

logger = logging.getLogger("agentflow-core.epics")

router = APIRouter(tags=["epics"])


def _epic_to_response(epic: models.Epic) -> schemas.EpicResponse:
    """Convert Epic model to EpicResponse schema."""
    return schemas.EpicResponse(
        id=epic.id,
        title=epic.title,
        intent=epic.intent or "",
        repository_owner=epic.repository_owner,
        repository_name=epic.repository_name,
        full_repo_name=epic.full_repo_name,
        default_branch=epic.default_branch,
        constraints=epic.constraints or "",
        validation_profile=epic.validation_profile,
        merge_policy=epic.merge_policy,
        status=epic.status,
        task_count=len(epic.tasks),
        created_at=epic.created_at,
        updated_at=epic.updated_at,
    )


def _epic_to_detail(epic: models.Epic) -> schemas.EpicDetailResponse:
    base = _epic_to_response(epic)
    return schemas.EpicDetailResponse(
        **base.model_dump(),
        tasks=[task_to_response(task) for task in epic.tasks],
    )


def _get_epic_or_404(db: Session, epic_id: UUID) -> models.Epic:
    epic = crud.get_epic(db, epic_id)
    if not epic:
        raise to_http_exception(EpicNotFoundError(epic_id))
    return epic


@router.post("/", response_model=schemas.EpicDetailResponse, status_code=status.HTTP_201_CREATED)
def create_epic(
    epic_data: schemas.EpicCreate,
    db: Session = Depends(get_db),
    events: EventBus = Depends(get_events),
):
    """
    Create a new epic in DRAFT status.

    - **title**: Epic title
    - **intent**: What the epic should achieve
    - **repository**: Target repository as owner/name
    - **tasks**: Initial tasks, positioned in list order (optional)
    - **generate_plan**: Generate a default plan when no tasks are given
    """
    epic = crud.create_epic(db, epic_data)
    events.publish(EpicChanged(epic_id=epic.id, change="created", status=epic.status.value))
    return _epic_to_detail(epic)


@router.get("/", response_model=schemas.EpicListResponse)
def list_epics(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    status_filter: Optional[models.EpicStatus] = Query(None, alias="status", description="Filter by status"),
    db: Session = Depends(get_db),
):
    """List epics, most recently updated first."""
    skip = (page - 1) * page_size
    epics, total = crud.list_epics(db, skip=skip, limit=page_size, status=status_filter)
    total_pages = ceil(total / page_size) if total > 0 else 0

    return schemas.EpicListResponse(
        items=[_epic_to_response(epic) for epic in epics],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@router.get("/{epic_id}", response_model=schemas.EpicDetailResponse)
def get_epic(epic_id: UUID, db: Session = Depends(get_db)):
    """Get an epic with its ordered tasks."""
    return _epic_to_detail(_get_epic_or_404(db, epic_id))


@router.patch("/{epic_id}", response_model=schemas.EpicResponse)
def update_epic(
    epic_id: UUID,
    epic_update: schemas.EpicUpdate,
    db: Session = Depends(get_db),
    events: EventBus = Depends(get_events),
):
    """Update title, intent or status of an epic (only supplied fields change)."""
    epic = crud.update_epic(db, epic_id, epic_update)
    if not epic:
        raise to_http_exception(EpicNotFoundError(epic_id))
    events.publish(EpicChanged(epic_id=epic.id, change="updated", status=epic.status.value))
    return _epic_to_response(epic)


@router.delete("/{epic_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_epic(
    epic_id: UUID,
    db: Session = Depends(get_db),
    events: EventBus = Depends(get_events),
):
    """Delete an epic with its tasks, validation runs and audit entries."""
    if not crud.delete_epic(db, epic_id):
        raise to_http_exception(EpicNotFoundError(epic_id))
    events.publish(EpicChanged(epic_id=epic_id, change="deleted"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{epic_id}/tasks", response_model=list[schemas.TaskResponse])
def list_epic_tasks(epic_id: UUID, db: Session = Depends(get_db)):
    """List an epic's tasks by position."""
    epic = _get_epic_or_404(db, epic_id)
    return [task_to_response(task) for task in crud.list_tasks(db, epic.id)]


@router.get("/{epic_id}/signals", response_model=schemas.EpicSignalsResponse)
def get_epic_signals(
    epic_id: UUID,
    db: Session = Depends(get_db),
    client: Optional[GitHubClient] = Depends(get_github_client),
):
    """
    Derive each task's perceived state from GitHub issues, pull requests and checks.

    Read-only: stored task states are never changed. When GitHub is not
    configured or unavailable every task reports "no signal".
    """
    epic = _get_epic_or_404(db, epic_id)
    result = derive_epic_signals(client, epic, crud.list_tasks(db, epic.id))

    return schemas.EpicSignalsResponse(
        epic_id=epic.id,
        repository=epic.full_repo_name,
        collaborator_available=result.collaborator_available,
        tasks=[
            schemas.TaskSignalResponse(
                task_id=signal.task.id,
                title=signal.task.title,
                stored_state=signal.task.state,
                derived_state=signal.derived.state,
                category=signal.derived.category,
                reason=signal.derived.reason,
                link=signal.derived.link,
                issue_url=signal.correlation.issue.url if signal.correlation.issue else None,
                pull_request_url=signal.correlation.pull.url if signal.correlation.pull else None,
                in_sync=signal.in_sync,
            )
            for signal in result.tasks
        ],
    )
