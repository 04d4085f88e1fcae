"""Validation run endpoints."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ... import crud, schemas
from ...database import get_db
from ...errors import TaskNotFoundError, ValidationRunNotFoundError
from ..dependencies import to_http_exception

logger = logging.getLogger("agentflow-core.validation_runs")

router = APIRouter(tags=["validation-runs"])


@router.get("/tasks/{task_id}/validation-runs", response_model=list[schemas.ValidationRunResponse])
def list_validation_runs(task_id: UUID, db: Session = Depends(get_db)):
    """List a task's validation runs, newest first."""
    if not crud.get_task(db, task_id):
        raise to_http_exception(TaskNotFoundError(task_id))
    return crud.list_validation_runs(db, task_id)


@router.post(
    "/tasks/{task_id}/validation-runs",
    response_model=schemas.ValidationRunResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_validation_run(task_id: UUID, db: Session = Depends(get_db)):
    """Open a new PENDING validation run for a task (does not change the task state)."""
    run = crud.create_validation_run(db, task_id)
    if not run:
        raise to_http_exception(TaskNotFoundError(task_id))
    return run


@router.patch("/validation-runs/{run_id}", response_model=schemas.ValidationRunResponse)
def update_validation_run(
    run_id: UUID,
    run_update: schemas.ValidationRunUpdate,
    db: Session = Depends(get_db),
):
    """
    Update a validation run in place.

    - **status**: PENDING, PASSED or FAILED
    - **checks**: Check summaries (optional, replaces the list)
    - **logs_url**: Link to logs (optional)
    """
    run = crud.update_validation_run(
        db,
        run_id,
        run_update.status,
        checks=run_update.checks,
        logs_url=run_update.logs_url,
    )
    if not run:
        raise to_http_exception(ValidationRunNotFoundError(run_id))
    return run
