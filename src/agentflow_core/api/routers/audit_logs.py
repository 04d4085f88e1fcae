"""Audit log endpoints (read-only)."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ... import crud, schemas
from ...config import get_settings
from ...database import get_db

settings = get_settings()

router = APIRouter(tags=["audit-logs"])


@router.get("/", response_model=list[schemas.AuditLogResponse])
def list_audit_logs(
    epic_id: Optional[UUID] = Query(None, description="Filter by epic"),
    task_id: Optional[UUID] = Query(None, description="Filter by task"),
    limit: int = Query(
        settings.audit_log_default_limit,
        ge=1,
        le=settings.audit_log_max_limit,
        description="Maximum entries to return",
    ),
    db: Session = Depends(get_db),
):
    """List audit entries, newest first."""
    return crud.list_audit_logs(db, epic_id=epic_id, task_id=task_id, limit=limit)
