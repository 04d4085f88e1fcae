"""Shared FastAPI dependencies and error translation."""
import logging
from typing import Generator, Optional

from fastapi import HTTPException, Request, status

from ..config import get_settings
from ..errors import (
    ActionNotAllowedError,
    AgentFlowError,
    CollaboratorUnavailableError,
    ConcurrentModificationError,
    InvalidTransitionError,
    MissingReasonError,
    NotFoundError,
)
from ..events import EventBus
from ..github_client import GitHubClient

logger = logging.getLogger("agentflow-core.api")

# Domain error -> HTTP status, first match wins
ERROR_STATUS_CODES: list[tuple[type, int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MissingReasonError, status.HTTP_400_BAD_REQUEST),
    (ConcurrentModificationError, status.HTTP_409_CONFLICT),
    (ActionNotAllowedError, status.HTTP_409_CONFLICT),
    (CollaboratorUnavailableError, status.HTTP_502_BAD_GATEWAY),
]


def to_http_exception(error: AgentFlowError) -> HTTPException:
    """Translate a domain error into an HTTPException with a short detail."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    logger.error(f"Unmapped domain error: {error!r}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def get_events(request: Request) -> EventBus:
    """The application's event bus."""
    return request.app.state.events


def get_github_client() -> Generator[Optional[GitHubClient], None, None]:
    """
    Dependency yielding a GitHub client, or None when no token is configured.

    The client is closed when the request finishes.
    """
    settings = get_settings()
    if not settings.github_token:
        yield None
        return

    client = GitHubClient.from_settings(settings)
    try:
        yield client
    finally:
        client.close()
