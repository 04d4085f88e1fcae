"""Domain errors raised by the store, transition service and collaborators.

Routers translate these into HTTP responses; nothing in the core retries.
"""
from typing import Iterable, Optional

from .models import TaskState


class AgentFlowError(Exception):
    """Base class for all AgentFlow domain errors."""


class NotFoundError(AgentFlowError):
    """A referenced epic, task or validation run does not exist."""

    def __init__(self, entity: str, identifier):
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = identifier


class EpicNotFoundError(NotFoundError):
    def __init__(self, identifier):
        super().__init__("Epic", identifier)


class TaskNotFoundError(NotFoundError):
    def __init__(self, identifier):
        super().__init__("Task", identifier)


class ValidationRunNotFoundError(NotFoundError):
    def __init__(self, identifier):
        super().__init__("Validation run", identifier)


class InvalidTransitionError(AgentFlowError):
    """Raised when a requested state change is not in the adjacency table."""

    def __init__(
        self,
        message: str,
        current_state: TaskState,
        requested_state: TaskState,
        allowed_transitions: Iterable[TaskState],
    ):
        super().__init__(message)
        self.current_state = current_state
        self.requested_state = requested_state
        self.allowed_transitions = sorted(allowed_transitions, key=lambda s: s.value)


class MissingReasonError(AgentFlowError):
    """Raised when a task is moved to BLOCKED without a reason."""

    def __init__(self, current_state: Optional[TaskState] = None):
        super().__init__("blocked_reason is required when transitioning to BLOCKED")
        self.current_state = current_state


class ConcurrentModificationError(AgentFlowError):
    """Raised when a task changed between read and write."""

    def __init__(self, task_id, expected_version: Optional[int] = None, actual_version: Optional[int] = None):
        if expected_version is not None and actual_version is not None:
            message = (
                f"Task {task_id} was modified concurrently "
                f"(expected version {expected_version}, found {actual_version})"
            )
        else:
            message = f"Task {task_id} was modified concurrently"
        super().__init__(message)
        self.task_id = task_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class ActionNotAllowedError(AgentFlowError):
    """Raised when a task action's preconditions are not met."""


class CollaboratorUnavailableError(AgentFlowError):
    """The GitHub collaborator failed (network, auth, rate limit, server error)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
