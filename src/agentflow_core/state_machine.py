"""State machine validation for task lifecycle transitions.

Enforces the task workflow:
- Work moves forward planned → running → pr_ready → validating → approval_pending → merged → done
- Failed validation loops through fixing back to validating
- Any non-terminal task can be blocked; a blocked task resumes into the state
  the caller names
- Done is terminal and there are no self-transitions
"""
import logging
from typing import Optional

from .errors import InvalidTransitionError
from .models import TaskState

logger = logging.getLogger("agentflow-core.state_machine")


# Maps current state → states reachable in one step
TRANSITION_MATRIX: dict[TaskState, frozenset[TaskState]] = {
    TaskState.PLANNED: frozenset({
        TaskState.RUNNING,            # Forward: work started
        TaskState.BLOCKED,
    }),
    TaskState.RUNNING: frozenset({
        TaskState.PR_READY,           # Forward: pull request opened
        TaskState.BLOCKED,
    }),
    TaskState.PR_READY: frozenset({
        TaskState.VALIDATING,         # Forward: checks started
        TaskState.BLOCKED,
    }),
    TaskState.VALIDATING: frozenset({
        TaskState.APPROVAL_PENDING,   # Forward: checks passed
        TaskState.FIXING,             # Back: checks failed
        TaskState.BLOCKED,
    }),
    TaskState.APPROVAL_PENDING: frozenset({
        TaskState.MERGED,             # Forward: merged after approval
        TaskState.FIXING,             # Back: review asked for changes
        TaskState.BLOCKED,
    }),
    TaskState.FIXING: frozenset({
        TaskState.VALIDATING,         # Retry loop
        TaskState.BLOCKED,
    }),
    TaskState.MERGED: frozenset({
        TaskState.DONE,               # Forward: wrap-up complete
        TaskState.BLOCKED,
    }),
    TaskState.DONE: frozenset(),      # Terminal
    TaskState.BLOCKED: frozenset({
        # Resume state is chosen by the caller; the prior state is not enforced
        TaskState.PLANNED,
        TaskState.RUNNING,
        TaskState.PR_READY,
        TaskState.VALIDATING,
        TaskState.APPROVAL_PENDING,
        TaskState.FIXING,
    }),
}

TERMINAL_STATES: frozenset[TaskState] = frozenset({TaskState.DONE})

# Entering one of these counts as a new execution attempt
EXECUTION_STATES: frozenset[TaskState] = frozenset({TaskState.RUNNING, TaskState.FIXING})


def _coerce_state(value) -> Optional[TaskState]:
    if isinstance(value, TaskState):
        return value
    try:
        return TaskState(value)
    except (ValueError, TypeError):
        return None


def can_transition(current_state, new_state) -> bool:
    """
    Check if a state transition is legal.

    Total over its inputs: unknown states (or plain strings that are not
    task states) are never transitionable.

    Args:
        current_state: Current task state
        new_state: Requested task state

    Returns:
        True if ``new_state`` is in the adjacency list of ``current_state``
    """
    current = _coerce_state(current_state)
    target = _coerce_state(new_state)
    if current is None or target is None:
        return False
    return target in TRANSITION_MATRIX.get(current, frozenset())


def valid_transitions(current_state) -> frozenset[TaskState]:
    """
    Get the set of states reachable from ``current_state``.

    Returns an empty set for terminal or unknown states.
    """
    current = _coerce_state(current_state)
    if current is None:
        return frozenset()
    return TRANSITION_MATRIX.get(current, frozenset())


def get_allowed_transitions(current_state) -> list[TaskState]:
    """Allowed next states in workflow order, for display."""
    allowed = valid_transitions(current_state)
    return sorted(allowed, key=lambda s: TASK_STATE_SORT_ORDER[s])


def is_terminal_state(state: TaskState) -> bool:
    """Check if a task state is terminal (no further transitions)."""
    return state in TERMINAL_STATES


def validate_transition(current_state: TaskState, new_state: TaskState) -> None:
    """
    Validate a state transition and raise exception if invalid.

    Args:
        current_state: Current task state
        new_state: Requested task state

    Raises:
        InvalidTransitionError: If the transition is not allowed
    """
    if can_transition(current_state, new_state):
        logger.debug(f"Valid transition: {current_state.value} → {new_state.value}")
        return

    allowed = get_allowed_transitions(current_state)
    allowed_names = ", ".join(s.value for s in allowed) or "none"
    error_msg = (
        f"Invalid transition: {current_state.value} → {new_state.value}. "
        f"From {current_state.value}, you can only transition to: {allowed_names}."
    )

    # Add helpful guidance based on the attempted transition
    if current_state == new_state:
        error_msg += " The task is already in this state."
    elif is_terminal_state(current_state):
        error_msg += " Done tasks are immutable. Create a new task for additional work."
    elif new_state == TaskState.MERGED:
        error_msg += " Tasks must pass validation and wait for approval before merging."
    elif new_state == TaskState.DONE:
        error_msg += " Only merged tasks can be marked done."
    elif current_state == TaskState.BLOCKED:
        error_msg += " Unblock the task into one of the listed states first."

    logger.warning(f"Blocked transition: {error_msg}")
    raise InvalidTransitionError(
        message=error_msg,
        current_state=current_state,
        requested_state=new_state,
        allowed_transitions=allowed,
    )


# Task state sort order for list queries and display
# Lower number = earlier in the workflow
TASK_STATE_SORT_ORDER: dict[TaskState, int] = {
    TaskState.PLANNED: 1,
    TaskState.RUNNING: 2,
    TaskState.PR_READY: 3,
    TaskState.VALIDATING: 4,
    TaskState.FIXING: 5,
    TaskState.APPROVAL_PENDING: 6,
    TaskState.MERGED: 7,
    TaskState.DONE: 8,
    TaskState.BLOCKED: 9,
}
