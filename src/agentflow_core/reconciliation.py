"""Read-path reconciliation of stored task states with GitHub signals.

Fetches the repository's issues and pull requests once per epic, check runs
once per matched open pull request, and derives a perceived state for each
task. A GitHub outage degrades every task to "no signal" instead of failing
the read.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .correlation import Correlation, correlate
from .errors import CollaboratorUnavailableError
from .github_client import GitHubClient
from .models import Epic, Task, TaskState
from .signals import CheckRunSignal, DerivedState, resolve_state

logger = logging.getLogger("agentflow-core.reconciliation")


@dataclass(frozen=True)
class TaskSignal:
    """Stored and perceived state of one task."""

    task: Task
    derived: DerivedState
    correlation: Correlation

    @property
    def in_sync(self) -> bool:
        return self.task.state == self.derived.state


@dataclass(frozen=True)
class EpicSignals:
    epic: Epic
    collaborator_available: bool
    tasks: list[TaskSignal]


def derive_epic_signals(
    client: Optional[GitHubClient],
    epic: Epic,
    tasks: Sequence[Task],
) -> EpicSignals:
    """
    Derive the perceived state of every task of an epic.

    Args:
        client: GitHub client, or None when no token is configured
        epic: Epic whose repository is read
        tasks: The epic's tasks

    Returns:
        EpicSignals with one TaskSignal per task, in the given order
    """
    owner, repo = epic.repository_owner, epic.repository_name

    if client is None:
        return _degraded(epic, tasks, "GitHub not configured")

    try:
        issues = client.list_issues(owner, repo)
        pulls = client.list_pull_requests(owner, repo)
    except CollaboratorUnavailableError as e:
        logger.error(f"Cannot read signals for {owner}/{repo}: {e}")
        return _degraded(epic, tasks, f"GitHub unavailable: {e}")

    checks_by_sha: dict[str, Optional[list[CheckRunSignal]]] = {}
    results = []
    for task in tasks:
        correlation = correlate(task.title, issues, pulls)
        check_runs = None
        pull = correlation.pull
        if pull is not None and pull.is_open and pull.head_sha:
            if pull.head_sha not in checks_by_sha:
                try:
                    checks_by_sha[pull.head_sha] = client.get_check_runs(owner, repo, pull.head_sha)
                except CollaboratorUnavailableError as e:
                    logger.warning(f"No check runs for {owner}/{repo}@{pull.head_sha[:7]}: {e}")
                    checks_by_sha[pull.head_sha] = None
            check_runs = checks_by_sha[pull.head_sha]

        derived = resolve_state(correlation.issue, pull, check_runs)
        results.append(TaskSignal(task=task, derived=derived, correlation=correlation))

    logger.debug(f"Derived signals for {len(results)} tasks of epic {epic.id}")
    return EpicSignals(epic=epic, collaborator_available=True, tasks=results)


def _degraded(epic: Epic, tasks: Sequence[Task], reason: str) -> EpicSignals:
    derived = DerivedState(TaskState.PLANNED, reason)
    return EpicSignals(
        epic=epic,
        collaborator_available=False,
        tasks=[TaskSignal(task=task, derived=derived, correlation=Correlation()) for task in tasks],
    )
