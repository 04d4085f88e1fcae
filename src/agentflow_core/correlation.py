"""Title-based correlation of tasks with GitHub issues and pull requests.

Tasks do not always store explicit issue/PR numbers, so artifacts are
matched to a task by fuzzy title comparison. This is a heuristic: two tasks
with overlapping titles can match the same artifact.
"""
import re
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .signals import (
    CheckRunSignal,
    DerivedState,
    IssueSignal,
    PullRequestSignal,
    resolve_state,
)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_title(value: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to "-", trim edge hyphens."""
    return _NON_ALNUM.sub("-", value.lower()).strip("-")


def matches_title(task_title: str, candidate_title: str) -> bool:
    """
    Check whether a candidate artifact title refers to a task.

    Matches when the raw candidate contains the raw task title
    (case-insensitive), or either normalized form contains the other.
    A blank task title matches nothing, and an empty normalized form never
    takes part in the normalized comparison (it would match everything).
    """
    if not task_title or not task_title.strip():
        return False

    if task_title.lower() in candidate_title.lower():
        return True

    normalized_task = normalize_title(task_title)
    normalized_candidate = normalize_title(candidate_title)
    # Symbol-only titles such as "???" normalize to "" and must not match every task
    if not normalized_task or not normalized_candidate:
        return False

    return normalized_task in normalized_candidate or normalized_candidate in normalized_task


@dataclass(frozen=True)
class Correlation:
    """Artifacts matched to one task (either may be missing)."""

    issue: Optional[IssueSignal] = None
    pull: Optional[PullRequestSignal] = None


def correlate(
    task_title: str,
    issues: Sequence[IssueSignal],
    pulls: Sequence[PullRequestSignal],
) -> Correlation:
    """Pick the first matching issue and first matching pull request, in list order."""
    issue = next((i for i in issues if matches_title(task_title, i.title)), None)
    pull = next((p for p in pulls if matches_title(task_title, p.title)), None)
    return Correlation(issue=issue, pull=pull)


def resolve_task_signals(
    task_title: str,
    issues: Sequence[IssueSignal],
    pulls: Sequence[PullRequestSignal],
    checks_by_sha: Optional[Mapping[str, Sequence[CheckRunSignal]]] = None,
) -> tuple[Correlation, DerivedState]:
    """Correlate a task title with artifacts and derive its perceived state."""
    correlation = correlate(task_title, issues, pulls)
    check_runs = None
    if correlation.pull is not None and correlation.pull.head_sha and checks_by_sha:
        check_runs = checks_by_sha.get(correlation.pull.head_sha)
    return correlation, resolve_state(correlation.issue, correlation.pull, check_runs)
