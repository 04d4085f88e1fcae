"""Signal-derived task state resolution.

Derives the state a task *appears* to be in from GitHub artifacts (an issue,
a pull request and the check runs on its head commit). The result is used
for display and reconciliation only; it never overwrites the stored state.

Precedence, first match wins:

1. merged pull request            -> MERGED
2. closed issue                   -> DONE
3. "blocked" label / failing checks -> BLOCKED
4. open pull request              -> RUNNING (draft), VALIDATING (checks pending),
                                     APPROVAL_PENDING (checks passing), PR_READY (no checks)
5. open issue                     -> RUNNING
6. nothing                        -> PLANNED

Done facts outrank blocking facts, which outrank in-progress facts.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .models import TaskState

logger = logging.getLogger("agentflow-core.signals")

CHECK_SUCCESS = "success"
CHECK_FAILURE = "failure"
CHECK_PENDING = "pending"

# Conclusions GitHub reports for check runs that did not fail
PASSING_CONCLUSIONS = frozenset({"success", "neutral", "skipped"})

PROGRESS_NOT_STARTED = "not-started"
PROGRESS_IN_PROGRESS = "in-progress"
PROGRESS_BLOCKED = "blocked"
PROGRESS_DONE = "done"

# Projection of task states onto the coarse dashboard categories
PROGRESS_CATEGORY: dict[TaskState, str] = {
    TaskState.PLANNED: PROGRESS_NOT_STARTED,
    TaskState.RUNNING: PROGRESS_IN_PROGRESS,
    TaskState.PR_READY: PROGRESS_IN_PROGRESS,
    TaskState.VALIDATING: PROGRESS_IN_PROGRESS,
    TaskState.APPROVAL_PENDING: PROGRESS_IN_PROGRESS,
    TaskState.FIXING: PROGRESS_IN_PROGRESS,
    TaskState.MERGED: PROGRESS_DONE,
    TaskState.DONE: PROGRESS_DONE,
    TaskState.BLOCKED: PROGRESS_BLOCKED,
}


@dataclass(frozen=True)
class IssueSignal:
    """An issue as seen by the resolver."""

    title: str
    state: str  # "open" | "closed"
    labels: tuple[str, ...] = ()
    url: Optional[str] = None
    number: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.state.lower() == "open"

    @property
    def is_closed(self) -> bool:
        return self.state.lower() == "closed"


@dataclass(frozen=True)
class PullRequestSignal:
    """A pull request as seen by the resolver.

    ``check_state`` may be precomputed by the caller; otherwise it is
    derived from the check runs handed to :func:`resolve_state`.
    """

    title: str
    state: str  # "open" | "closed"
    merged: bool = False
    draft: bool = False
    head_sha: Optional[str] = None
    url: Optional[str] = None
    number: Optional[int] = None
    check_state: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.state.lower() == "open" and not self.merged


@dataclass(frozen=True)
class CheckRunSignal:
    """One check run on a commit."""

    status: str  # "queued" | "in_progress" | "completed"
    conclusion: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class DerivedState:
    """Resolver output: perceived state plus explanation."""

    state: TaskState
    reason: str
    link: Optional[str] = None

    @property
    def category(self) -> str:
        return PROGRESS_CATEGORY[self.state]


def progress_category(state: TaskState) -> str:
    """Project a task state onto not-started / in-progress / blocked / done."""
    return PROGRESS_CATEGORY[state]


def summarize_checks(check_runs: Optional[Sequence[CheckRunSignal]]) -> Optional[str]:
    """
    Collapse check runs into one check state.

    Returns:
        None when there are no runs, "failure" when any completed run failed,
        "pending" when any run is still going, "success" otherwise.
    """
    if not check_runs:
        return None

    for run in check_runs:
        if run.status == "completed" and (run.conclusion or "").lower() not in PASSING_CONCLUSIONS:
            return CHECK_FAILURE

    if any(run.status != "completed" for run in check_runs):
        return CHECK_PENDING

    return CHECK_SUCCESS


def has_blocked_label(issue: Optional[IssueSignal]) -> bool:
    """True if any issue label contains "blocked" (case-insensitive)."""
    if issue is None:
        return False
    return any("blocked" in label.lower() for label in issue.labels)


def resolve_state(
    issue: Optional[IssueSignal] = None,
    pull: Optional[PullRequestSignal] = None,
    check_runs: Optional[Sequence[CheckRunSignal]] = None,
) -> DerivedState:
    """
    Compute the perceived state of a task from its correlated artifacts.

    Pure function: absent artifacts are "no signal", never errors.

    Args:
        issue: Correlated issue, if any
        pull: Correlated pull request, if any
        check_runs: Check runs for the pull request's head commit

    Returns:
        DerivedState with state, category, reason and most relevant link
    """
    check_state = None
    if pull is not None:
        check_state = pull.check_state or summarize_checks(check_runs)

    if pull is not None and pull.merged:
        return DerivedState(TaskState.MERGED, f"Merged PR: {pull.title}", pull.url)

    if issue is not None and issue.is_closed:
        return DerivedState(TaskState.DONE, f"Closed issue: {issue.title}", issue.url)

    if has_blocked_label(issue):
        return DerivedState(
            TaskState.BLOCKED,
            "Issue carries a blocked label",
            issue.url or (pull.url if pull else None),
        )

    if pull is not None and check_state == CHECK_FAILURE:
        return DerivedState(
            TaskState.BLOCKED,
            f"Failing checks on PR: {pull.title}",
            (issue.url if issue else None) or pull.url,
        )

    if pull is not None and pull.is_open:
        if pull.draft:
            return DerivedState(TaskState.RUNNING, "Draft PR open", pull.url)
        if check_state == CHECK_PENDING:
            return DerivedState(TaskState.VALIDATING, "PR open, checks running", pull.url)
        if check_state == CHECK_SUCCESS:
            return DerivedState(TaskState.APPROVAL_PENDING, "PR open, checks passing", pull.url)
        return DerivedState(TaskState.PR_READY, "PR open", pull.url)

    if issue is not None and issue.is_open:
        return DerivedState(TaskState.RUNNING, "Issue open", issue.url)

    return DerivedState(TaskState.PLANNED, "No GitHub signal yet")
