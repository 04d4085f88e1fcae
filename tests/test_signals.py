"""Tests for signal-derived state resolution."""
from agentflow_core.models import TaskState
from agentflow_core.signals import (
    CHECK_FAILURE,
    CHECK_PENDING,
    CHECK_SUCCESS,
    PROGRESS_BLOCKED,
    PROGRESS_DONE,
    PROGRESS_IN_PROGRESS,
    PROGRESS_NOT_STARTED,
    CheckRunSignal,
    IssueSignal,
    PullRequestSignal,
    progress_category,
    resolve_state,
    summarize_checks,
)

ISSUE_URL = "https://github.com/acme/widgets/issues/1"
PR_URL = "https://github.com/acme/widgets/pull/2"


def _issue(state="open", labels=()):
    return IssueSignal(title="Setup Auth", state=state, labels=tuple(labels), url=ISSUE_URL)


def _pull(state="open", merged=False, draft=False, check_state=None):
    return PullRequestSignal(
        title="Setup Auth flow",
        state=state,
        merged=merged,
        draft=draft,
        head_sha="abc123",
        url=PR_URL,
        check_state=check_state,
    )


class TestResolverPrecedence:
    """Test the first-match-wins precedence of the resolver."""

    def test_merged_pr_beats_closed_issue(self):
        """Test that a merged PR wins over a closed issue and links the PR."""
        derived = resolve_state(_issue(state="closed"), _pull(state="closed", merged=True))

        assert derived.state == TaskState.MERGED
        assert derived.category == PROGRESS_DONE
        assert "PR" in derived.reason
        assert derived.link == PR_URL

    def test_closed_issue_is_done(self):
        derived = resolve_state(_issue(state="closed"), None)
        assert derived.state == TaskState.DONE
        assert derived.category == PROGRESS_DONE
        assert derived.link == ISSUE_URL

    def test_closed_issue_beats_blocked_label(self):
        """Test that closure outranks a blocked label."""
        derived = resolve_state(_issue(state="closed", labels=["blocked"]), None)
        assert derived.state == TaskState.DONE

    def test_blocked_label_case_insensitive_substring(self):
        """Test a label containing "blocked" in any case blocks the task."""
        derived = resolve_state(_issue(labels=["Blocked-needs-input"]), None)
        assert derived.state == TaskState.BLOCKED
        assert derived.category == PROGRESS_BLOCKED

    def test_blocked_label_beats_open_pr(self):
        derived = resolve_state(_issue(labels=["status: BLOCKED"]), _pull(check_state=CHECK_SUCCESS))
        assert derived.state == TaskState.BLOCKED
        assert derived.link == ISSUE_URL

    def test_failing_checks_block(self):
        """Test that failing checks on the PR block the task."""
        derived = resolve_state(None, _pull(check_state=CHECK_FAILURE))
        assert derived.state == TaskState.BLOCKED
        assert "Failing checks" in derived.reason
        assert derived.link == PR_URL

    def test_failing_checks_prefer_issue_link(self):
        derived = resolve_state(_issue(), _pull(check_state=CHECK_FAILURE))
        assert derived.link == ISSUE_URL


class TestOpenPullRequest:
    """Test the in-progress states derived from an open PR."""

    def test_draft(self):
        derived = resolve_state(None, _pull(draft=True))
        assert derived.state == TaskState.RUNNING
        assert derived.reason == "Draft PR open"

    def test_checks_pending(self):
        derived = resolve_state(None, _pull(check_state=CHECK_PENDING))
        assert derived.state == TaskState.VALIDATING

    def test_checks_passing(self):
        derived = resolve_state(None, _pull(check_state=CHECK_SUCCESS))
        assert derived.state == TaskState.APPROVAL_PENDING

    def test_no_checks(self):
        derived = resolve_state(None, _pull())
        assert derived.state == TaskState.PR_READY
        assert derived.category == PROGRESS_IN_PROGRESS

    def test_check_runs_are_summarized(self):
        """Test that raw check runs are used when no check state is precomputed."""
        runs = [CheckRunSignal(status="in_progress")]
        derived = resolve_state(None, _pull(), runs)
        assert derived.state == TaskState.VALIDATING

    def test_closed_unmerged_pr_falls_through(self):
        """Test that a closed, unmerged PR is not an in-progress signal."""
        derived = resolve_state(_issue(), _pull(state="closed"))
        assert derived.state == TaskState.RUNNING
        assert derived.reason == "Issue open"


class TestNoSignal:
    """Test the fallback when nothing is correlated."""

    def test_nothing_is_planned(self):
        derived = resolve_state()
        assert derived.state == TaskState.PLANNED
        assert derived.category == PROGRESS_NOT_STARTED
        assert derived.link is None

    def test_open_issue_is_running(self):
        derived = resolve_state(_issue(), None)
        assert derived.state == TaskState.RUNNING
        assert derived.link == ISSUE_URL


class TestSummarizeChecks:
    """Test check run aggregation."""

    def test_no_runs(self):
        assert summarize_checks([]) is None
        assert summarize_checks(None) is None

    def test_all_passing(self):
        runs = [
            CheckRunSignal(status="completed", conclusion="success"),
            CheckRunSignal(status="completed", conclusion="skipped"),
            CheckRunSignal(status="completed", conclusion="neutral"),
        ]
        assert summarize_checks(runs) == CHECK_SUCCESS

    def test_failure_wins_over_pending(self):
        runs = [
            CheckRunSignal(status="queued"),
            CheckRunSignal(status="completed", conclusion="failure"),
        ]
        assert summarize_checks(runs) == CHECK_FAILURE

    def test_pending(self):
        runs = [
            CheckRunSignal(status="completed", conclusion="success"),
            CheckRunSignal(status="in_progress"),
        ]
        assert summarize_checks(runs) == CHECK_PENDING

    def test_timed_out_counts_as_failure(self):
        runs = [CheckRunSignal(status="completed", conclusion="timed_out")]
        assert summarize_checks(runs) == CHECK_FAILURE


class TestProgressCategory:
    """Test the projection onto coarse categories."""

    def test_every_state_has_a_category(self):
        for state in TaskState:
            assert progress_category(state) in {
                PROGRESS_NOT_STARTED, PROGRESS_IN_PROGRESS, PROGRESS_BLOCKED, PROGRESS_DONE,
            }

    def test_merged_and_done_are_done(self):
        assert progress_category(TaskState.MERGED) == PROGRESS_DONE
        assert progress_category(TaskState.DONE) == PROGRESS_DONE
