"""Tests for task workflow actions."""
import pytest

from agentflow_core import crud, schemas, task_actions
from agentflow_core.errors import ActionNotAllowedError, ConcurrentModificationError, MissingReasonError
from agentflow_core.events import EpicChanged, TaskStateChanged
from agentflow_core.models import (
    AuditAction,
    EpicStatus,
    MergePolicy,
    TaskState,
    ValidationStatus,
)
from agentflow_core.task_actions import (
    approve_merge,
    block_task,
    complete_validation,
    merge_task,
    retry_task,
    run_task_action,
    start_task,
    start_validation,
    submit_pull_request,
)

PR_URL = "https://github.com/acme/widgets/pull/12"


def _to_approval_pending(db, task):
    start_task(db, task.id)
    submit_pull_request(db, task.id, PR_URL)
    start_validation(db, task.id)
    return complete_validation(db, task.id, passed=True, checks=["Tests: passing"])


class TestStartTask:
    """Test starting work."""

    def test_start_sets_branch_and_running(self, db, epic, task):
        task = start_task(db, task.id)

        assert task.state == TaskState.RUNNING
        assert task.attempts == 1
        assert task.branch_name == f"task-{str(task.id)[:8]}-attempt-1"
        db.refresh(epic)
        assert epic.status == EpicStatus.RUNNING

    def test_explicit_branch(self, db, task):
        task = start_task(db, task.id, branch_name="feature/auth")
        assert task.branch_name == "feature/auth"

    def test_cannot_start_running_task(self, db, task):
        start_task(db, task.id)
        with pytest.raises(ActionNotAllowedError):
            start_task(db, task.id)

    def test_restart_blocked_task(self, db, task):
        block_task(db, task.id, "waiting on API keys")
        task = start_task(db, task.id)

        assert task.state == TaskState.RUNNING
        assert task.blocked_reason is None


class TestValidationActions:
    """Test the validation loop."""

    def test_submit_requires_pr_url(self, db, task):
        start_task(db, task.id)
        with pytest.raises(ActionNotAllowedError):
            submit_pull_request(db, task.id, "  ")

    def test_start_validation_opens_run(self, db, task):
        start_task(db, task.id)
        submit_pull_request(db, task.id, PR_URL)
        task = start_validation(db, task.id)

        assert task.state == TaskState.VALIDATING
        assert task.pr_url == PR_URL
        run = crud.get_latest_validation_run(db, task.id)
        assert run.status == ValidationStatus.PENDING

    def test_failed_validation_goes_to_fixing(self, db, task):
        start_task(db, task.id)
        submit_pull_request(db, task.id, PR_URL)
        start_validation(db, task.id)

        task = complete_validation(db, task.id, passed=False, checks=["Tests: failing"])

        assert task.state == TaskState.FIXING
        assert task.attempts == 2
        run = crud.get_latest_validation_run(db, task.id)
        assert run.status == ValidationStatus.FAILED
        assert run.checks == ["Tests: failing"]

    def test_fix_and_revalidate(self, db, task):
        start_task(db, task.id)
        submit_pull_request(db, task.id, PR_URL)
        start_validation(db, task.id)
        complete_validation(db, task.id, passed=False)

        start_validation(db, task.id)
        task = complete_validation(db, task.id, passed=True)

        assert task.state == TaskState.APPROVAL_PENDING
        assert len(crud.list_validation_runs(db, task.id)) == 2

    def test_complete_requires_outcome(self, db, task):
        start_task(db, task.id)
        submit_pull_request(db, task.id, PR_URL)
        start_validation(db, task.id)
        with pytest.raises(ActionNotAllowedError):
            complete_validation(db, task.id, passed=None)

    def test_completed_run_cannot_be_completed_again(self, db, task):
        task = _to_approval_pending(db, task)
        run = crud.get_latest_validation_run(db, task.id)
        crud.update_task_state(db, task, TaskState.FIXING)
        crud.update_task_state(db, task, TaskState.VALIDATING)

        with pytest.raises(ActionNotAllowedError):
            complete_validation(db, task.id, passed=True, run_id=run.id)

    def test_failed_completion_leaves_run_pending(self, db, task, monkeypatch):
        """Test that the run is not closed when the task transition fails."""
        start_task(db, task.id)
        submit_pull_request(db, task.id, PR_URL)
        start_validation(db, task.id)

        def conflict(db, task_id, *args, **kwargs):
            raise ConcurrentModificationError(task_id)

        monkeypatch.setattr(task_actions, "transition_task", conflict)
        with pytest.raises(ConcurrentModificationError):
            complete_validation(db, task.id, passed=True, checks=["Tests: passing"])

        run = crud.get_latest_validation_run(db, task.id)
        assert run.status == ValidationStatus.PENDING
        assert run.checks == []
        db.refresh(task)
        assert task.state == TaskState.VALIDATING

        monkeypatch.undo()
        task = complete_validation(db, task.id, passed=True)
        assert task.state == TaskState.APPROVAL_PENDING

    def test_failed_start_opens_no_run(self, db, task, monkeypatch):
        """Test that no run is left behind when entering VALIDATING fails."""
        start_task(db, task.id)
        submit_pull_request(db, task.id, PR_URL)

        def conflict(db, task_id, *args, **kwargs):
            raise ConcurrentModificationError(task_id)

        monkeypatch.setattr(task_actions, "transition_task", conflict)
        with pytest.raises(ConcurrentModificationError):
            start_validation(db, task.id)

        assert crud.list_validation_runs(db, task.id) == []
        actions = [entry.action for entry in crud.list_audit_logs(db, task_id=task.id)]
        assert AuditAction.VALIDATION_STARTED.value not in actions
        db.refresh(task)
        assert task.state == TaskState.PR_READY


class TestMerge:
    """Test approval and merging."""

    def test_manual_policy_requires_approval(self, db, task):
        _to_approval_pending(db, task)
        with pytest.raises(ActionNotAllowedError):
            merge_task(db, task.id)

    def test_approve_then_merge(self, db, task):
        _to_approval_pending(db, task)
        task = approve_merge(db, task.id, actor="reviewer")
        assert task.merge_approved is True

        task = merge_task(db, task.id)
        assert task.state == TaskState.DONE

        actions = [e.action for e in crud.list_audit_logs(db, task_id=task.id, limit=500)]
        assert AuditAction.MERGE_APPROVED.value in actions

    def test_auto_policy_merges_without_approval(self, db):
        epic = crud.create_epic(
            db,
            schemas.EpicCreate(
                title="Auto", repository="acme/auto", merge_policy=MergePolicy.AUTO,
                tasks=[schemas.TaskCreateItem(title="Only task")],
            ),
        )
        task = _to_approval_pending(db, epic.tasks[0])
        task = merge_task(db, task.id)

        assert task.state == TaskState.DONE
        db.refresh(epic)
        assert epic.status == EpicStatus.COMPLETED

    def test_review_changes_reset_approval(self, db, task):
        task = _to_approval_pending(db, task)
        approve_merge(db, task.id)
        crud.update_task_state(db, task, TaskState.FIXING)

        assert task.merge_approved is False

    def test_cannot_approve_twice(self, db, task):
        _to_approval_pending(db, task)
        approve_merge(db, task.id)
        with pytest.raises(ActionNotAllowedError):
            approve_merge(db, task.id)


class TestBlockAndRetry:
    """Test blocking and retrying."""

    def test_block_requires_reason(self, db, task):
        with pytest.raises(MissingReasonError):
            block_task(db, task.id, "")

    def test_block_updates_epic(self, db, epic, task):
        block_task(db, task.id, "waiting on design review")
        db.refresh(epic)
        assert epic.status == EpicStatus.BLOCKED

    def test_cannot_block_twice(self, db, task):
        block_task(db, task.id, "first")
        with pytest.raises(ActionNotAllowedError):
            block_task(db, task.id, "second")

    def test_retry(self, db, epic, task):
        block_task(db, task.id, "flaky")
        task = retry_task(db, task.id)

        assert task.state == TaskState.PLANNED
        db.refresh(epic)
        assert epic.status == EpicStatus.DRAFT

    def test_retry_requires_blocked(self, db, task):
        with pytest.raises(ActionNotAllowedError):
            retry_task(db, task.id)


class TestRunTaskAction:
    """Test named action dispatch."""

    def test_dispatch(self, db, task, events):
        received = []
        events.subscribe(received.append)

        task = run_task_action(db, task.id, "start", schemas.TaskActionRequest(actor="agent"), events=events)

        assert task.state == TaskState.RUNNING
        assert any(isinstance(e, TaskStateChanged) for e in received)
        assert any(isinstance(e, EpicChanged) and e.status == "RUNNING" for e in received)

    def test_unknown_action(self, db, task):
        with pytest.raises(ActionNotAllowedError):
            run_task_action(db, task.id, "skip")
