"""Tests for the HTTP API."""
from uuid import uuid4

import httpx
import pytest

from agentflow_core.api.dependencies import get_github_client
from agentflow_core.api.main import app
from agentflow_core.github_client import GitHubClient

EPIC_PAYLOAD = {
    "title": "Developer-first workflow",
    "intent": "Ship onboarding",
    "repository": "acme/widgets",
    "tasks": [
        {"title": "Setup Auth", "acceptance_criteria": ["Login works"]},
        {"title": "Build dashboard"},
    ],
}


@pytest.fixture
def created_epic(client):
    response = client.post("/api/v1/epics/", json=EPIC_PAYLOAD)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def task_id(created_epic):
    return created_epic["tasks"][0]["id"]


class TestServerInfo:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "AgentFlow Core API"

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestEpicEndpoints:
    """Test epic CRUD over HTTP."""

    def test_create(self, created_epic):
        assert created_epic["status"] == "DRAFT"
        assert created_epic["full_repo_name"] == "acme/widgets"
        assert created_epic["task_count"] == 2
        assert [t["position"] for t in created_epic["tasks"]] == [1, 2]
        assert created_epic["tasks"][0]["allowed_transitions"] == ["RUNNING", "BLOCKED"]

    def test_create_rejects_bad_repository(self, client):
        response = client.post("/api/v1/epics/", json={**EPIC_PAYLOAD, "repository": "widgets"})
        assert response.status_code == 422

    def test_get_missing(self, client):
        response = client.get(f"/api/v1/epics/{uuid4()}")
        assert response.status_code == 404
        assert "Epic not found" in response.json()["detail"]

    def test_list(self, client, created_epic):
        response = client.get("/api/v1/epics/", params={"page": 1, "page_size": 10})
        body = response.json()
        assert body["total"] == 1
        assert body["total_pages"] == 1
        assert body["items"][0]["id"] == created_epic["id"]

    def test_update_status(self, client, created_epic):
        response = client.patch(f"/api/v1/epics/{created_epic['id']}", json={"status": "RUNNING"})
        assert response.status_code == 200
        assert response.json()["status"] == "RUNNING"

    def test_delete(self, client, created_epic):
        epic_id = created_epic["id"]
        assert client.delete(f"/api/v1/epics/{epic_id}").status_code == 204
        assert client.get(f"/api/v1/epics/{epic_id}").status_code == 404
        assert client.delete(f"/api/v1/epics/{epic_id}").status_code == 404

    def test_list_tasks(self, client, created_epic):
        response = client.get(f"/api/v1/epics/{created_epic['id']}/tasks")
        assert [t["title"] for t in response.json()] == ["Setup Auth", "Build dashboard"]

    def test_publishes_epic_events(self, client):
        received = []
        app.state.events.subscribe(received.append)

        client.post("/api/v1/epics/", json=EPIC_PAYLOAD)

        assert [event.change for event in received] == ["created"]


class TestTaskEndpoints:
    """Test task creation and transitions over HTTP."""

    def test_create_task(self, client, created_epic):
        response = client.post("/api/v1/tasks/", json={"epic_id": created_epic["id"], "title": "Docs"})
        assert response.status_code == 201
        assert response.json()["position"] == 3
        assert response.json()["state"] == "PLANNED"

    def test_create_task_missing_epic(self, client):
        response = client.post("/api/v1/tasks/", json={"epic_id": str(uuid4()), "title": "Docs"})
        assert response.status_code == 404

    def test_transition(self, client, task_id):
        response = client.post(f"/api/v1/tasks/{task_id}/transition", json={"target_state": "RUNNING"})
        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "RUNNING"
        assert body["attempts"] == 1
        assert body["version"] == 2

    def test_invalid_transition(self, client, task_id):
        response = client.post(f"/api/v1/tasks/{task_id}/transition", json={"target_state": "MERGED"})
        assert response.status_code == 422
        assert "PLANNED → MERGED" in response.json()["detail"]

    def test_missing_reason(self, client, task_id):
        response = client.post(f"/api/v1/tasks/{task_id}/transition", json={"target_state": "BLOCKED"})
        assert response.status_code == 400
        assert "blocked_reason" in response.json()["detail"]

    def test_version_conflict(self, client, task_id):
        response = client.post(
            f"/api/v1/tasks/{task_id}/transition",
            json={"target_state": "RUNNING", "expected_version": 7},
        )
        assert response.status_code == 409

    def test_missing_task(self, client):
        response = client.post(f"/api/v1/tasks/{uuid4()}/transition", json={"target_state": "RUNNING"})
        assert response.status_code == 404

    def test_allowed_transitions(self, client, task_id):
        response = client.get(f"/api/v1/tasks/{task_id}/transitions")
        assert response.json() == ["RUNNING", "BLOCKED"]


class TestTaskActionEndpoints:
    """Test workflow actions over HTTP."""

    def test_start(self, client, created_epic, task_id):
        response = client.post(f"/api/v1/tasks/{task_id}/actions/start", json={"actor": "agent"})
        assert response.status_code == 200
        assert response.json()["state"] == "RUNNING"
        assert response.json()["branch_name"].startswith("task-")

        epic = client.get(f"/api/v1/epics/{created_epic['id']}").json()
        assert epic["status"] == "RUNNING"

    def test_action_without_body(self, client, task_id):
        response = client.post(f"/api/v1/tasks/{task_id}/actions/start")
        assert response.status_code == 200

    def test_unknown_action(self, client, task_id):
        assert client.post(f"/api/v1/tasks/{task_id}/actions/skip", json={}).status_code == 404

    def test_precondition_failure(self, client, task_id):
        response = client.post(f"/api/v1/tasks/{task_id}/actions/merge", json={})
        assert response.status_code == 409


class TestValidationRunEndpoints:
    """Test validation run endpoints."""

    def test_create_update_list(self, client, task_id):
        created = client.post(f"/api/v1/tasks/{task_id}/validation-runs")
        assert created.status_code == 201
        run = created.json()
        assert run["status"] == "PENDING"

        updated = client.patch(
            f"/api/v1/validation-runs/{run['id']}",
            json={"status": "PASSED", "checks": ["Tests: passing"]},
        )
        assert updated.status_code == 200
        assert updated.json()["checks"] == ["Tests: passing"]
        assert updated.json()["created_at"] == run["created_at"]

        runs = client.get(f"/api/v1/tasks/{task_id}/validation-runs").json()
        assert [r["id"] for r in runs] == [run["id"]]

    def test_update_missing_run(self, client):
        response = client.patch(f"/api/v1/validation-runs/{uuid4()}", json={"status": "PASSED"})
        assert response.status_code == 404


class TestAuditLogEndpoints:
    """Test audit log queries over HTTP."""

    def test_filter_by_task(self, client, task_id):
        client.post(f"/api/v1/tasks/{task_id}/transition", json={"target_state": "RUNNING"})

        entries = client.get("/api/v1/audit-logs/", params={"task_id": task_id}).json()
        assert entries[0]["action"] == "TASK_STATE_CHANGED"
        assert entries[-1]["action"] == "TASK_CREATED"

    @pytest.mark.parametrize("limit", [0, 501])
    def test_limit_bounds(self, client, limit):
        assert client.get("/api/v1/audit-logs/", params={"limit": limit}).status_code == 422


class TestSignalEndpoint:
    """Test the read-only signal view."""

    def test_without_github(self, client, created_epic):
        app.dependency_overrides[get_github_client] = lambda: None

        response = client.get(f"/api/v1/epics/{created_epic['id']}/signals")

        body = response.json()
        assert response.status_code == 200
        assert body["collaborator_available"] is False
        assert all(t["derived_state"] == "PLANNED" for t in body["tasks"])

    def test_with_github(self, client, created_epic):
        def handler(request):
            if request.url.path.endswith("/issues"):
                return httpx.Response(200, json=[
                    {"title": "Setup Auth", "state": "closed", "labels": [], "html_url": "https://gh/issues/1"},
                ])
            return httpx.Response(200, json=[])

        github = GitHubClient(
            http_client=httpx.Client(base_url="https://api.github.test", transport=httpx.MockTransport(handler))
        )
        app.dependency_overrides[get_github_client] = lambda: github

        body = client.get(f"/api/v1/epics/{created_epic['id']}/signals").json()

        auth = next(t for t in body["tasks"] if t["title"] == "Setup Auth")
        assert auth["derived_state"] == "DONE"
        assert auth["category"] == "done"
        assert auth["stored_state"] == "PLANNED"
        assert auth["in_sync"] is False
        assert auth["issue_url"] == "https://gh/issues/1"
