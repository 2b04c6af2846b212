"""Tests for task API endpoints."""

from uuid import uuid4

from autopilot.services import TaskService
from tests.conftest import create_test_task


def test_create_task(test_client, auth_headers):
    """Test POST /v1/tasks endpoint."""
    response = test_client.post(
        "/v1/tasks",
        json={
            "type": "run_tests",
            "title": "Run the suite after the upgrade",
            "category": "testing",
            "priority": 7,
        },
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Run the suite after the upgrade"
    assert data["status"] == "pending"
    assert data["priority"] == 7
    assert data["attempts"] == 0
    assert data["max_attempts"] == 3
    assert data["related_finding_id"] is None
    assert "id" in data
    assert "created_at" in data


def test_create_task_rejects_unknown_type(test_client, auth_headers):
    """Test POST /v1/tasks with an unknown task type."""
    response = test_client.post(
        "/v1/tasks",
        json={"type": "deploy", "title": "Ship it", "category": "deployment"},
        headers=auth_headers,
    )

    assert response.status_code == 422


def test_create_task_rejects_priority_out_of_range(test_client, auth_headers):
    response = test_client.post(
        "/v1/tasks",
        json={"type": "run_tests", "title": "x", "category": "testing", "priority": 11},
        headers=auth_headers,
    )

    assert response.status_code == 422


def test_get_task(test_client, auth_headers):
    """Test GET /v1/tasks/{task_id} endpoint."""
    task = create_test_task(title="Task to retrieve via API")

    response = test_client.get(f"/v1/tasks/{task.id}", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == str(task.id)
    assert data["title"] == task.title
    assert data["status"] == task.status


def test_get_task_not_found(test_client, auth_headers):
    """Test GET /v1/tasks/{task_id} with non-existent ID."""
    response = test_client.get(f"/v1/tasks/{uuid4()}", headers=auth_headers)

    assert response.status_code == 404
    assert "not found" in response.json()["detail"]


def test_list_tasks_empty(test_client, auth_headers):
    """Test GET /v1/tasks with no tasks."""
    response = test_client.get("/v1/tasks", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["tasks"] == []
    assert data["total"] == 0
    assert data["limit"] == 100
    assert data["offset"] == 0


def test_list_tasks_filtered_by_status(test_client, auth_headers):
    """Test GET /v1/tasks?status=..."""
    claimed = create_test_task(title="claimed", priority=9)
    create_test_task(title="waiting", priority=1)
    TaskService.claim_next_pending_task()

    response = test_client.get("/v1/tasks?status=in_progress", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["tasks"][0]["id"] == str(claimed.id)


def test_list_tasks_with_pagination(test_client, auth_headers):
    """Test GET /v1/tasks with pagination."""
    for i in range(5):
        create_test_task(title=f"Task {i}")

    response = test_client.get("/v1/tasks?limit=2&offset=2", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert len(data["tasks"]) == 2
    assert data["total"] == 5
    assert data["limit"] == 2
    assert data["offset"] == 2


def test_requires_api_key(test_client):
    """Test that endpoints reject a wrong API key."""
    response = test_client.get("/v1/tasks", headers={"X-API-Key": "wrong"})

    assert response.status_code == 403


def test_health_check(test_client, auth_headers):
    """Test GET /health endpoint."""
    response = test_client.get("/health", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
