"""Tests for the cycle trigger endpoint."""

from uuid import uuid4

from autopilot.core.config import settings
from autopilot.services.cycle import CycleSummary


def test_run_cycle(test_client, auth_headers):
    """Test POST /v1/cycles runs a cycle with the configured detectors."""
    response = test_client.post("/v1/cycles", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["summary"]["status"] == "completed"
    assert data["summary"]["trigger"] == "manual"
    assert data["summary"]["report_id"] is not None


def test_run_cycle_when_disabled(test_client, auth_headers, mocker):
    """Test the kill switch through the API."""
    mocker.patch.object(settings, "agent_enabled", False)

    response = test_client.post("/v1/cycles?trigger=scheduled", headers=auth_headers)

    data = response.json()
    assert data["success"] is True
    assert data["summary"]["status"] == "skipped"
    assert data["summary"]["trigger"] == "scheduled"


def test_run_cycle_reports_abort(test_client, auth_headers, mocker):
    """Test that an aborted cycle is reported as unsuccessful."""
    summary = CycleSummary(cycle_id=uuid4(), trigger="manual")
    summary.status = "aborted"
    summary.error = "Database unavailable"
    mocker.patch(
        "autopilot.api.cycles.CycleCoordinator.run_cycle", return_value=summary
    )

    response = test_client.post("/v1/cycles", headers=auth_headers)

    data = response.json()
    assert data["success"] is False
    assert data["summary"]["error"] == "Database unavailable"


def test_run_cycle_requires_api_key(test_client):
    response = test_client.post("/v1/cycles")

    assert response.status_code in (401, 403)
