"""Tests for the task handlers."""

import json

import pytest

from autopilot.core.config import settings
from autopilot.core.errors import ValidationError
from autopilot.services.code_generation import CodeChangePlan, FileChange
from autopilot.services.command import CommandResult
from autopilot.services.handlers import (
    NO_WRITES,
    Capabilities,
    CodeCleanupHandler,
    HandlerRegistry,
    OutcomeStatus,
    ProposeCodeChangeHandler,
    RunTestsHandler,
    SecurityScanHandler,
    UpdateDocsHandler,
    parse_audit_report,
    parse_pytest_summary,
)
from tests.conftest import create_test_finding, create_test_task

RESTRICTED = Capabilities(allow_file_writes=False, allow_command_execution=False)
PERMISSIVE = Capabilities(allow_file_writes=True, allow_command_execution=True)

PLAN = CodeChangePlan(
    summary="Guard against missing user",
    changes=[
        FileChange(path="api/users.py", action="modify", description="check None", risk="low"),
        FileChange(path="api/auth.py", action="modify", description="tighten", risk="medium"),
    ],
    testing_notes="Add a test for anonymous requests",
)


def test_parse_pytest_summary():
    """Test pytest summary parsing."""
    output = "==== 12 passed, 2 failed, 1 error, 3 skipped in 1.2s ===="

    assert parse_pytest_summary(output) == {
        "passed": 12,
        "failed": 2,
        "errors": 1,
        "skipped": 3,
    }


def test_parse_audit_report_accepts_list_shape():
    """Test the older pip-audit list output."""
    output = json.dumps(
        [{"name": "idna", "version": "2.0", "vulns": [{"id": "X", "fix_versions": ["3.7"]}]}]
    )

    vulnerabilities = parse_audit_report(output)

    assert vulnerabilities[0]["package"] == "idna"
    assert vulnerabilities[0]["fix_versions"] == ["3.7"]


def test_parse_audit_report_rejects_non_json():
    with pytest.raises(ValueError):
        parse_audit_report("Traceback (most recent call last)")


def test_propose_code_change_records_skipped_steps(mocker):
    """Test that a restricted environment records skipped steps honestly."""
    finding = create_test_finding(finding_type="bug", title="KeyError in /users")
    task = create_test_task(type="propose_code_change", category="debugging")
    task.related_finding_id = finding.id
    propose = mocker.patch(
        "autopilot.services.handlers.CodeGenerationService.propose", return_value=PLAN
    )
    run = mocker.patch("autopilot.services.handlers.CommandService.run_command")

    outcome = ProposeCodeChangeHandler(RESTRICTED).execute(task)

    assert outcome.status == OutcomeStatus.SUCCESS
    assert outcome.result["highest_risk"] == "medium"
    assert outcome.result["skipped_steps"] == ["apply", "test"]
    assert outcome.result["steps"]["test"]["reason"] == "change plan was not applied"
    assert propose.call_args.args[0]["finding"]["title"] == "KeyError in /users"
    run.assert_not_called()


def test_propose_code_change_never_tests_unapplied_plan(mocker):
    """Test that the unchanged code is not tested on behalf of the plan."""
    task = create_test_task(type="propose_code_change", category="debugging")
    mocker.patch("autopilot.services.handlers.CodeGenerationService.propose", return_value=PLAN)
    run = mocker.patch(
        "autopilot.services.handlers.CommandService.run_command",
        return_value=CommandResult(exit_code=1, stdout="2 failed in 0.1s", stderr=""),
    )

    outcome = ProposeCodeChangeHandler(PERMISSIVE).execute(task)

    assert outcome.status == OutcomeStatus.SUCCESS
    assert outcome.result["skipped_steps"] == ["apply", "test"]
    assert outcome.result["steps"]["test"] == {
        "status": "skipped",
        "reason": "change plan was not applied",
    }
    run.assert_not_called()


def test_empty_plan_is_failure(mocker):
    """Test that an empty plan fails the attempt."""
    task = create_test_task(type="code_cleanup", category="optimization")
    mocker.patch(
        "autopilot.services.handlers.CodeGenerationService.propose",
        return_value=CodeChangePlan(summary="nothing"),
    )

    outcome = CodeCleanupHandler(RESTRICTED).execute(task)

    assert outcome.status == OutcomeStatus.FAILURE
    assert "empty plan" in outcome.error


def test_invalid_plan_raises(mocker):
    """Test that an invalid model response surfaces as an exception."""
    task = create_test_task(type="propose_code_change", category="debugging")
    mocker.patch(
        "autopilot.services.code_generation.LLMService.chat_json",
        return_value={"changes": [{"path": "x.py", "action": "rewrite"}]},
    )

    with pytest.raises(ValidationError):
        ProposeCodeChangeHandler(RESTRICTED).execute(task)


def test_run_tests_without_command_execution():
    """Test that tests_executed is false when the step is skipped."""
    task = create_test_task()

    outcome = RunTestsHandler(RESTRICTED).execute(task)

    assert outcome.status == OutcomeStatus.SUCCESS
    assert outcome.result["tests_executed"] is False
    assert outcome.result["skipped_steps"] == ["run"]


def test_run_tests_failure(mocker):
    """Test that a failing suite fails the attempt."""
    task = create_test_task()
    mocker.patch(
        "autopilot.services.handlers.CommandService.run_command",
        return_value=CommandResult(exit_code=1, stdout="1 failed, 3 passed", stderr=""),
    )

    outcome = RunTestsHandler(PERMISSIVE).execute(task)

    assert outcome.status == OutcomeStatus.FAILURE
    assert outcome.result["tests_executed"] is True
    assert outcome.result["steps"]["run"]["summary"] == {"failed": 1, "passed": 3}


def test_update_docs_skips_write_when_not_allowed(mocker, tmp_path):
    """Test that documentation is drafted but not written."""
    mocker.patch.object(settings, "docs_dir", str(tmp_path / "docs"))
    mocker.patch(
        "autopilot.services.handlers.CodeGenerationService.summarize",
        return_value="# Note\n\nRotate the log source credentials.",
    )
    task = create_test_task(type="update_docs", category="deployment", title="Log insight")

    outcome = UpdateDocsHandler(RESTRICTED).execute(task)

    assert outcome.status == OutcomeStatus.SUCCESS
    assert outcome.result["written_path"] is None
    assert outcome.result["steps"]["write"]["reason"] == NO_WRITES
    assert not (tmp_path / "docs").exists()


def test_update_docs_writes_when_allowed(mocker, tmp_path):
    """Test that documentation is written under docs_dir."""
    mocker.patch.object(settings, "docs_dir", str(tmp_path / "docs"))
    mocker.patch(
        "autopilot.services.handlers.CodeGenerationService.summarize",
        return_value="# Note",
    )
    task = create_test_task(type="update_docs", category="deployment", title="Log insight!")

    outcome = UpdateDocsHandler(PERMISSIVE).execute(task)

    written = tmp_path / "docs" / "log-insight.md"
    assert outcome.result["written_path"] == str(written)
    assert written.read_text() == "# Note"


def test_security_scan_skipped_without_command_execution():
    """Test that the scan is recorded as skipped, not as executed."""
    finding = create_test_finding(finding_type="security", title="Vulnerable dependency")
    task = create_test_task(type="security_scan", category="debugging", priority=10)
    task.related_finding_id = finding.id

    outcome = SecurityScanHandler(RESTRICTED).execute(task)

    assert outcome.status == OutcomeStatus.SUCCESS
    assert outcome.result["vulnerabilities"] is None
    assert outcome.result["skipped_steps"] == ["scan"]
    assert outcome.result["finding"]["title"] == "Vulnerable dependency"


def test_security_scan_records_vulnerabilities(mocker):
    """Test that audit results are stored for review."""
    audit = json.dumps(
        {
            "dependencies": [
                {"name": "jinja2", "version": "2.0", "vulns": [{"id": "A", "fix_versions": []}]}
            ]
        }
    )
    mocker.patch(
        "autopilot.services.handlers.CommandService.run_command",
        return_value=CommandResult(exit_code=1, stdout=audit, stderr=""),
    )
    task = create_test_task(type="security_scan", category="debugging")

    outcome = SecurityScanHandler(PERMISSIVE).execute(task)

    assert outcome.status == OutcomeStatus.SUCCESS
    assert len(outcome.result["vulnerabilities"]) == 1
    assert outcome.result["unfixable"][0]["package"] == "jinja2"


def test_security_scan_timeout_is_failure(mocker):
    mocker.patch(
        "autopilot.services.handlers.CommandService.run_command",
        return_value=CommandResult(exit_code=-1, stdout="", stderr="", timed_out=True),
    )
    task = create_test_task(type="security_scan", category="debugging")

    outcome = SecurityScanHandler(PERMISSIVE).execute(task)

    assert outcome.status == OutcomeStatus.FAILURE


def test_default_registry_covers_every_task_type():
    """Test that every task type has a handler."""
    registry = HandlerRegistry.default(RESTRICTED)

    for task_type in (
        "propose_code_change",
        "run_tests",
        "update_docs",
        "security_scan",
        "optimize_performance",
        "code_cleanup",
    ):
        assert task_type in registry
    assert registry.get("deploy") is None
