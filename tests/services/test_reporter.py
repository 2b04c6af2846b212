"""Tests for ReportService."""

from datetime import UTC, datetime, timedelta

import pytest

from autopilot.core.config import settings
from autopilot.core.database import get_session
from autopilot.core.errors import NotFoundError
from autopilot.models import CycleRun
from autopilot.services import FindingService, ReportService, TaskService
from autopilot.services.reporter import template_summary
from tests.conftest import create_test_finding, create_test_task


def add_run(started_at: datetime, status: str = "completed") -> None:
    with get_session() as session:
        session.add(
            CycleRun(
                started_at=started_at,
                finished_at=started_at + timedelta(minutes=1),
                status=status,
            )
        )
        session.commit()


def complete_linked_task(title: str, priority: int) -> None:
    finding = create_test_finding(finding_type="bug", title=title)
    FindingService.create_task_linked_to_finding(
        finding.id,
        {"type": "propose_code_change", "category": "debugging", "priority": priority, "title": title},
    )
    task = TaskService.claim_next_pending_task()
    TaskService.complete_task(task.id, {})


def test_template_summary_health_verdict():
    """Test the excellent/good verdict threshold."""
    assert "System health is excellent" in template_summary(24, 5, 0, 10, 8)
    assert "System health is good" in template_summary(24, 5, 0, 10, 7)
    assert template_summary(24, 3, 1, 4, 4).startswith(
        "In the past 24 hours, the autonomous agent completed 3 tasks (1 failed)"
    )


def test_get_latest_report_when_none():
    with pytest.raises(NotFoundError):
        ReportService.get_latest_report()


def test_generate_report_aggregates_window():
    """Test counts, notable items and the template summary."""
    complete_linked_task("Fix crash", priority=8)
    failing = create_test_task(title="Flaky suite", priority=9, max_attempts=1)
    TaskService.claim_next_pending_task()
    TaskService.fail_task(failing.id, "3 failed")
    create_test_finding(finding_type="unknown", title="Needs triage")

    report = ReportService.generate_report()

    assert report.tasks_completed == 1
    assert report.tasks_failed == 1
    assert report.findings_detected == 2
    assert report.findings_resolved == 1
    assert report.summary_source == "template"
    assert "completed 1 tasks (1 failed)" in report.executive_summary
    assert report.critical_issues == ["Flaky suite: 3 failed"]
    assert [item["title"] for item in report.notable_items] == ["Fix crash", "Flaky suite"]
    assert report.outage_note is None
    assert ReportService.get_latest_report().id == report.id


def test_generate_report_uses_summarizer_when_available(mocker):
    """Test that the summarizer text is used when configured."""
    mocker.patch("autopilot.services.reporter.LLMService.is_available", return_value=True)
    mocker.patch(
        "autopilot.services.reporter.CodeGenerationService.summarize",
        return_value="A quiet day: nothing needed attention.",
    )

    report = ReportService.generate_report()

    assert report.summary_source == "llm"
    assert report.executive_summary == "A quiet day: nothing needed attention."


def test_generate_report_falls_back_when_summarizer_fails(mocker):
    """Test the template fallback on summarizer errors."""
    mocker.patch("autopilot.services.reporter.LLMService.is_available", return_value=True)
    mocker.patch(
        "autopilot.services.reporter.CodeGenerationService.summarize",
        side_effect=TimeoutError("model timed out"),
    )

    report = ReportService.generate_report()

    assert report.summary_source == "template"
    assert report.executive_summary.startswith("In the past 24 hours")


def test_is_report_due():
    """Test the reporting interval check."""
    assert ReportService.is_report_due() is True

    ReportService.generate_report()

    assert ReportService.is_report_due() is False
    later = datetime.now(UTC) + timedelta(hours=settings.report_interval_hours, minutes=1)
    assert ReportService.is_report_due(now=later) is True


def test_outage_detection_reports_gap_and_aborted_run(mocker):
    """Test that gaps and aborted runs produce an outage note."""
    mocker.patch.object(settings, "cycle_interval_seconds", 3600)
    end = datetime.now(UTC) + timedelta(minutes=5)
    start = end - timedelta(hours=24)
    add_run(start - timedelta(hours=1))
    for hour in range(13):
        add_run(start + timedelta(hours=hour, minutes=5))
    add_run(start + timedelta(hours=13), status="aborted")
    create_test_finding(title="Waiting")
    create_test_task(title="Queued")

    outages = ReportService.detect_outages(start, end)

    assert [outage.reason for outage in outages] == ["no cycle ran", "cycle aborted"]
    note = ReportService.outage_note(outages)
    assert note.startswith("2 outage window(s)")
    assert "1 findings and 1 tasks were not processed" in note


def test_no_outage_before_first_run(mocker):
    """Test that time before the first recorded cycle is not an outage."""
    mocker.patch.object(settings, "cycle_interval_seconds", 3600)
    end = datetime.now(UTC)
    start = end - timedelta(hours=24)
    add_run(end - timedelta(hours=2))
    add_run(end - timedelta(hours=1))

    assert ReportService.detect_outages(start, end) == []


def test_no_outage_without_history():
    end = datetime.now(UTC)

    assert ReportService.detect_outages(end - timedelta(hours=24), end) == []


def test_report_includes_outage_note(mocker):
    """Test that the outage note lands in the report and critical issues."""
    mocker.patch.object(settings, "cycle_interval_seconds", 300)
    add_run(datetime.now(UTC) - timedelta(hours=30))
    add_run(datetime.now(UTC) - timedelta(hours=2))

    report = ReportService.generate_report()

    assert report.outage_note is not None
    assert report.outage_note in report.critical_issues
    assert report.outage_note in report.executive_summary
