"""Executive reports over a rolling window of task and finding activity."""

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import func
from sqlmodel import select

from autopilot.core.config import settings
from autopilot.core.database import get_session
from autopilot.core.errors import NotFoundError, StoreUnavailableError
from autopilot.models import CycleStatus, Report, Task, TaskStatus
from autopilot.services.code_generation import CodeGenerationService
from autopilot.services.cycle_run import CycleRunService
from autopilot.services.finding import FindingService
from autopilot.services.llm import LLMService
from autopilot.services.task import ReportingWindow, TaskService

logger = logging.getLogger(__name__)

NOTABLE_LIMIT = 5
CRITICAL_PRIORITY = 8

SUMMARY_SYSTEM_PROMPT = (
    "You write short executive summaries of an autonomous maintenance agent's "
    "activity for a non-technical reader. Three to five sentences, no lists, "
    "mention failures and outages plainly."
)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=UTC)


@dataclass
class OutageWindow:
    start: datetime
    end: datetime
    reason: str

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


def template_summary(
    hours: int, completed: int, failed: int, detected: int, resolved: int
) -> str:
    """Summary built from the counts alone."""
    health = "excellent" if resolved >= detected * 0.8 else "good"
    return (
        f"In the past {hours} hours, the autonomous agent completed {completed} tasks "
        f"({failed} failed), detected {detected} potential issues, and successfully "
        f"resolved {resolved} problems. System health is {health}."
    )


def _notable(task: Task) -> dict[str, Any]:
    return {
        "task_id": str(task.id),
        "title": task.title,
        "type": task.type,
        "category": task.category,
        "priority": task.priority,
        "status": task.status,
        "attempts": task.attempts,
        "error": task.error,
    }


class ReportService:
    """Builds and persists executive reports."""

    @staticmethod
    def get_latest_report() -> Report:
        with get_session() as session:
            report = session.execute(
                select(Report).order_by(Report.generated_at.desc()).limit(1)
            ).scalar_one_or_none()
            if report is None:
                raise NotFoundError("No reports have been generated yet")
            return report

    @staticmethod
    def list_reports(limit: int = 20, offset: int = 0) -> tuple[list[Report], int]:
        with get_session() as session:
            total = session.execute(select(func.count()).select_from(Report)).scalar()
            statement = (
                select(Report)
                .order_by(Report.generated_at.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(session.execute(statement).scalars().all()), total

    @staticmethod
    def is_report_due(now: datetime | None = None) -> bool:
        """Whether the latest report is older than the reporting interval."""
        now = now or datetime.now(UTC)
        try:
            latest = ReportService.get_latest_report()
        except NotFoundError:
            return True
        interval = timedelta(hours=settings.report_interval_hours)
        return now - _as_utc(latest.generated_at) >= interval

    @staticmethod
    def detect_outages(start: datetime, end: datetime) -> list[OutageWindow]:
        """Find spans in the window where no cycle completed.

        Aborted runs and gaps longer than twice the cycle interval both count.
        Time before the very first recorded run is not an outage.
        """
        runs = CycleRunService.list_runs(start, end)
        outages = [
            OutageWindow(
                start=_as_utc(run.started_at),
                end=_as_utc(run.finished_at or run.started_at),
                reason="cycle aborted",
            )
            for run in runs
            if run.status == CycleStatus.ABORTED
        ]

        healthy = [_as_utc(run.started_at) for run in runs if run.status != CycleStatus.ABORTED]
        previous = CycleRunService.get_last_run_before(start)
        if previous is not None:
            checkpoints = [start, *healthy, end]
        elif healthy:
            checkpoints = [*healthy, end]
        else:
            checkpoints = []

        max_gap = timedelta(seconds=settings.cycle_interval_seconds * 2)
        for earlier, later in zip(checkpoints, checkpoints[1:]):
            if later - earlier > max_gap:
                outages.append(
                    OutageWindow(start=earlier, end=later, reason="no cycle ran")
                )

        return sorted(outages, key=lambda outage: outage.start)

    @staticmethod
    def outage_note(outages: list[OutageWindow]) -> str | None:
        if not outages:
            return None
        outage_end = max(outage.end for outage in outages)
        findings_waiting = FindingService.count_unconverted_findings(
            detected_before=outage_end
        )
        tasks_waiting = TaskService.count_tasks(
            TaskStatus.PENDING, created_before=outage_end
        )
        minutes = sum(outage.minutes for outage in outages)
        return (
            f"{len(outages)} outage window(s) totalling {minutes} minutes without a "
            f"completed cycle. {findings_waiting} findings and {tasks_waiting} tasks "
            "were not processed during the outage window."
        )

    @staticmethod
    def _summarize(window: ReportingWindow, hours: int, outage_note: str | None) -> tuple[str, str]:
        """Return (summary, source), falling back to the template."""
        fallback = template_summary(
            hours,
            len(window.tasks_completed),
            len(window.tasks_failed),
            window.findings_detected,
            window.findings_resolved,
        )
        if outage_note:
            fallback = f"{fallback} {outage_note}"

        if not LLMService.is_available():
            return fallback, "template"

        facts = {
            "window_hours": hours,
            "tasks_completed": len(window.tasks_completed),
            "tasks_failed": len(window.tasks_failed),
            "findings_detected": window.findings_detected,
            "findings_resolved": window.findings_resolved,
            "completed": [task.title for task in window.tasks_completed[:NOTABLE_LIMIT]],
            "failed": [
                f"{task.title}: {task.error}" for task in window.tasks_failed[:NOTABLE_LIMIT]
            ],
            "outage": outage_note,
        }
        try:
            text = CodeGenerationService.summarize(
                SUMMARY_SYSTEM_PROMPT, json.dumps(facts, indent=2)
            )
        except StoreUnavailableError:
            raise
        except Exception as e:
            logger.warning(f"Summarizer unavailable, using template summary: {e}")
            return fallback, "template"

        if not text:
            return fallback, "template"
        if outage_note and outage_note not in text:
            text = f"{text}\n\n{outage_note}"
        return text, "llm"

    @staticmethod
    def generate_report(
        window_end: datetime | None = None,
        window_hours: int | None = None,
        report_type: str = "daily_summary",
    ) -> Report:
        """Aggregate the window and persist an immutable report."""
        window_end = window_end or datetime.now(UTC)
        hours = window_hours or settings.report_interval_hours
        window_start = window_end - timedelta(hours=hours)

        window = TaskService.get_reporting_window(window_start, window_end)
        note = ReportService.outage_note(
            ReportService.detect_outages(window_start, window_end)
        )
        summary, source = ReportService._summarize(window, hours, note)

        completed = len(window.tasks_completed)
        critical_issues = [
            f"{task.title}: {task.error}"
            for task in window.tasks_failed
            if task.priority >= CRITICAL_PRIORITY
        ]
        if note:
            critical_issues.append(note)

        with get_session() as session:
            report = Report(
                window_start=window_start,
                window_end=window_end,
                report_type=report_type,
                tasks_completed=completed,
                tasks_failed=len(window.tasks_failed),
                findings_detected=window.findings_detected,
                findings_resolved=window.findings_resolved,
                executive_summary=summary,
                summary_source=source,
                key_accomplishments=[
                    f"Completed {completed} automated tasks",
                    f"Detected {window.findings_detected} potential issues",
                    f"Resolved {window.findings_resolved} findings",
                ],
                critical_issues=critical_issues,
                notable_items=[
                    _notable(task)
                    for task in (
                        window.tasks_completed[:NOTABLE_LIMIT]
                        + window.tasks_failed[:NOTABLE_LIMIT]
                    )
                ],
                outage_note=note,
            )
            session.add(report)
            session.commit()
            session.refresh(report)

        logger.info(
            f"Generated {report_type} report {report.id}: {completed} completed, "
            f"{report.tasks_failed} failed, {report.findings_detected} findings"
        )
        return report
