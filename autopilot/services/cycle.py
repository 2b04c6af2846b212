"""Cycle coordinator: the single entry point of the agent loop."""

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Any
from uuid import UUID, uuid4

from autopilot.core.config import settings
from autopilot.core.database import check_store
from autopilot.core.errors import StoreUnavailableError
from autopilot.models import CycleStatus, CycleTrigger
from autopilot.services.activity_log import ActivityLogService
from autopilot.services.converter import FindingConverter
from autopilot.services.cycle_run import CycleRunService
from autopilot.services.detectors import Detector, build_default_detectors
from autopilot.services.executor import TaskExecutor
from autopilot.services.finding_generator import FindingGenerator
from autopilot.services.handlers import HandlerRegistry
from autopilot.services.reporter import ReportService
from autopilot.services.task import TaskService

logger = logging.getLogger(__name__)


@dataclass
class CycleSummary:
    """What one invocation did."""

    cycle_id: UUID
    trigger: str
    status: str = CycleStatus.RUNNING
    tasks_reclaimed: int = 0
    findings_created: int = 0
    findings_suppressed: int = 0
    findings_unmapped: int = 0
    tasks_created: int = 0
    tasks_executed: int = 0
    tasks_completed: int = 0
    tasks_retried: int = 0
    tasks_failed: int = 0
    report_id: UUID | None = None
    phase_errors: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status in (CycleStatus.COMPLETED, CycleStatus.SKIPPED)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["cycle_id"] = str(self.cycle_id)
        data["report_id"] = str(self.report_id) if self.report_id else None
        return data


class CycleCoordinator:
    """Runs reclaim -> detect -> convert -> execute -> report, once per call.

    Holds no state between invocations. Each phase failure is logged and the
    next phase still runs; only a store outage aborts the cycle.
    """

    def __init__(
        self,
        detectors: list[Detector] | None = None,
        handlers: HandlerRegistry | None = None,
        reclaim_timeout: timedelta | None = None,
        conversion_batch_size: int | None = None,
        execution_batch_size: int | None = None,
        dedup_window: timedelta | None = None,
    ):
        self.detectors = detectors if detectors is not None else build_default_detectors()
        self.handlers = handlers or HandlerRegistry.default()
        self.reclaim_timeout = reclaim_timeout or timedelta(
            minutes=settings.reclaim_timeout_minutes
        )
        self.conversion_batch_size = conversion_batch_size or settings.conversion_batch_size
        self.execution_batch_size = execution_batch_size or settings.execution_batch_size
        if dedup_window is None and settings.finding_dedup_minutes > 0:
            dedup_window = timedelta(minutes=settings.finding_dedup_minutes)
        self.dedup_window = dedup_window

    def run_cycle(self, trigger: str = CycleTrigger.SCHEDULED) -> CycleSummary:
        summary = CycleSummary(cycle_id=uuid4(), trigger=trigger)

        try:
            check_store()

            if not settings.agent_enabled:
                summary.status = CycleStatus.SKIPPED
                CycleRunService.start(summary.cycle_id, trigger, status=CycleStatus.SKIPPED)
                ActivityLogService.record(
                    "info", "cycle", "Agent is disabled, skipping cycle",
                    cycle_id=summary.cycle_id,
                )
                return summary

            CycleRunService.start(summary.cycle_id, trigger)
            ActivityLogService.record(
                "info", "cycle", f"Cycle started ({trigger})", cycle_id=summary.cycle_id
            )

            self._run_phase("reclaim", self._reclaim, summary)
            self._run_phase("detect", self._detect, summary)
            self._run_phase("convert", self._convert, summary)
            self._run_phase("execute", self._execute, summary)
            self._run_phase("report", self._report, summary)

            summary.status = CycleStatus.COMPLETED
            CycleRunService.finish(
                summary.cycle_id,
                CycleStatus.COMPLETED,
                tasks_reclaimed=summary.tasks_reclaimed,
                findings_created=summary.findings_created,
                tasks_created=summary.tasks_created,
                tasks_executed=summary.tasks_executed,
                phase_errors=summary.phase_errors,
            )
            ActivityLogService.record(
                "info",
                "cycle",
                f"Cycle finished: {summary.tasks_reclaimed} reclaimed, "
                f"{summary.findings_created} findings, {summary.tasks_created} tasks "
                f"created, {summary.tasks_executed} executed",
                cycle_id=summary.cycle_id,
                details=summary.to_dict(),
            )
        except StoreUnavailableError as e:
            logger.error(f"Cycle {summary.cycle_id} aborted, store unavailable: {e}")
            summary.status = CycleStatus.ABORTED
            summary.error = str(e)
            try:
                CycleRunService.finish(summary.cycle_id, CycleStatus.ABORTED)
            except StoreUnavailableError:
                logger.error("Could not record aborted cycle; next report will show the gap")

        return summary

    def _run_phase(
        self, name: str, phase: Callable[[CycleSummary], None], summary: CycleSummary
    ) -> None:
        try:
            phase(summary)
        except StoreUnavailableError:
            raise
        except Exception as e:
            logger.exception(f"Phase {name} failed in cycle {summary.cycle_id}")
            summary.phase_errors[name] = str(e)
            ActivityLogService.record(
                "error",
                name,
                f"Phase {name} failed: {e}",
                cycle_id=summary.cycle_id,
                details={"error_type": type(e).__name__},
            )

    def _reclaim(self, summary: CycleSummary) -> None:
        reclaimed = TaskService.reclaim_stuck_tasks(self.reclaim_timeout)
        summary.tasks_reclaimed = len(reclaimed.requeued)
        summary.tasks_failed += len(reclaimed.failed)
        for task_id in reclaimed.requeued:
            ActivityLogService.record(
                "info",
                "reclaim",
                f"Reclaimed task stuck in progress for over {self.reclaim_timeout}",
                cycle_id=summary.cycle_id,
                task_id=task_id,
            )
        for task_id in reclaimed.failed:
            ActivityLogService.record(
                "error",
                "reclaim",
                "Task stuck in progress on its last attempt, marked failed",
                cycle_id=summary.cycle_id,
                task_id=task_id,
            )

    def _detect(self, summary: CycleSummary) -> None:
        generator = FindingGenerator(self.detectors, dedup_window=self.dedup_window)
        result = generator.run(cycle_id=summary.cycle_id)
        summary.findings_created = result.findings_created
        summary.findings_suppressed = result.findings_suppressed
        if result.detector_errors:
            summary.phase_errors["detectors"] = result.detector_errors

    def _convert(self, summary: CycleSummary) -> None:
        converter = FindingConverter(batch_size=self.conversion_batch_size)
        result = converter.run(cycle_id=summary.cycle_id)
        summary.tasks_created = result.tasks_created
        summary.findings_unmapped = result.unmapped
        if result.errors:
            summary.phase_errors["conversions"] = result.errors

    def _execute(self, summary: CycleSummary) -> None:
        executor = TaskExecutor(self.handlers, batch_size=self.execution_batch_size)
        result = executor.run(cycle_id=summary.cycle_id)
        summary.tasks_executed = result.tasks_executed
        summary.tasks_completed = result.tasks_completed
        summary.tasks_retried = result.tasks_retried
        summary.tasks_failed += result.tasks_failed

    def _report(self, summary: CycleSummary) -> None:
        if not ReportService.is_report_due():
            return
        report = ReportService.generate_report()
        summary.report_id = report.id
        ActivityLogService.record(
            "info",
            "report",
            f"Generated executive report for {report.window_start:%Y-%m-%d %H:%M} "
            f"to {report.window_end:%Y-%m-%d %H:%M}",
            cycle_id=summary.cycle_id,
        )
