"""Task executor: claims tasks by priority and dispatches them to handlers."""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from autopilot.core.errors import InvalidTransitionError, StoreUnavailableError
from autopilot.models import Task
from autopilot.services.activity_log import ActivityLogService
from autopilot.services.handlers import HandlerOutcome, HandlerRegistry, OutcomeStatus
from autopilot.services.task import TaskService

logger = logging.getLogger(__name__)

PHASE = "execute"


@dataclass
class ExecutionSummary:
    tasks_executed: int = 0
    tasks_completed: int = 0
    tasks_retried: int = 0
    tasks_failed: int = 0
    tasks_partial: int = 0
    outcomes: list[dict[str, Any]] = field(default_factory=list)


class TaskExecutor:
    """Processes up to batch_size tasks per cycle.

    Each task is claimed at most once per run, so a failing task waits for the
    next cycle before its retry.
    """

    def __init__(self, handlers: HandlerRegistry, batch_size: int = 10):
        self.handlers = handlers
        self.batch_size = batch_size

    def run(self, cycle_id: UUID | None = None) -> ExecutionSummary:
        summary = ExecutionSummary()
        handled: set[UUID] = set()

        while summary.tasks_executed < self.batch_size:
            task = TaskService.claim_next_pending_task(exclude_ids=handled)
            if task is None:
                break

            handled.add(task.id)
            summary.tasks_executed += 1
            ActivityLogService.record(
                "info",
                PHASE,
                f"Claimed {task.type} task '{task.title}' "
                f"(attempt {task.attempts}/{task.max_attempts})",
                cycle_id=cycle_id,
                task_id=task.id,
                details={"priority": task.priority},
            )

            outcome = self.dispatch(task)
            status = self.record_outcome(task, outcome, cycle_id)
            summary.outcomes.append({"task_id": str(task.id), "status": status})
            if status == "completed":
                summary.tasks_completed += 1
            elif status == "retried":
                summary.tasks_retried += 1
            elif status == "failed":
                summary.tasks_failed += 1
            elif status == "partial":
                summary.tasks_partial += 1

        return summary

    def dispatch(self, task: Task) -> HandlerOutcome:
        """Run the registered handler; exceptions become failures."""
        handler = self.handlers.get(task.type)
        if handler is None:
            return HandlerOutcome.failure(f"No handler registered for task type {task.type}")

        try:
            return handler.execute(task)
        except StoreUnavailableError:
            raise
        except Exception as e:
            logger.exception(f"Handler {task.type} raised for task {task.id}")
            return HandlerOutcome.failure(f"{type(e).__name__}: {e}")

    def record_outcome(
        self, task: Task, outcome: HandlerOutcome, cycle_id: UUID | None = None
    ) -> str:
        """Apply the outcome through the guarded store transitions.

        Returns:
            completed, retried, failed, partial or lost
        """
        try:
            if outcome.status == OutcomeStatus.SUCCESS:
                TaskService.complete_task(task.id, outcome.result)
                ActivityLogService.record(
                    "info",
                    PHASE,
                    f"Completed task '{task.title}'",
                    cycle_id=cycle_id,
                    task_id=task.id,
                    details={"skipped_steps": (outcome.result or {}).get("skipped_steps")},
                )
                return "completed"

            if outcome.status == OutcomeStatus.PARTIAL:
                TaskService.release_task(task.id, outcome.progress or 0, outcome.result)
                ActivityLogService.record(
                    "info",
                    PHASE,
                    f"Task '{task.title}' made partial progress ({outcome.progress}%)",
                    cycle_id=cycle_id,
                    task_id=task.id,
                )
                return "partial"

            error = outcome.error or "Handler reported failure without a reason"
            if task.attempts < task.max_attempts:
                TaskService.retry_task(task.id, error)
                ActivityLogService.record(
                    "warning",
                    PHASE,
                    f"Task '{task.title}' failed attempt {task.attempts}/"
                    f"{task.max_attempts}, will retry: {error}",
                    cycle_id=cycle_id,
                    task_id=task.id,
                )
                return "retried"

            TaskService.fail_task(task.id, error, outcome.result)
            ActivityLogService.record(
                "error",
                PHASE,
                f"Task '{task.title}' failed after {task.attempts} attempts: {error}",
                cycle_id=cycle_id,
                task_id=task.id,
            )
            return "failed"
        except InvalidTransitionError as e:
            # Reclaimed by another cycle while the handler was running
            ActivityLogService.record(
                "warning",
                PHASE,
                f"Outcome for task '{task.title}' discarded: {e}",
                cycle_id=cycle_id,
                task_id=task.id,
            )
            return "lost"
