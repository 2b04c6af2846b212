"""Task service: atomic task state transitions and task queries."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import func, update
from sqlmodel import select

from autopilot.core.config import settings
from autopilot.core.database import get_session
from autopilot.core.errors import InvalidTransitionError, NotFoundError
from autopilot.models import Finding, Task, TaskStatus

logger = logging.getLogger(__name__)

# Claim attempts lost to concurrent claimers before giving up for this call
MAX_CLAIM_RACES = 5


@dataclass
class ReportingWindow:
    """Task and finding activity between two timestamps."""

    window_start: datetime
    window_end: datetime
    tasks_completed: list[Task]
    tasks_failed: list[Task]
    findings_detected: int
    findings_resolved: int


@dataclass
class ReclaimResult:
    """Outcome of recovering stuck tasks."""

    requeued: list[UUID]
    failed: list[UUID]


class TaskService:
    """Service for task persistence and state transitions.

    Every status change goes through a conditional UPDATE guarded on the
    current status, so concurrent cycles can never both win a transition.
    """

    @staticmethod
    def create_task(
        type: str,
        title: str,
        category: str,
        priority: int = 5,
        description: str | None = None,
        max_attempts: int | None = None,
        related_finding_id: UUID | None = None,
    ) -> Task:
        """Create a pending task that is not linked to a finding."""
        if not 1 <= priority <= 10:
            raise ValueError("priority must be between 1 and 10")

        with get_session() as session:
            task = Task(
                type=type,
                title=title,
                category=category,
                priority=priority,
                description=description,
                max_attempts=max_attempts or settings.default_max_attempts,
                related_finding_id=related_finding_id,
                status=TaskStatus.PENDING,
            )
            session.add(task)
            session.commit()
            session.refresh(task)
            return task

    @staticmethod
    def get_task_by_id(task_id: UUID) -> Task:
        """Get task by ID."""
        with get_session() as session:
            statement = select(Task).where(Task.id == task_id)
            task = session.execute(statement).scalar_one_or_none()

            if task is None:
                raise NotFoundError(f"Task with id {task_id} not found")

            return task

    @staticmethod
    def list_tasks(
        status: str | None = None,
        type: str | None = None,
        category: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Task], int]:
        """List tasks with optional filters, newest first."""
        with get_session() as session:
            filters = []
            if status is not None:
                filters.append(Task.status == status)
            if type is not None:
                filters.append(Task.type == type)
            if category is not None:
                filters.append(Task.category == category)

            count_statement = select(func.count()).select_from(Task).where(*filters)
            total = session.execute(count_statement).scalar()

            statement = (
                select(Task)
                .where(*filters)
                .order_by(Task.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            tasks = session.execute(statement).scalars().all()

            return list(tasks), total

    @staticmethod
    def list_pending_tasks_by_priority(limit: int = 10) -> list[Task]:
        """List pending tasks in claim order without claiming them."""
        with get_session() as session:
            statement = (
                select(Task)
                .where(Task.status == TaskStatus.PENDING)
                .where(Task.attempts < Task.max_attempts)
                .order_by(Task.priority.desc(), Task.created_at.asc())
                .limit(limit)
            )
            return list(session.execute(statement).scalars().all())

    @staticmethod
    def claim_next_pending_task(
        now: datetime | None = None, exclude_ids: set[UUID] | None = None
    ) -> Task | None:
        """Claim the highest-priority pending task.

        Ties are broken by oldest created_at. The pending -> in_progress
        transition is a single UPDATE guarded by status='pending' and
        attempts < max_attempts; if another claimer wins the row first, the
        next candidate is tried.

        Args:
            now: Claim timestamp (defaults to the current time)
            exclude_ids: Tasks the caller has already handled in this cycle

        Returns:
            The claimed task, or None when nothing is pending
        """
        for _ in range(MAX_CLAIM_RACES):
            claimed_at = now or datetime.now(UTC)
            with get_session() as session:
                candidate_statement = (
                    select(Task.id)
                    .where(Task.status == TaskStatus.PENDING)
                    .where(Task.attempts < Task.max_attempts)
                    .where(Task.id.not_in(list(exclude_ids or ())))
                    .order_by(Task.priority.desc(), Task.created_at.asc())
                    .limit(1)
                    .with_for_update(skip_locked=True)
                )
                candidate_id = session.execute(candidate_statement).scalar_one_or_none()
                if candidate_id is None:
                    return None

                claim_statement = (
                    update(Task)
                    .where(
                        Task.id == candidate_id,
                        Task.status == TaskStatus.PENDING,
                        Task.attempts < Task.max_attempts,
                    )
                    .values(
                        status=TaskStatus.IN_PROGRESS,
                        started_at=claimed_at,
                        attempts=Task.attempts + 1,
                        updated_at=claimed_at,
                    )
                )
                if session.execute(claim_statement).rowcount != 1:
                    session.rollback()
                    logger.debug(f"Lost claim race for task {candidate_id}, retrying")
                    continue

                session.commit()
                task = session.execute(
                    select(Task).where(Task.id == candidate_id)
                ).scalar_one()
                return task

        logger.warning("Gave up claiming after repeated races with other cycles")
        return None

    @staticmethod
    def _transition(
        task_id: UUID, from_status: str, values: dict[str, Any]
    ) -> Task:
        """Apply a guarded status transition and return the updated task."""
        with get_session() as session:
            statement = (
                update(Task)
                .where(Task.id == task_id, Task.status == from_status)
                .values(updated_at=datetime.now(UTC), **values)
            )
            if session.execute(statement).rowcount != 1:
                session.rollback()
                current = session.execute(
                    select(Task.status).where(Task.id == task_id)
                ).scalar_one_or_none()
                if current is None:
                    raise NotFoundError(f"Task with id {task_id} not found")
                raise InvalidTransitionError(
                    f"Task {task_id} is {current}, expected {from_status}"
                )

            session.commit()
            return session.execute(select(Task).where(Task.id == task_id)).scalar_one()

    @staticmethod
    def complete_task(task_id: UUID, result: dict[str, Any] | None = None) -> Task:
        """Transition in_progress -> completed.

        Raises:
            NotFoundError: If task not found
            InvalidTransitionError: If the task is not in_progress
        """
        return TaskService._transition(
            task_id,
            TaskStatus.IN_PROGRESS,
            {
                "status": TaskStatus.COMPLETED,
                "completed_at": datetime.now(UTC),
                "progress": 100,
                "result": result,
                "error": None,
            },
        )

    @staticmethod
    def fail_task(
        task_id: UUID, error: str, result: dict[str, Any] | None = None
    ) -> Task:
        """Transition in_progress -> failed (terminal)."""
        values: dict[str, Any] = {
            "status": TaskStatus.FAILED,
            "completed_at": datetime.now(UTC),
            "error": error,
        }
        if result is not None:
            values["result"] = result
        return TaskService._transition(task_id, TaskStatus.IN_PROGRESS, values)

    @staticmethod
    def retry_task(task_id: UUID, error: str) -> Task:
        """Transition in_progress -> pending after a failed attempt.

        The reason is appended to result["attempt_errors"]; the error column
        stays empty because the task is not terminally failed.
        """
        task = TaskService.get_task_by_id(task_id)
        result = dict(task.result or {})
        result["attempt_errors"] = [
            *result.get("attempt_errors", []),
            {"attempt": task.attempts, "error": error},
        ]
        return TaskService._transition(
            task_id,
            TaskStatus.IN_PROGRESS,
            {"status": TaskStatus.PENDING, "result": result},
        )

    @staticmethod
    def release_task(
        task_id: UUID, progress: int, result: dict[str, Any] | None = None
    ) -> Task:
        """Transition in_progress -> pending after partial progress.

        The claim is handed back (attempts - 1) since no attempt failed.
        """
        values: dict[str, Any] = {
            "status": TaskStatus.PENDING,
            "progress": max(0, min(100, progress)),
            "attempts": Task.attempts - 1,
        }
        if result is not None:
            values["result"] = result
        return TaskService._transition(task_id, TaskStatus.IN_PROGRESS, values)

    @staticmethod
    def reclaim_stuck_tasks(
        older_than: timedelta, now: datetime | None = None
    ) -> ReclaimResult:
        """Recover tasks stuck in in_progress.

        A task is stuck when started_at < now - older_than. Attempts are left
        untouched since the claim already counted them, so a stuck task that
        has used its last attempt is failed instead of requeued.

        Returns:
            ReclaimResult with the requeued and the failed task IDs
        """
        now = now or datetime.now(UTC)
        cutoff = now - older_than
        stuck = (Task.status == TaskStatus.IN_PROGRESS, Task.started_at < cutoff)
        with get_session() as session:
            exhausted_statement = (
                update(Task)
                .where(*stuck, Task.attempts >= Task.max_attempts)
                .values(
                    status=TaskStatus.FAILED,
                    completed_at=now,
                    updated_at=now,
                    error=f"Stuck in progress on its last attempt (over {older_than})",
                )
                .returning(Task.id)
            )
            failed = list(session.execute(exhausted_statement).scalars().all())
            requeue_statement = (
                update(Task)
                .where(*stuck)
                .values(status=TaskStatus.PENDING, updated_at=now)
                .returning(Task.id)
            )
            requeued = list(session.execute(requeue_statement).scalars().all())
            session.commit()

        for task_id in failed:
            logger.warning(f"Task {task_id} stuck on its last attempt, marked failed")
        return ReclaimResult(requeued=requeued, failed=failed)

    @staticmethod
    def count_tasks(status: str, created_before: datetime | None = None) -> int:
        """Count tasks in a status, optionally created before a timestamp."""
        with get_session() as session:
            statement = (
                select(func.count()).select_from(Task).where(Task.status == status)
            )
            if created_before is not None:
                statement = statement.where(Task.created_at < created_before)
            return session.execute(statement).scalar()

    @staticmethod
    def get_reporting_window(start: datetime, end: datetime) -> ReportingWindow:
        """Collect task and finding activity for start <= t < end."""
        with get_session() as session:
            completed = session.execute(
                select(Task)
                .where(
                    Task.status == TaskStatus.COMPLETED,
                    Task.completed_at >= start,
                    Task.completed_at < end,
                )
                .order_by(Task.priority.desc(), Task.completed_at.desc())
            ).scalars().all()
            failed = session.execute(
                select(Task)
                .where(
                    Task.status == TaskStatus.FAILED,
                    Task.completed_at >= start,
                    Task.completed_at < end,
                )
                .order_by(Task.priority.desc(), Task.completed_at.desc())
            ).scalars().all()

            findings_detected = session.execute(
                select(func.count())
                .select_from(Finding)
                .where(Finding.detected_at >= start, Finding.detected_at < end)
            ).scalar()
            # A finding is resolved once the task spawned from it completes
            findings_resolved = session.execute(
                select(func.count())
                .select_from(Finding)
                .join(Task, Task.id == Finding.related_task_id)
                .where(
                    Task.status == TaskStatus.COMPLETED,
                    Task.completed_at >= start,
                    Task.completed_at < end,
                )
            ).scalar()

            return ReportingWindow(
                window_start=start,
                window_end=end,
                tasks_completed=list(completed),
                tasks_failed=list(failed),
                findings_detected=findings_detected,
                findings_resolved=findings_resolved,
            )
