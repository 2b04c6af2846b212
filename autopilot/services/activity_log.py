"""Activity log service for the technical log stream."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func
from sqlmodel import select

from autopilot.core.database import get_session
from autopilot.core.errors import StoreUnavailableError
from autopilot.models import ActivityLog

logger = logging.getLogger(__name__)

_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ActivityLogService:
    """Writes structured, leveled entries to the activity_logs table.

    Every entry is also forwarded to the stdlib logger, so the stream is still
    visible in process output when the database is down.
    """

    @staticmethod
    def record(
        level: str,
        phase: str,
        message: str,
        cycle_id: UUID | None = None,
        task_id: UUID | None = None,
        finding_id: UUID | None = None,
        details: dict[str, Any] | None = None,
    ) -> ActivityLog | None:
        """Record a log entry.

        Returns:
            The persisted entry, or None if the store was unavailable
        """
        if level not in _LEVELS:
            raise ValueError(f"Unknown log level: {level}")

        logger.log(
            _LEVELS[level],
            f"[{phase}] {message}",
            extra={
                "cycle_id": str(cycle_id) if cycle_id else None,
                "task_id": str(task_id) if task_id else None,
                "finding_id": str(finding_id) if finding_id else None,
            },
        )

        try:
            with get_session() as session:
                entry = ActivityLog(
                    level=level,
                    phase=phase,
                    message=message,
                    details=details,
                    cycle_id=cycle_id,
                    task_id=task_id,
                    finding_id=finding_id,
                )
                session.add(entry)
                session.commit()
                session.refresh(entry)
                return entry
        except StoreUnavailableError as e:
            logger.error(f"Could not persist activity log entry: {e}")
            return None

    @staticmethod
    def list_logs(
        level: str | None = None,
        phase: str | None = None,
        cycle_id: UUID | None = None,
        task_id: UUID | None = None,
        since: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[ActivityLog], int]:
        """List log entries with optional filters, newest first."""
        with get_session() as session:
            filters = []
            if level is not None:
                filters.append(ActivityLog.level == level)
            if phase is not None:
                filters.append(ActivityLog.phase == phase)
            if cycle_id is not None:
                filters.append(ActivityLog.cycle_id == cycle_id)
            if task_id is not None:
                filters.append(ActivityLog.task_id == task_id)
            if since is not None:
                filters.append(ActivityLog.created_at >= since)

            total = session.execute(
                select(func.count()).select_from(ActivityLog).where(*filters)
            ).scalar()
            statement = (
                select(ActivityLog)
                .where(*filters)
                .order_by(ActivityLog.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(session.execute(statement).scalars().all()), total

    @staticmethod
    def prune_logs(older_than: timedelta, now: datetime | None = None) -> int:
        """Delete entries older than the retention period.

        Returns:
            Number of deleted entries
        """
        cutoff = (now or datetime.now(UTC)) - older_than
        with get_session() as session:
            result = session.execute(
                delete(ActivityLog).where(ActivityLog.created_at < cutoff)
            )
            session.commit()
            return result.rowcount
