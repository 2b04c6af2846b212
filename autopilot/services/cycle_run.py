"""Cycle run bookkeeping."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlmodel import select

from autopilot.core.database import get_session
from autopilot.models import CycleRun


class CycleRunService:
    """Persists one row per coordinator invocation."""

    @staticmethod
    def start(cycle_id: UUID, trigger: str, status: str = "running") -> CycleRun:
        with get_session() as session:
            run = CycleRun(id=cycle_id, trigger=trigger, status=status)
            session.add(run)
            session.commit()
            session.refresh(run)
            return run

    @staticmethod
    def finish(cycle_id: UUID, status: str, **counters: Any) -> None:
        """Record the final status, counters and phase errors of a run."""
        with get_session() as session:
            session.execute(
                update(CycleRun)
                .where(CycleRun.id == cycle_id)
                .values(status=status, finished_at=datetime.now(UTC), **counters)
            )
            session.commit()

    @staticmethod
    def list_runs(start: datetime, end: datetime) -> list[CycleRun]:
        """Runs started in [start, end), oldest first."""
        with get_session() as session:
            statement = (
                select(CycleRun)
                .where(CycleRun.started_at >= start, CycleRun.started_at < end)
                .order_by(CycleRun.started_at.asc())
            )
            return list(session.execute(statement).scalars().all())

    @staticmethod
    def get_last_run_before(moment: datetime) -> CycleRun | None:
        with get_session() as session:
            statement = (
                select(CycleRun)
                .where(CycleRun.started_at < moment)
                .order_by(CycleRun.started_at.desc())
                .limit(1)
            )
            return session.execute(statement).scalar_one_or_none()
