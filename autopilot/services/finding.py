"""Finding service: finding persistence and the finding -> task conversion guard."""

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, update
from sqlmodel import select

from autopilot.core.config import settings
from autopilot.core.database import get_session
from autopilot.core.errors import NotFoundError
from autopilot.models import Finding, Task, TaskStatus

logger = logging.getLogger(__name__)


class FindingService:
    """Service for finding-related persistence."""

    @staticmethod
    def create_finding(
        finding_type: str,
        title: str,
        severity: str = "medium",
        description: str | None = None,
        evidence: dict[str, Any] | None = None,
        location: str | None = None,
        detection_method: str | None = None,
        impact_score: float | None = None,
        detected_at: datetime | None = None,
    ) -> Finding:
        """Persist a finding. Always succeeds; deduplication happens elsewhere."""
        with get_session() as session:
            finding = Finding(
                finding_type=finding_type,
                title=title,
                severity=severity,
                description=description,
                evidence=evidence,
                location=location,
                detection_method=detection_method,
                impact_score=impact_score,
                detected_at=detected_at or datetime.now(UTC),
            )
            session.add(finding)
            session.commit()
            session.refresh(finding)
            return finding

    @staticmethod
    def get_finding_by_id(finding_id: UUID) -> Finding:
        """Get finding by ID."""
        with get_session() as session:
            statement = select(Finding).where(Finding.id == finding_id)
            finding = session.execute(statement).scalar_one_or_none()

            if finding is None:
                raise NotFoundError(f"Finding with id {finding_id} not found")

            return finding

    @staticmethod
    def list_findings(
        finding_type: str | None = None,
        severity: str | None = None,
        converted: bool | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Finding], int]:
        """List findings with optional filters, newest first."""
        with get_session() as session:
            filters = []
            if finding_type is not None:
                filters.append(Finding.finding_type == finding_type)
            if severity is not None:
                filters.append(Finding.severity == severity)
            if converted is True:
                filters.append(Finding.related_task_id.is_not(None))
            elif converted is False:
                filters.append(Finding.related_task_id.is_(None))

            total = session.execute(
                select(func.count()).select_from(Finding).where(*filters)
            ).scalar()
            statement = (
                select(Finding)
                .where(*filters)
                .order_by(Finding.detected_at.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(session.execute(statement).scalars().all()), total

    @staticmethod
    def list_unconverted_findings(
        limit: int = 30,
        finding_types: list[str] | None = None,
        exclude_types: list[str] | None = None,
    ) -> list[Finding]:
        """List findings with no related task, oldest first.

        Args:
            limit: Maximum number of findings to return
            finding_types: Only return findings of these types
            exclude_types: Skip findings of these types
        """
        with get_session() as session:
            statement = select(Finding).where(Finding.related_task_id.is_(None))
            if finding_types is not None:
                statement = statement.where(Finding.finding_type.in_(finding_types))
            if exclude_types is not None:
                statement = statement.where(Finding.finding_type.not_in(exclude_types))
            statement = statement.order_by(Finding.detected_at.asc()).limit(limit)
            return list(session.execute(statement).scalars().all())

    @staticmethod
    def count_unconverted_findings(detected_before: datetime | None = None) -> int:
        """Count findings still awaiting conversion."""
        with get_session() as session:
            statement = (
                select(func.count())
                .select_from(Finding)
                .where(Finding.related_task_id.is_(None))
            )
            if detected_before is not None:
                statement = statement.where(Finding.detected_at < detected_before)
            return session.execute(statement).scalar()

    @staticmethod
    def find_recent_duplicate(
        finding_type: str, title: str, since: datetime
    ) -> Finding | None:
        """Find a near-duplicate finding.

        A duplicate has the same type and title and is either still
        unconverted or was detected at or after `since`.
        """
        with get_session() as session:
            statement = (
                select(Finding)
                .where(
                    Finding.finding_type == finding_type,
                    Finding.title == title,
                    (Finding.related_task_id.is_(None)) | (Finding.detected_at >= since),
                )
                .order_by(Finding.detected_at.desc())
                .limit(1)
            )
            return session.execute(statement).scalar_one_or_none()

    @staticmethod
    def create_task_linked_to_finding(
        finding_id: UUID, task_fields: dict[str, Any]
    ) -> tuple[UUID, bool]:
        """Create a task for a finding and link the two in one transaction.

        The link is a conditional UPDATE guarded by related_task_id IS NULL.
        When the guard fails because another cycle converted the finding
        first, the new task is rolled back and the existing task id returned.

        Args:
            finding_id: Finding to convert
            task_fields: Task column values (type, category, priority, title, ...)

        Returns:
            Tuple of (task_id, created) where created is False if the finding
            had already been converted

        Raises:
            NotFoundError: If the finding does not exist
        """
        fields = {"max_attempts": settings.default_max_attempts, **task_fields}

        with get_session() as session:
            current = session.execute(
                select(Finding.related_task_id).where(Finding.id == finding_id)
            ).one_or_none()
            if current is None:
                raise NotFoundError(f"Finding with id {finding_id} not found")
            if current[0] is not None:
                return current[0], False

            task = Task(
                **fields,
                status=TaskStatus.PENDING,
                related_finding_id=finding_id,
            )
            session.add(task)
            session.flush()

            link_statement = (
                update(Finding)
                .where(Finding.id == finding_id, Finding.related_task_id.is_(None))
                .values(related_task_id=task.id)
            )
            if session.execute(link_statement).rowcount == 1:
                session.commit()
                return task.id, True

            session.rollback()
            existing_task_id = session.execute(
                select(Finding.related_task_id).where(Finding.id == finding_id)
            ).scalar_one()

            logger.info(
                f"Finding {finding_id} already converted to task {existing_task_id}"
            )
            return existing_task_id, False
