"""Task model for orchestrated work items."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlmodel import Field, SQLModel

from autopilot.models.enums import TaskStatus


class Task(SQLModel, table=True):
    """Unit of work claimed and executed by the task executor."""

    __tablename__ = "tasks"

    # Primary key and timestamps
    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique identifier for the task",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(DateTime(timezone=True), index=True),
        description="Timestamp when the task was created",
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(DateTime(timezone=True)),
        description="Timestamp when the task was last updated",
    )
    started_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True, index=True),
        description="Timestamp of the most recent claim",
    )
    completed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True, index=True),
        description="Timestamp when the task reached completed or failed",
    )

    # Task fields
    type: str = Field(
        sa_column=Column(String, index=True, nullable=False),
        description="Handler key, e.g. propose_code_change or run_tests",
    )
    category: str = Field(
        sa_column=Column(String, index=True, nullable=False),
        description="Reporting group: debugging, optimization, testing, deployment",
    )
    priority: int = Field(
        default=5,
        sa_column=Column(Integer, index=True, nullable=False),
        ge=1,
        le=10,
        description="1-10, higher runs first",
    )
    status: str = Field(
        default=TaskStatus.PENDING,
        sa_column=Column(String, index=True, nullable=False),
        description="Task status: pending, in_progress, completed, failed",
    )
    title: str = Field(description="Short human readable title")
    description: str | None = Field(
        default=None, sa_column=Column(Text), description="Free text description"
    )
    progress: int = Field(default=0, description="Completion percentage 0-100")
    attempts: int = Field(default=0, description="Number of claims so far")
    max_attempts: int = Field(default=3, description="Claims allowed before failing")
    result: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSON),
        description="Structured outcome payload from the handler",
    )
    error: str | None = Field(
        default=None,
        sa_column=Column(Text),
        description="Failure reason, set only when status is failed",
    )
    related_finding_id: UUID | None = Field(
        default=None,
        foreign_key="findings.id",
        index=True,
        description="Finding that spawned this task",
    )
