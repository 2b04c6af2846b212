"""Activity log model for the technical log stream."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, String, Text
from sqlmodel import Field, SQLModel


class ActivityLog(SQLModel, table=True):
    """Structured log entry emitted by a cycle phase."""

    __tablename__ = "activity_logs"

    # Primary key and timestamps
    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique identifier for the log entry",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(DateTime(timezone=True), index=True),
        description="Timestamp when the log entry was created",
    )

    # Log fields
    level: str = Field(
        sa_column=Column(String, index=True),
        description="Log level: info, warning, error",
    )
    phase: str = Field(
        sa_column=Column(String, index=True),
        description="Cycle phase that emitted the entry, e.g. reclaim or execute",
    )
    message: str = Field(sa_column=Column(Text))
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    # References, kept without foreign keys
    cycle_id: UUID | None = Field(default=None, index=True)
    task_id: UUID | None = Field(default=None, index=True)
    finding_id: UUID | None = Field(default=None, index=True)
