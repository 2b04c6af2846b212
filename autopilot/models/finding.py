"""Finding model for detected conditions."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, String, Text
from sqlmodel import Field, SQLModel


class Finding(SQLModel, table=True):
    """Condition reported by a detector that may warrant a task."""

    __tablename__ = "findings"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique identifier for the finding",
    )
    detected_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(DateTime(timezone=True), index=True),
        description="Timestamp when the finding was detected",
    )

    # Stored as plain strings so findings from unknown detectors are kept
    finding_type: str = Field(
        sa_column=Column(String, index=True, nullable=False),
        description="error, bug, security, optimization, performance, ...",
    )
    severity: str = Field(
        default="medium",
        sa_column=Column(String, index=True, nullable=False),
        description="critical, high, medium, low, info",
    )
    title: str = Field(description="Short summary of the condition")
    description: str | None = Field(default=None, sa_column=Column(Text))
    location: str | None = Field(
        default=None, description="File path or endpoint the finding refers to"
    )
    detection_method: str | None = Field(
        default=None, description="Name of the detector that produced the finding"
    )
    impact_score: float | None = Field(default=None, ge=0, le=10)
    evidence: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSON),
        description="Structured diagnostic payload",
    )

    # Set exactly once by the finding converter
    related_task_id: UUID | None = Field(
        default=None,
        index=True,
        description="Task created from this finding",
    )
