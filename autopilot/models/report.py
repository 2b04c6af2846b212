"""Executive report model."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, String, Text
from sqlmodel import Field, SQLModel


class Report(SQLModel, table=True):
    """Immutable aggregate of task and finding activity over a window."""

    __tablename__ = "reports"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique identifier for the report",
    )
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(DateTime(timezone=True), index=True),
        description="Timestamp when the report was generated",
    )
    window_start: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    window_end: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    report_type: str = Field(
        default="daily_summary",
        sa_column=Column(String, index=True),
        description="daily_summary or on_demand",
    )

    # Counts
    tasks_completed: int = Field(default=0)
    tasks_failed: int = Field(default=0)
    findings_detected: int = Field(default=0)
    findings_resolved: int = Field(default=0)

    # Narrative
    executive_summary: str = Field(sa_column=Column(Text))
    summary_source: str = Field(
        default="template", description="llm or template"
    )
    key_accomplishments: list[str] = Field(
        default_factory=list, sa_column=Column(JSON)
    )
    critical_issues: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    notable_items: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON),
        description="Notable completed and failed tasks in the window",
    )
    outage_note: str | None = Field(
        default=None,
        sa_column=Column(Text),
        description="Explains work left unprocessed while cycles were not running",
    )
