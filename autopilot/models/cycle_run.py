"""Cycle run model."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, String
from sqlmodel import Field, SQLModel

from autopilot.models.enums import CycleStatus


class CycleRun(SQLModel, table=True):
    """One invocation of the cycle coordinator."""

    __tablename__ = "cycle_runs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    trigger: str = Field(default="scheduled", description="scheduled or manual")
    status: str = Field(
        default=CycleStatus.RUNNING,
        sa_column=Column(String, index=True),
        description="running, completed, aborted, skipped",
    )
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(DateTime(timezone=True), index=True),
    )
    finished_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    tasks_reclaimed: int = Field(default=0)
    findings_created: int = Field(default=0)
    tasks_created: int = Field(default=0)
    tasks_executed: int = Field(default=0)
    phase_errors: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
