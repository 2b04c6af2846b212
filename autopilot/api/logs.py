"""Activity log API endpoints."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from autopilot.core.auth import verify_api_key
from autopilot.services import ActivityLogService

router = APIRouter()


class ActivityLogResponse(BaseModel):
    id: UUID
    created_at: datetime
    level: str
    phase: str
    message: str
    details: dict[str, Any] | None
    cycle_id: UUID | None
    task_id: UUID | None
    finding_id: UUID | None


class ActivityLogListResponse(BaseModel):
    logs: list[ActivityLogResponse]
    total: int
    limit: int
    offset: int


@router.get("/logs", response_model=ActivityLogListResponse)
def list_logs(
    level: Literal["info", "warning", "error"] | None = None,
    phase: str | None = None,
    cycle_id: UUID | None = None,
    task_id: UUID | None = None,
    since: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
    api_key: str = Depends(verify_api_key),
):
    """List technical log entries, newest first."""
    logs, total = ActivityLogService.list_logs(
        level=level,
        phase=phase,
        cycle_id=cycle_id,
        task_id=task_id,
        since=since,
        limit=limit,
        offset=offset,
    )

    return ActivityLogListResponse(
        logs=[ActivityLogResponse.model_validate(log, from_attributes=True) for log in logs],
        total=total,
        limit=limit,
        offset=offset,
    )
