"""Finding API endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from autopilot.core.auth import verify_api_key
from autopilot.core.errors import NotFoundError
from autopilot.services import FindingService

router = APIRouter()


class FindingResponse(BaseModel):
    """Response model for finding data."""

    id: UUID
    finding_type: str
    severity: str
    title: str
    description: str | None
    location: str | None
    detection_method: str | None
    impact_score: float | None
    evidence: dict[str, Any] | None
    related_task_id: UUID | None
    detected_at: datetime


class FindingListResponse(BaseModel):
    findings: list[FindingResponse]
    total: int
    limit: int
    offset: int


@router.get("/findings/{finding_id}", response_model=FindingResponse)
def get_finding(finding_id: UUID, api_key: str = Depends(verify_api_key)):
    """Get a finding by ID."""
    try:
        finding = FindingService.get_finding_by_id(finding_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e

    return FindingResponse.model_validate(finding, from_attributes=True)


@router.get("/findings", response_model=FindingListResponse)
def list_findings(
    finding_type: str | None = None,
    severity: str | None = None,
    converted: bool | None = None,
    limit: int = 100,
    offset: int = 0,
    api_key: str = Depends(verify_api_key),
):
    """List findings, newest first.

    `converted=false` shows findings still waiting for a task, including
    those with no task mapping.
    """
    findings, total = FindingService.list_findings(
        finding_type=finding_type,
        severity=severity,
        converted=converted,
        limit=limit,
        offset=offset,
    )

    return FindingListResponse(
        findings=[
            FindingResponse.model_validate(finding, from_attributes=True)
            for finding in findings
        ],
        total=total,
        limit=limit,
        offset=offset,
    )
