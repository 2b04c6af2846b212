"""Executive report API endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from autopilot.core.auth import verify_api_key
from autopilot.core.errors import NotFoundError
from autopilot.services import ReportService

router = APIRouter()


class ReportCreate(BaseModel):
    """Request model for an on-demand report."""

    window_hours: int | None = Field(default=None, ge=1, le=24 * 31)
    report_type: str = "on_demand"


class ReportResponse(BaseModel):
    id: UUID
    generated_at: datetime
    window_start: datetime
    window_end: datetime
    report_type: str
    tasks_completed: int
    tasks_failed: int
    findings_detected: int
    findings_resolved: int
    executive_summary: str
    summary_source: str
    key_accomplishments: list[str] | None
    critical_issues: list[str] | None
    notable_items: list[dict[str, Any]] | None
    outage_note: str | None


class ReportListResponse(BaseModel):
    reports: list[ReportResponse]
    total: int
    limit: int
    offset: int


@router.post("/reports", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
def generate_report(
    report_data: ReportCreate | None = None, api_key: str = Depends(verify_api_key)
):
    """Generate a report for the window ending now."""
    report_data = report_data or ReportCreate()
    report = ReportService.generate_report(
        window_hours=report_data.window_hours,
        report_type=report_data.report_type,
    )
    return ReportResponse.model_validate(report, from_attributes=True)


@router.get("/reports/latest", response_model=ReportResponse)
def get_latest_report(api_key: str = Depends(verify_api_key)):
    """Get the most recent report."""
    try:
        report = ReportService.get_latest_report()
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e

    return ReportResponse.model_validate(report, from_attributes=True)


@router.get("/reports", response_model=ReportListResponse)
def list_reports(
    limit: int = 20, offset: int = 0, api_key: str = Depends(verify_api_key)
):
    """List reports, newest first."""
    reports, total = ReportService.list_reports(limit=limit, offset=offset)

    return ReportListResponse(
        reports=[
            ReportResponse.model_validate(report, from_attributes=True)
            for report in reports
        ],
        total=total,
        limit=limit,
        offset=offset,
    )
