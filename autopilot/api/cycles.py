"""Cycle trigger endpoint."""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from autopilot.core.auth import verify_api_key
from autopilot.models import CycleTrigger
from autopilot.services import CycleCoordinator

router = APIRouter()


class CycleResponse(BaseModel):
    """Response model for a cycle invocation."""

    success: bool
    summary: dict[str, Any]


@router.post("/cycles", response_model=CycleResponse)
def run_cycle(
    trigger: CycleTrigger = CycleTrigger.MANUAL,
    api_key: str = Depends(verify_api_key),
):
    """Run one agent cycle synchronously.

    Safe to call while a scheduled cycle is running; the store guards every
    claim and conversion.
    """
    summary = CycleCoordinator().run_cycle(trigger=trigger)
    return CycleResponse(success=summary.success, summary=summary.to_dict())
