"""FastAPI application."""

from fastapi import Depends, FastAPI

from autopilot.api.cycles import router as cycles_router
from autopilot.api.findings import router as findings_router
from autopilot.api.logs import router as logs_router
from autopilot.api.reports import router as reports_router
from autopilot.api.tasks import router as tasks_router
from autopilot.core.auth import verify_api_key
from autopilot.core.logging_config import configure_logging

configure_logging()

app = FastAPI(
    title="Autopilot API",
    description="Autonomous maintenance agent: detects findings, runs tasks, reports",
    version="0.1.0",
)

app.include_router(cycles_router, prefix="/v1", tags=["cycles"])
app.include_router(tasks_router, prefix="/v1", tags=["tasks"])
app.include_router(findings_router, prefix="/v1", tags=["findings"])
app.include_router(reports_router, prefix="/v1", tags=["reports"])
app.include_router(logs_router, prefix="/v1", tags=["logs"])


@app.get("/health")
def health_check(api_key: str = Depends(verify_api_key)):
    """Health check endpoint."""
    return {"status": "healthy"}
