"""Scheduled agent Celery tasks."""

import logging
from datetime import timedelta

from autopilot.celery_app import app
from autopilot.core.config import settings
from autopilot.models import CycleTrigger
from autopilot.services import ActivityLogService, CycleCoordinator

logger = logging.getLogger(__name__)


@app.task(name="autopilot.tasks.cycle.run_agent_cycle")
def run_agent_cycle(trigger: str = CycleTrigger.SCHEDULED) -> dict:
    """Run one agent cycle.

    This is a thin Celery wrapper around CycleCoordinator. It is not retried:
    an aborted cycle is simply picked up by the next scheduled one.
    """
    summary = CycleCoordinator().run_cycle(trigger=trigger)
    if not summary.success:
        logger.error(f"Cycle {summary.cycle_id} ended {summary.status}: {summary.error}")
    return summary.to_dict()


@app.task(
    bind=True,
    name="autopilot.tasks.cycle.prune_activity_logs",
    autoretry_for=(Exception,),
    max_retries=3,
    retry_backoff=5,
    retry_jitter=True,
)
def prune_activity_logs(self) -> int:
    """Delete activity log entries older than the retention period."""
    retention = timedelta(days=settings.log_retention_days)
    try:
        deleted = ActivityLogService.prune_logs(retention)
    except Exception as exc:
        logger.error(f"Error pruning activity logs: {exc}")
        raise

    logger.info(f"Pruned {deleted} activity log entries older than {retention.days} days")
    return deleted
