"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from autopilot.core.config import settings

app = Celery("autopilot")

app.conf.update(
    # Broker configuration
    broker_url=settings.celery_broker_url,
    broker_connection_retry_on_startup=True,
    broker_connection_retry=True,
    broker_connection_max_retries=10,
    # Result backend - disabled, cycle state lives in the database
    result_backend=None,
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Task execution
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    # Task routing
    task_routes={
        "autopilot.tasks.cycle.*": {"queue": "agent_cycle"},
    },
    # A missed cycle is caught up by the next one
    beat_schedule={
        "run-agent-cycle": {
            "task": "autopilot.tasks.cycle.run_agent_cycle",
            "schedule": float(settings.cycle_interval_seconds),
            "options": {"expires": settings.cycle_interval_seconds},
        },
        "prune-activity-logs": {
            "task": "autopilot.tasks.cycle.prune_activity_logs",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)

app.autodiscover_tasks(["autopilot.tasks"], related_name="cycle")
