"""Business logic services."""

from .activity_log import ActivityLogService
from .cycle import CycleCoordinator, CycleSummary
from .cycle_run import CycleRunService
from .finding import FindingService
from .reporter import ReportService
from .task import TaskService

__all__ = [
    "ActivityLogService",
    "CycleCoordinator",
    "CycleRunService",
    "CycleSummary",
    "FindingService",
    "ReportService",
    "TaskService",
]
