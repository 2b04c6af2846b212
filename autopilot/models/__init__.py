"""Database models."""

from .activity_log import ActivityLog
from .cycle_run import CycleRun
from .enums import (
    CycleStatus,
    CycleTrigger,
    FindingType,
    Severity,
    TaskCategory,
    TaskStatus,
    TaskType,
)
from .finding import Finding
from .report import Report
from .task import Task

__all__ = [
    "ActivityLog",
    "CycleRun",
    "CycleStatus",
    "CycleTrigger",
    "Finding",
    "FindingType",
    "Report",
    "Severity",
    "Task",
    "TaskCategory",
    "TaskStatus",
    "TaskType",
]
