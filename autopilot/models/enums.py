"""Enumerations shared by the task and finding models."""

from enum import StrEnum


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskType(StrEnum):
    PROPOSE_CODE_CHANGE = "propose_code_change"
    RUN_TESTS = "run_tests"
    UPDATE_DOCS = "update_docs"
    SECURITY_SCAN = "security_scan"
    OPTIMIZE_PERFORMANCE = "optimize_performance"
    CODE_CLEANUP = "code_cleanup"


class TaskCategory(StrEnum):
    DEBUGGING = "debugging"
    OPTIMIZATION = "optimization"
    TESTING = "testing"
    DEPLOYMENT = "deployment"


class FindingType(StrEnum):
    ERROR = "error"
    BUG = "bug"
    SECURITY = "security"
    OPTIMIZATION = "optimization"
    PERFORMANCE = "performance"
    IMPROVEMENT = "improvement"
    WARNING = "warning"
    INSIGHT = "insight"


class Severity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class CycleStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    SKIPPED = "skipped"


class CycleTrigger(StrEnum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"
