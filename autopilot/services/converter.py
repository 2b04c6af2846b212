"""Finding converter: turns unconverted findings into tasks exactly once."""

import logging
from dataclasses import dataclass, field
from typing import NamedTuple
from uuid import UUID

from autopilot.core.errors import StoreUnavailableError
from autopilot.models import Finding, FindingType, TaskCategory, TaskType
from autopilot.services.activity_log import ActivityLogService
from autopilot.services.finding import FindingService

logger = logging.getLogger(__name__)

PHASE = "convert"
MAX_TITLE_LENGTH = 200


class TaskMapping(NamedTuple):
    task_type: str
    priority: int
    category: str


FINDING_TASK_MAP: dict[str, TaskMapping] = {
    FindingType.SECURITY: TaskMapping(TaskType.SECURITY_SCAN, 10, TaskCategory.DEBUGGING),
    FindingType.ERROR: TaskMapping(TaskType.PROPOSE_CODE_CHANGE, 9, TaskCategory.DEBUGGING),
    FindingType.BUG: TaskMapping(TaskType.PROPOSE_CODE_CHANGE, 8, TaskCategory.DEBUGGING),
    FindingType.PERFORMANCE: TaskMapping(
        TaskType.OPTIMIZE_PERFORMANCE, 8, TaskCategory.OPTIMIZATION
    ),
    FindingType.OPTIMIZATION: TaskMapping(
        TaskType.OPTIMIZE_PERFORMANCE, 7, TaskCategory.OPTIMIZATION
    ),
    FindingType.IMPROVEMENT: TaskMapping(TaskType.CODE_CLEANUP, 6, TaskCategory.OPTIMIZATION),
    FindingType.WARNING: TaskMapping(TaskType.RUN_TESTS, 5, TaskCategory.TESTING),
    FindingType.INSIGHT: TaskMapping(TaskType.UPDATE_DOCS, 4, TaskCategory.DEPLOYMENT),
}


@dataclass
class ConversionSummary:
    tasks_created: int = 0
    already_converted: int = 0
    unmapped: int = 0
    errors: dict[str, str] = field(default_factory=dict)


def task_fields_for(finding: Finding, mapping: TaskMapping) -> dict:
    """Column values for the task spawned from a finding."""
    description = finding.description or ""
    if finding.location:
        description = f"{description}\n\nLocation: {finding.location}".strip()
    return {
        "type": mapping.task_type,
        "category": mapping.category,
        "priority": mapping.priority,
        "title": finding.title[:MAX_TITLE_LENGTH],
        "description": f"[{finding.severity}] {description}".strip(),
    }


class FindingConverter:
    """Converts findings oldest first using FINDING_TASK_MAP.

    Only mappable findings are fetched for conversion, so findings awaiting
    triage can never fill the batch and starve the rest of the queue.
    """

    def __init__(self, batch_size: int = 30):
        self.batch_size = batch_size

    def run(self, cycle_id: UUID | None = None) -> ConversionSummary:
        summary = ConversionSummary()
        mapped_types = list(FINDING_TASK_MAP)

        for finding in FindingService.list_unconverted_findings(
            limit=self.batch_size, finding_types=mapped_types
        ):
            mapping = FINDING_TASK_MAP[finding.finding_type]
            try:
                task_id, created = FindingService.create_task_linked_to_finding(
                    finding.id, task_fields_for(finding, mapping)
                )
            except StoreUnavailableError:
                raise
            except Exception as e:
                logger.exception(f"Failed to convert finding {finding.id}")
                summary.errors[str(finding.id)] = str(e)
                ActivityLogService.record(
                    "error",
                    PHASE,
                    f"Failed to convert finding {finding.id}: {e}",
                    cycle_id=cycle_id,
                    finding_id=finding.id,
                )
                continue

            if not created:
                summary.already_converted += 1
                continue

            summary.tasks_created += 1
            ActivityLogService.record(
                "info",
                PHASE,
                f"Converted finding to {mapping.task_type} task (priority {mapping.priority})",
                cycle_id=cycle_id,
                finding_id=finding.id,
                task_id=task_id,
                details={"finding_type": finding.finding_type, "category": mapping.category},
            )

        for finding in FindingService.list_unconverted_findings(
            limit=self.batch_size, exclude_types=mapped_types
        ):
            summary.unmapped += 1
            ActivityLogService.record(
                "warning",
                PHASE,
                f"No task mapping for finding type '{finding.finding_type}', "
                "leaving finding for triage",
                cycle_id=cycle_id,
                finding_id=finding.id,
            )

        return summary
