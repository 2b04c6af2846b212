"""Task handlers: task-type specific execution logic."""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from autopilot.core.config import settings
from autopilot.core.errors import NotFoundError
from autopilot.models import Task, TaskType
from autopilot.services.code_generation import CodeGenerationService
from autopilot.services.command import CommandService
from autopilot.services.finding import FindingService

logger = logging.getLogger(__name__)

NO_COMMANDS = "command execution is not permitted in this environment"
NO_WRITES = "file writes are not permitted in this environment"

_PYTEST_COUNT = re.compile(r"(\d+) (passed|failed|errors?|skipped|xfailed|xpassed)")


class OutcomeStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"


@dataclass
class HandlerOutcome:
    """Structured result returned by every handler."""

    status: OutcomeStatus
    result: dict[str, Any] | None = None
    error: str | None = None
    progress: int | None = None

    @classmethod
    def success(cls, result: dict[str, Any]) -> "HandlerOutcome":
        return cls(status=OutcomeStatus.SUCCESS, result=result)

    @classmethod
    def failure(
        cls, error: str, result: dict[str, Any] | None = None
    ) -> "HandlerOutcome":
        return cls(status=OutcomeStatus.FAILURE, error=error, result=result)

    @classmethod
    def partial(
        cls, progress: int, result: dict[str, Any] | None = None
    ) -> "HandlerOutcome":
        return cls(status=OutcomeStatus.PARTIAL, progress=progress, result=result)


@dataclass(frozen=True)
class Capabilities:
    """What the execution environment lets handlers do."""

    allow_file_writes: bool = False
    allow_command_execution: bool = False

    @classmethod
    def from_settings(cls) -> "Capabilities":
        return cls(
            allow_file_writes=settings.allow_file_writes,
            allow_command_execution=settings.allow_command_execution,
        )


@dataclass
class StepRecorder:
    """Tracks sub-steps so results never imply work that did not happen."""

    steps: dict[str, dict[str, Any]] = field(default_factory=dict)

    def completed(self, name: str, **details: Any) -> None:
        self.steps[name] = {"status": "completed", **details}

    def failed(self, name: str, reason: str, **details: Any) -> None:
        self.steps[name] = {"status": "failed", "reason": reason, **details}

    def skipped(self, name: str, reason: str) -> None:
        self.steps[name] = {"status": "skipped", "reason": reason}

    @property
    def skipped_steps(self) -> list[str]:
        return [
            name for name, step in self.steps.items() if step["status"] == "skipped"
        ]


def parse_pytest_summary(output: str) -> dict[str, int]:
    """Extract counts from a pytest summary line, e.g. '3 passed, 1 failed'."""
    counts: dict[str, int] = {}
    for number, label in _PYTEST_COUNT.findall(output):
        key = "errors" if label.startswith("error") else label
        counts[key] = counts.get(key, 0) + int(number)
    return counts


def parse_audit_report(output: str) -> list[dict[str, Any]]:
    """Flatten pip-audit JSON output into one entry per vulnerability.

    Accepts both the current {"dependencies": [...]} shape and the older
    top-level list shape.

    Raises:
        ValueError: If the output is not pip-audit JSON
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise ValueError("Audit output is not valid JSON") from e

    dependencies = data.get("dependencies", []) if isinstance(data, dict) else data
    if not isinstance(dependencies, list):
        raise ValueError("Audit output has no dependency list")

    vulnerabilities = []
    for dependency in dependencies:
        for vuln in dependency.get("vulns", []):
            vulnerabilities.append(
                {
                    "package": dependency.get("name"),
                    "version": dependency.get("version"),
                    "id": vuln.get("id"),
                    "fix_versions": vuln.get("fix_versions", []),
                    "description": vuln.get("description", ""),
                }
            )
    return vulnerabilities


def _slugify(value: str, max_length: int = 60) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "untitled"


class Handler(ABC):
    """Base class for task handlers.

    Handlers may raise; the executor treats exceptions as failures.
    """

    task_type: str

    def __init__(self, capabilities: Capabilities | None = None):
        self.capabilities = capabilities or Capabilities.from_settings()

    @abstractmethod
    def execute(self, task: Task) -> HandlerOutcome:
        """Execute the task and return its outcome."""

    def task_context(self, task: Task) -> dict[str, Any]:
        """Build the context passed to external capabilities."""
        context: dict[str, Any] = {
            "task_type": task.type,
            "title": task.title,
            "description": task.description,
        }
        if task.related_finding_id is not None:
            try:
                finding = FindingService.get_finding_by_id(task.related_finding_id)
            except NotFoundError:
                logger.warning(
                    f"Task {task.id} references missing finding {task.related_finding_id}"
                )
            else:
                context["finding"] = {
                    "type": finding.finding_type,
                    "severity": finding.severity,
                    "title": finding.title,
                    "description": finding.description,
                    "location": finding.location,
                    "evidence": finding.evidence,
                }
        return context

    def run_test_suite(self, steps: StepRecorder, step_name: str = "run") -> bool | None:
        """Run the configured test command if allowed.

        Returns:
            True/False for pass/fail, None when the step was skipped
        """
        if not self.capabilities.allow_command_execution:
            steps.skipped(step_name, NO_COMMANDS)
            return None

        outcome = CommandService.run_command(settings.test_command)
        summary = parse_pytest_summary(outcome.stdout + "\n" + outcome.stderr)
        if outcome.timed_out:
            steps.failed(step_name, "test run timed out", summary=summary)
            return False
        if outcome.exit_code != 0:
            steps.failed(
                step_name,
                f"test command exited with {outcome.exit_code}",
                summary=summary,
                output=outcome.stdout[-2000:],
            )
            return False

        steps.completed(step_name, summary=summary)
        return True


class ProposeCodeChangeHandler(Handler):
    """Asks the code-generation capability for a reviewable change plan."""

    task_type = TaskType.PROPOSE_CODE_CHANGE
    focus = "Fix the defect described by the finding with the smallest safe change."

    def execute(self, task: Task) -> HandlerOutcome:
        steps = StepRecorder()
        context = {**self.task_context(task), "focus": self.focus}

        plan = CodeGenerationService.propose(context)
        if not plan.changes:
            return HandlerOutcome.failure("Code generation returned an empty plan")
        steps.completed("propose", changes=len(plan.changes))

        # Plans are stored for review, never applied here, so there is nothing to test
        steps.skipped("apply", "change plans require review before they are applied")
        steps.skipped("test", "change plan was not applied")

        return HandlerOutcome.success(
            {
                "plan": plan.model_dump(),
                "highest_risk": plan.highest_risk,
                "steps": steps.steps,
                "skipped_steps": steps.skipped_steps,
            }
        )


class OptimizePerformanceHandler(ProposeCodeChangeHandler):
    task_type = TaskType.OPTIMIZE_PERFORMANCE
    focus = (
        "Improve the performance problem described by the finding: consider "
        "indexes, caching, query shape and avoiding repeated work."
    )


class CodeCleanupHandler(ProposeCodeChangeHandler):
    task_type = TaskType.CODE_CLEANUP
    focus = (
        "Propose a behaviour-preserving cleanup: remove dead code, split "
        "oversized modules, resolve FIXME markers."
    )


class RunTestsHandler(Handler):
    """Runs the project test suite when the environment allows it."""

    task_type = TaskType.RUN_TESTS

    def execute(self, task: Task) -> HandlerOutcome:
        steps = StepRecorder()
        passed = self.run_test_suite(steps)
        result = {
            "tests_executed": passed is not None,
            "steps": steps.steps,
            "skipped_steps": steps.skipped_steps,
        }

        if passed is False:
            return HandlerOutcome.failure(steps.steps["run"]["reason"], result=result)
        return HandlerOutcome.success(result)


class UpdateDocsHandler(Handler):
    """Drafts documentation and writes it only when file writes are allowed."""

    task_type = TaskType.UPDATE_DOCS
    system_prompt = (
        "You are a technical writer. Write a concise Markdown note for the "
        "engineering team describing the insight below and what to do about it."
    )

    def execute(self, task: Task) -> HandlerOutcome:
        steps = StepRecorder()
        context = self.task_context(task)

        documentation = CodeGenerationService.summarize(
            self.system_prompt, json.dumps(context, indent=2, default=str)
        )
        if not documentation:
            return HandlerOutcome.failure("Documentation draft was empty")
        steps.completed("draft", characters=len(documentation))

        written_path = None
        if self.capabilities.allow_file_writes:
            docs_dir = Path(settings.docs_dir)
            docs_dir.mkdir(parents=True, exist_ok=True)
            target = docs_dir / f"{_slugify(task.title)}.md"
            target.write_text(documentation)
            written_path = str(target)
            steps.completed("write", path=written_path)
            logger.info(f"Wrote documentation for task {task.id} to {target}")
        else:
            steps.skipped("write", NO_WRITES)

        return HandlerOutcome.success(
            {
                "documentation": documentation,
                "written_path": written_path,
                "steps": steps.steps,
                "skipped_steps": steps.skipped_steps,
            }
        )


class SecurityScanHandler(Handler):
    """Runs the dependency audit and records vulnerabilities for review."""

    task_type = TaskType.SECURITY_SCAN

    def execute(self, task: Task) -> HandlerOutcome:
        steps = StepRecorder()
        context = self.task_context(task)
        result: dict[str, Any] = {"finding": context.get("finding")}

        if not self.capabilities.allow_command_execution:
            steps.skipped("scan", NO_COMMANDS)
            result.update(
                vulnerabilities=None,
                steps=steps.steps,
                skipped_steps=steps.skipped_steps,
            )
            return HandlerOutcome.success(result)

        outcome = CommandService.run_command(settings.audit_command)
        if outcome.timed_out:
            return HandlerOutcome.failure("Security scan timed out")

        # pip-audit exits non-zero when it finds vulnerabilities
        try:
            vulnerabilities = parse_audit_report(outcome.stdout)
        except ValueError as e:
            return HandlerOutcome.failure(
                f"Security scan failed (exit {outcome.exit_code}): {e}",
                result={"stderr": outcome.stderr[-2000:]},
            )

        steps.completed("scan", vulnerabilities=len(vulnerabilities))
        result.update(
            vulnerabilities=vulnerabilities,
            unfixable=[v for v in vulnerabilities if not v["fix_versions"]],
            steps=steps.steps,
            skipped_steps=steps.skipped_steps,
        )
        return HandlerOutcome.success(result)


class HandlerRegistry:
    """Maps task types to handlers."""

    def __init__(self, handlers: list[Handler] | None = None):
        self._handlers: dict[str, Handler] = {}
        for handler in handlers or []:
            self.register(handler)

    def register(self, handler: Handler) -> None:
        self._handlers[str(handler.task_type)] = handler

    def get(self, task_type: str) -> Handler | None:
        return self._handlers.get(task_type)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._handlers

    @classmethod
    def default(cls, capabilities: Capabilities | None = None) -> "HandlerRegistry":
        """Registry with one handler per known task type."""
        capabilities = capabilities or Capabilities.from_settings()
        return cls(
            [
                ProposeCodeChangeHandler(capabilities),
                OptimizePerformanceHandler(capabilities),
                CodeCleanupHandler(capabilities),
                RunTestsHandler(capabilities),
                UpdateDocsHandler(capabilities),
                SecurityScanHandler(capabilities),
            ]
        )
