"""Detectors: pluggable producers of finding candidates.

Detectors only read external signals (log source, dependency audit, source
files, the activity log). They never read or write task state.
"""

import logging
import math
import re
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from autopilot.core.config import settings
from autopilot.models import FindingType, Severity
from autopilot.services.activity_log import ActivityLogService
from autopilot.services.code_generation import CodeGenerationService
from autopilot.services.command import CommandService
from autopilot.services.handlers import Capabilities, parse_audit_report
from autopilot.services.llm import LLMService
from autopilot.services.log_source import LogSourceClient

logger = logging.getLogger(__name__)

ERROR_PATTERN_LENGTH = 100
SLOW_REQUEST_MS = 5000
SLOW_ENDPOINT_MIN_COUNT = 5
_MARKER = re.compile(r"#\s*(FIXME|XXX)\b:?\s*(.*)")


@dataclass
class FindingCandidate:
    """A finding as emitted by a detector, before persistence."""

    finding_type: str
    title: str
    severity: str = Severity.MEDIUM
    description: str | None = None
    evidence: dict[str, Any] | None = None
    location: str | None = None
    impact_score: float | None = None


class Detector(ABC):
    """Base class for detectors."""

    name: str

    @abstractmethod
    def detect(self) -> list[FindingCandidate]:
        """Return zero or more finding candidates. May raise."""


class ErrorLogDetector(Detector):
    """Groups recent server errors into recurring error patterns."""

    name = "error_log"

    def __init__(self, source: LogSourceClient, lookback: timedelta = timedelta(hours=1)):
        self.source = source
        self.lookback = lookback

    def detect(self) -> list[FindingCandidate]:
        since = datetime.now(UTC) - self.lookback
        records = self.source.fetch_error_logs(since=since)
        if not records:
            logger.info("No API errors detected in the lookback window")
            return []

        logger.warning(f"Found {len(records)} API errors since {since.isoformat()}")
        patterns: dict[str, int] = defaultdict(int)
        for record in records:
            message = record.get("error_message") or record.get("message") or "Unknown error"
            patterns[message[:ERROR_PATTERN_LENGTH]] += 1

        candidates = []
        for pattern, count in sorted(patterns.items(), key=lambda item: -item[1]):
            candidates.append(
                FindingCandidate(
                    finding_type=FindingType.ERROR,
                    severity=Severity.HIGH if count > 10 else Severity.MEDIUM,
                    title=f"Recurring API error: {pattern}",
                    description=f"Detected {count} occurrences of similar errors",
                    evidence={"pattern": pattern, "count": count, "sample": records[:3]},
                    impact_score=min(10.0, count / 2),
                )
            )
        return candidates


class PerformanceDetector(Detector):
    """Flags endpoints that repeatedly respond slower than the threshold."""

    name = "performance"

    def __init__(self, source: LogSourceClient, lookback: timedelta = timedelta(hours=1)):
        self.source = source
        self.lookback = lookback

    def detect(self) -> list[FindingCandidate]:
        since = datetime.now(UTC) - self.lookback
        records = self.source.fetch_slow_requests(
            since=since, min_response_time_ms=SLOW_REQUEST_MS
        )

        stats: dict[str, dict[str, int]] = {}
        for record in records:
            endpoint = record.get("endpoint") or "unknown"
            entry = stats.setdefault(endpoint, {"count": 0, "total_time": 0})
            entry["count"] += 1
            entry["total_time"] += int(record.get("response_time_ms") or 0)

        candidates = []
        for endpoint, entry in stats.items():
            if entry["count"] <= SLOW_ENDPOINT_MIN_COUNT:
                continue
            avg_time = round(entry["total_time"] / entry["count"])
            candidates.append(
                FindingCandidate(
                    finding_type=FindingType.PERFORMANCE,
                    severity=Severity.HIGH if avg_time > 10000 else Severity.MEDIUM,
                    title=f"Slow endpoint: {endpoint}",
                    description=(
                        f"Average response time: {avg_time}ms across "
                        f"{entry['count']} requests"
                    ),
                    location=endpoint,
                    evidence={**entry, "avg_time": avg_time},
                    impact_score=min(10.0, avg_time / 1000),
                )
            )

        if not candidates:
            logger.info("No performance issues detected")
        return candidates


class DependencyDetector(Detector):
    """Reports vulnerable dependencies found by the audit command."""

    name = "dependency"

    def __init__(self, capabilities: Capabilities | None = None):
        self.capabilities = capabilities or Capabilities.from_settings()

    def detect(self) -> list[FindingCandidate]:
        if not self.capabilities.allow_command_execution:
            logger.info("Dependency scan skipped: command execution not permitted")
            return []

        outcome = CommandService.run_command(settings.audit_command)
        if outcome.timed_out:
            raise TimeoutError("Dependency audit timed out")
        vulnerabilities = parse_audit_report(outcome.stdout)

        return [
            FindingCandidate(
                finding_type=FindingType.SECURITY,
                severity=Severity.HIGH if vuln["fix_versions"] else Severity.CRITICAL,
                title=f"Vulnerable dependency: {vuln['package']} {vuln['version']} ({vuln['id']})",
                description=vuln["description"] or None,
                location=vuln["package"],
                evidence=vuln,
            )
            for vuln in vulnerabilities
        ]


class SelfInspectionDetector(Detector):
    """Inspects the orchestrator's own source for markers and oversized modules."""

    name = "self_inspection"

    def __init__(
        self,
        root: str | Path | None = None,
        max_files: int = 20,
        max_module_lines: int = 500,
        exclude: tuple[str, ...] = (".venv", "venv", "node_modules", ".git", "tests"),
    ):
        self.root = Path(root or settings.source_root)
        self.max_files = max_files
        self.max_module_lines = max_module_lines
        self.exclude = exclude

    def _source_files(self, now: datetime | None = None) -> list[Path]:
        """Pick this cycle's batch of at most max_files source files.

        Batches rotate with the cycle slot (now // cycle interval), so every
        file is inspected within ceil(files / max_files) cycles without
        keeping any state between runs.
        """
        files = [
            path
            for path in sorted(self.root.rglob("*.py"))
            if not any(part in self.exclude for part in path.relative_to(self.root).parts)
        ]
        if len(files) <= self.max_files:
            return files

        now = now or datetime.now(UTC)
        slot = int(now.timestamp()) // max(1, settings.cycle_interval_seconds)
        batches = math.ceil(len(files) / self.max_files)
        start = (slot % batches) * self.max_files
        return files[start : start + self.max_files]

    def detect(self) -> list[FindingCandidate]:
        candidates = []
        for path in self._source_files():
            try:
                lines = path.read_text().splitlines()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable file {path}: {e}")
                continue

            relative = str(path.relative_to(self.root))
            for line_number, line in enumerate(lines, start=1):
                match = _MARKER.search(line)
                if match:
                    candidates.append(
                        FindingCandidate(
                            finding_type=FindingType.WARNING,
                            severity=Severity.LOW,
                            title=f"{match.group(1)} marker in {relative}",
                            description=match.group(2).strip() or None,
                            location=f"{relative}:{line_number}",
                            evidence={"line": line.strip()},
                        )
                    )

            if len(lines) > self.max_module_lines:
                candidates.append(
                    FindingCandidate(
                        finding_type=FindingType.IMPROVEMENT,
                        severity=Severity.LOW,
                        title=f"Oversized module: {relative}",
                        description=(
                            f"{len(lines)} lines, above the {self.max_module_lines} line limit"
                        ),
                        location=relative,
                        evidence={"lines": len(lines)},
                    )
                )
        return candidates


class LogAnalysisDetector(Detector):
    """Asks the summarization capability for patterns in recent warnings and errors."""

    name = "log_analysis"
    system_prompt = (
        "You are a system analyst. Analyze these logs and identify patterns, "
        "issues, or insights. Be concise."
    )

    def __init__(self, lookback: timedelta = timedelta(hours=24), sample_size: int = 20):
        self.lookback = lookback
        self.sample_size = sample_size

    def detect(self) -> list[FindingCandidate]:
        if not LLMService.is_available():
            logger.info("Log analysis skipped: summarization capability not configured")
            return []

        since = datetime.now(UTC) - self.lookback
        entries = []
        for level in ("error", "warning"):
            logs, _ = ActivityLogService.list_logs(
                level=level, since=since, limit=self.sample_size
            )
            entries.extend(logs)
        if not entries:
            logger.info("No recent warnings or errors to analyze")
            return []

        log_summary = "\n".join(
            f"[{entry.level}] {entry.phase}: {entry.message}"
            for entry in entries[: self.sample_size]
        )
        insights = CodeGenerationService.summarize(
            self.system_prompt, f"Analyze these system logs:\n\n{log_summary}"
        )

        lowered = insights.lower()
        if "issue" not in lowered and "problem" not in lowered:
            return []

        return [
            FindingCandidate(
                finding_type=FindingType.INSIGHT,
                severity=Severity.MEDIUM,
                title="Log analysis revealed potential issues",
                description=insights,
                evidence={"analyzed_logs": len(entries)},
            )
        ]


def build_default_detectors(capabilities: Capabilities | None = None) -> list[Detector]:
    """Instantiate the detectors named in ENABLED_DETECTORS."""
    enabled = set(settings.enabled_detectors)
    detectors: list[Detector] = []

    if enabled & {"error_log", "performance"}:
        if settings.log_source_url:
            source = LogSourceClient()
            if "error_log" in enabled:
                detectors.append(ErrorLogDetector(source))
            if "performance" in enabled:
                detectors.append(PerformanceDetector(source))
        else:
            logger.info("LOG_SOURCE_URL not set, log-based detectors disabled")
    if "dependency" in enabled:
        detectors.append(DependencyDetector(capabilities))
    if "self_inspection" in enabled:
        detectors.append(SelfInspectionDetector())
    if "log_analysis" in enabled:
        detectors.append(LogAnalysisDetector())

    return detectors
