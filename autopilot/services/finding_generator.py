"""Finding generator: runs detectors and persists their findings."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID

from autopilot.core.errors import StoreUnavailableError
from autopilot.services.activity_log import ActivityLogService
from autopilot.services.detectors import Detector
from autopilot.services.finding import FindingService

logger = logging.getLogger(__name__)

PHASE = "detect"


@dataclass
class GenerationSummary:
    findings_created: int = 0
    findings_suppressed: int = 0
    detector_errors: dict[str, str] = field(default_factory=dict)


class FindingGenerator:
    """Runs each detector independently.

    A failing detector is logged and contributes no findings; the others still
    run. A candidate that cannot be persisted is logged and skipped without
    losing the findings already stored. Store outages propagate to the caller.
    """

    def __init__(self, detectors: list[Detector], dedup_window: timedelta | None = None):
        self.detectors = detectors
        self.dedup_window = dedup_window

    def _is_duplicate(self, finding_type: str, title: str) -> bool:
        if self.dedup_window is None:
            return False
        since = datetime.now(UTC) - self.dedup_window
        return FindingService.find_recent_duplicate(finding_type, title, since) is not None

    def run(self, cycle_id: UUID | None = None) -> GenerationSummary:
        summary = GenerationSummary()

        for detector in self.detectors:
            try:
                candidates = detector.detect()
            except StoreUnavailableError:
                raise
            except Exception as e:
                logger.exception(f"Detector {detector.name} failed")
                summary.detector_errors[detector.name] = str(e)
                ActivityLogService.record(
                    "error",
                    PHASE,
                    f"Detector {detector.name} failed: {e}",
                    cycle_id=cycle_id,
                    details={"detector": detector.name, "error_type": type(e).__name__},
                )
                continue

            created = 0
            for candidate in candidates:
                if self._is_duplicate(candidate.finding_type, candidate.title):
                    summary.findings_suppressed += 1
                    continue

                try:
                    finding = FindingService.create_finding(
                        finding_type=candidate.finding_type,
                        title=candidate.title,
                        severity=candidate.severity,
                        description=candidate.description,
                        evidence=candidate.evidence,
                        location=candidate.location,
                        detection_method=detector.name,
                        impact_score=candidate.impact_score,
                    )
                except StoreUnavailableError:
                    raise
                except Exception as e:
                    logger.exception(f"Could not persist finding from {detector.name}")
                    summary.detector_errors[detector.name] = str(e)
                    ActivityLogService.record(
                        "error",
                        PHASE,
                        f"Could not persist {candidate.finding_type} finding "
                        f"'{candidate.title}' from {detector.name}: {e}",
                        cycle_id=cycle_id,
                        details={"detector": detector.name, "error_type": type(e).__name__},
                    )
                    continue

                created += 1
                ActivityLogService.record(
                    "info",
                    PHASE,
                    f"Detected {finding.finding_type} finding: {finding.title}",
                    cycle_id=cycle_id,
                    finding_id=finding.id,
                    details={"detector": detector.name, "severity": finding.severity},
                )

            summary.findings_created += created
            logger.info(
                f"Detector {detector.name} produced {len(candidates)} candidates, "
                f"{created} new findings"
            )

        return summary
