"""Pytest configuration and fixtures."""

import os
import tempfile

# Settings are read at import time, so the test environment must be in place
# before anything from autopilot is imported.
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = os.getenv(
    "TEST_DATABASE_URL",
    f"sqlite:///{os.path.join(tempfile.gettempdir(), 'autopilot-test.db')}",
)
os.environ["API_SECRET_KEY"] = "test-secret-key"
os.environ["OPENAI_API_KEY"] = ""
os.environ["LOG_SOURCE_URL"] = ""
os.environ["ENABLED_DETECTORS"] = ""
os.environ["AGENT_ENABLED"] = "true"
os.environ["ALLOW_FILE_WRITES"] = "false"
os.environ["ALLOW_COMMAND_EXECUTION"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from autopilot.core.database import clean_database, close_db, create_tables  # noqa: E402
from autopilot.main import app  # noqa: E402
from autopilot.models import Finding, Task, TaskCategory, TaskType  # noqa: E402
from autopilot.services import FindingService, TaskService  # noqa: E402
from autopilot.services.detectors import Detector, FindingCandidate  # noqa: E402
from autopilot.services.handlers import Handler, HandlerOutcome  # noqa: E402


def create_test_task(
    title: str = "Test task",
    type: str = TaskType.RUN_TESTS,
    category: str = TaskCategory.TESTING,
    priority: int = 5,
    max_attempts: int | None = None,
) -> Task:
    """Helper function to create a test task with default values."""
    return TaskService.create_task(
        type=type,
        title=title,
        category=category,
        priority=priority,
        max_attempts=max_attempts,
    )


def create_test_finding(
    finding_type: str = "error",
    title: str = "Test finding",
    severity: str = "medium",
    **kwargs,
) -> Finding:
    """Helper function to create a test finding with default values."""
    return FindingService.create_finding(
        finding_type=finding_type, title=title, severity=severity, **kwargs
    )


class StaticDetector(Detector):
    """Detector that returns a fixed list of candidates."""

    def __init__(self, name: str, candidates: list[FindingCandidate]):
        self.name = name
        self.candidates = candidates
        self.calls = 0

    def detect(self) -> list[FindingCandidate]:
        self.calls += 1
        return list(self.candidates)


class FailingDetector(Detector):
    name = "failing"

    def detect(self) -> list[FindingCandidate]:
        raise RuntimeError("log source exploded")


class ScriptedHandler(Handler):
    """Handler that replays a list of outcomes, one per call."""

    def __init__(self, task_type: str, outcomes: list[HandlerOutcome]):
        super().__init__()
        self.task_type = task_type
        self.outcomes = list(outcomes)
        self.executed: list[Task] = []

    def execute(self, task: Task) -> HandlerOutcome:
        self.executed.append(task)
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


@pytest.fixture(autouse=True, scope="function")
def clean_db():
    """Initialize and clean database for each test."""
    create_tables()

    # Clean all tables before test to ensure isolation
    clean_database()

    yield

    # Close DB connections
    close_db()


@pytest.fixture(scope="function")
def test_client():
    """Create a test client."""
    with TestClient(app) as client:
        yield client


@pytest.fixture(scope="function")
def auth_headers():
    """Provide authentication headers for API requests."""
    from autopilot.core.config import settings

    return {"X-API-Key": settings.api_secret_key}
