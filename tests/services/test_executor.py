"""Tests for TaskExecutor."""

from autopilot.services import ActivityLogService, TaskService
from autopilot.services.executor import TaskExecutor
from autopilot.services.handlers import HandlerOutcome, HandlerRegistry
from tests.conftest import ScriptedHandler, create_test_task


def registry_with(*handlers) -> HandlerRegistry:
    return HandlerRegistry(list(handlers))


def test_success_completes_task():
    """Test that a successful outcome completes the task."""
    task = create_test_task()
    handler = ScriptedHandler("run_tests", [HandlerOutcome.success({"ok": True})])

    summary = TaskExecutor(registry_with(handler)).run()

    assert summary.tasks_executed == 1
    assert summary.tasks_completed == 1
    task = TaskService.get_task_by_id(task.id)
    assert task.status == "completed"
    assert task.result == {"ok": True}


def test_executes_in_priority_order_within_batch():
    """Test that the batch is processed highest priority first."""
    create_test_task(title="low", priority=2)
    create_test_task(title="high", priority=9)
    create_test_task(title="mid", priority=5)
    handler = ScriptedHandler("run_tests", [HandlerOutcome.success({})])

    summary = TaskExecutor(registry_with(handler), batch_size=2).run()

    assert summary.tasks_executed == 2
    assert [task.title for task in handler.executed] == ["high", "mid"]
    assert TaskService.count_tasks("pending") == 1


def test_failure_is_retried_until_max_attempts():
    """Test the retry bound: exactly max_attempts executions, then failed."""
    task = create_test_task(max_attempts=3)
    handler = ScriptedHandler("run_tests", [HandlerOutcome.failure("flaky")])
    executor = TaskExecutor(registry_with(handler))

    statuses = []
    for _ in range(5):
        executor.run()
        statuses.append(TaskService.get_task_by_id(task.id).status)

    assert len(handler.executed) == 3
    assert statuses[:3] == ["pending", "pending", "failed"]
    task = TaskService.get_task_by_id(task.id)
    assert task.attempts == 3
    assert task.error == "flaky"
    assert len(task.result["attempt_errors"]) == 2


def test_failing_task_runs_once_per_cycle():
    """Test that a retried task waits for the next run."""
    create_test_task(max_attempts=3)
    handler = ScriptedHandler("run_tests", [HandlerOutcome.failure("flaky")])

    summary = TaskExecutor(registry_with(handler)).run()

    assert summary.tasks_executed == 1
    assert summary.tasks_retried == 1


def test_handler_exception_is_failure():
    """Test that an exception from a handler becomes a failed attempt."""

    class ExplodingHandler(ScriptedHandler):
        def execute(self, task):
            raise RuntimeError("kaboom")

    task = create_test_task(max_attempts=1)

    summary = TaskExecutor(registry_with(ExplodingHandler("run_tests", []))).run()

    assert summary.tasks_failed == 1
    task = TaskService.get_task_by_id(task.id)
    assert task.status == "failed"
    assert "RuntimeError: kaboom" in task.error


def test_missing_handler_is_failure():
    """Test that a task type without a handler fails."""
    task = create_test_task(type="update_docs", category="deployment", max_attempts=1)

    TaskExecutor(registry_with()).run()

    task = TaskService.get_task_by_id(task.id)
    assert task.status == "failed"
    assert "No handler registered" in task.error


def test_partial_outcome_releases_task():
    """Test that partial progress returns the task without using an attempt."""
    task = create_test_task()
    handler = ScriptedHandler("run_tests", [HandlerOutcome.partial(50, {"done": ["a"]})])

    summary = TaskExecutor(registry_with(handler)).run()

    assert summary.tasks_partial == 1
    task = TaskService.get_task_by_id(task.id)
    assert task.status == "pending"
    assert task.progress == 50
    assert task.attempts == 0


def test_outcome_for_reclaimed_task_is_discarded():
    """Test that a task reclaimed mid-execution is not overwritten."""
    task = create_test_task()

    class ReclaimingHandler(ScriptedHandler):
        def execute(self, claimed):
            TaskService.retry_task(claimed.id, "reclaimed elsewhere")
            return HandlerOutcome.success({})

    summary = TaskExecutor(registry_with(ReclaimingHandler("run_tests", []))).run()

    assert summary.outcomes[0]["status"] == "lost"
    assert TaskService.get_task_by_id(task.id).status == "pending"
    logs, _ = ActivityLogService.list_logs(level="warning", task_id=task.id)
    assert "discarded" in logs[0].message
